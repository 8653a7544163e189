# flasharb/profitability.py
"""
Profitability Guard
Dynamic minimum-profit threshold that rises with market volatility
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flasharb.config import (
    BASE_MIN_PROFIT_BPS,
    BPS_DENOMINATOR,
    MAX_PROFIT_BPS,
    VOLATILITY_MULTIPLIER,
)
from flasharb.errors import (
    ConfigurationError,
    InsufficientProjectedProfit,
    InsufficientRealizedProfit,
)

logger = logging.getLogger(__name__)


@dataclass
class ProfitCheck:
    """Outcome of a profitability comparison"""
    profit: int
    min_profit: int
    threshold_bps: int

    @property
    def margin(self) -> int:
        return self.profit - self.min_profit


class ProfitabilityGuard:
    """
    dynamic_bps = min(base_bps + volatility_index * multiplier, 10000)

    The same threshold is applied to the optimistic pre-check (quoted amounts)
    and the authoritative post-check (realized amounts). A request may ask for
    a stricter floor than the dynamic one, never a looser one.
    """

    def __init__(
        self,
        base_bps: int = BASE_MIN_PROFIT_BPS,
        volatility_multiplier: int = VOLATILITY_MULTIPLIER,
        volatility_index: int = 0,
        max_bps: int = MAX_PROFIT_BPS,
    ):
        self.base_bps = base_bps
        self.volatility_multiplier = volatility_multiplier
        self.volatility_index = volatility_index
        self.max_bps = max_bps
        self._validate()

    def _validate(self) -> None:
        if self.base_bps < 0 or self.volatility_multiplier < 0 or self.volatility_index < 0:
            raise ConfigurationError("Profit parameters must be non-negative")
        if not 0 < self.max_bps <= MAX_PROFIT_BPS:
            raise ConfigurationError(f"Profit ceiling must be in (0, {MAX_PROFIT_BPS}]")

    def set_parameters(
        self,
        base_bps: Optional[int] = None,
        volatility_multiplier: Optional[int] = None,
        max_bps: Optional[int] = None,
    ) -> None:
        previous = (self.base_bps, self.volatility_multiplier, self.max_bps)
        if base_bps is not None:
            self.base_bps = base_bps
        if volatility_multiplier is not None:
            self.volatility_multiplier = volatility_multiplier
        if max_bps is not None:
            self.max_bps = max_bps
        try:
            self._validate()
        except ConfigurationError:
            self.base_bps, self.volatility_multiplier, self.max_bps = previous
            raise
        logger.info(f"Dynamic profit threshold now {self.dynamic_bps()} bps")

    def set_volatility_index(self, volatility_index: int) -> None:
        if volatility_index < 0:
            raise ConfigurationError("Volatility index must be non-negative")
        self.volatility_index = volatility_index

    def dynamic_bps(self) -> int:
        return min(self.base_bps + self.volatility_index * self.volatility_multiplier, self.max_bps)

    def threshold_bps(self, request_min_bps: int = 0) -> int:
        return min(max(self.dynamic_bps(), request_min_bps), self.max_bps)

    def min_profit(self, loan_amount: int, request_min_bps: int = 0) -> int:
        return loan_amount * self.threshold_bps(request_min_bps) // BPS_DENOMINATOR

    def _check(self, profit: int, loan_amount: int, request_min_bps: int) -> ProfitCheck:
        return ProfitCheck(
            profit=profit,
            min_profit=self.min_profit(loan_amount, request_min_bps),
            threshold_bps=self.threshold_bps(request_min_bps),
        )

    def check_projected(self, expected_profit: int, loan_amount: int, request_min_bps: int = 0) -> ProfitCheck:
        check = self._check(expected_profit, loan_amount, request_min_bps)
        if check.profit < check.min_profit:
            raise InsufficientProjectedProfit(
                f"Projected profit {check.profit} < minimum {check.min_profit} "
                f"({check.threshold_bps} bps)"
            )
        return check

    def check_realized(self, realized_profit: int, loan_amount: int, request_min_bps: int = 0) -> ProfitCheck:
        check = self._check(realized_profit, loan_amount, request_min_bps)
        if check.profit < check.min_profit:
            raise InsufficientRealizedProfit(
                f"Realized profit {check.profit} < minimum {check.min_profit} "
                f"({check.threshold_bps} bps)"
            )
        return check
