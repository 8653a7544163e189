# flasharb/circuit_breaker.py
"""
Circuit Breaker
Rolling-window admission control over trade volume and trade count
"""

import copy
import logging
from typing import Optional

from flasharb.config import (
    CB_MAX_TRADES_PER_PERIOD,
    CB_MAX_VOLUME_PER_PERIOD,
    CB_PERIOD_SECONDS,
    CB_WARNING_FRACTION,
)
from flasharb.errors import ConfigurationError
from flasharb.models import CircuitBreakerState, CircuitState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Normal -> Warning -> Emergency as the current period fills up.

    Only Emergency blocks admission. A forced state (manual emergency stop)
    wins over the computed one until cleared or until the window rolls over.
    """

    def __init__(
        self,
        max_volume_per_period: int = CB_MAX_VOLUME_PER_PERIOD,
        max_trades_per_period: int = CB_MAX_TRADES_PER_PERIOD,
        period_duration: int = CB_PERIOD_SECONDS,
        warning_fraction: float = CB_WARNING_FRACTION,
        now: float = 0.0,
    ):
        self.warning_fraction = warning_fraction
        self.state = CircuitBreakerState(
            max_volume_per_period=max_volume_per_period,
            max_trades_per_period=max_trades_per_period,
            period_duration=period_duration,
            current_period_start=now,
        )
        self._validate()

    def _validate(self) -> None:
        s = self.state
        if s.max_volume_per_period <= 0 or s.max_trades_per_period <= 0:
            raise ConfigurationError("Circuit breaker limits must be positive")
        if s.period_duration <= 0:
            raise ConfigurationError("Circuit breaker period must be positive")
        if not 0 < self.warning_fraction <= 1:
            raise ConfigurationError("Warning fraction must be in (0, 1]")

    @property
    def current(self) -> CircuitState:
        return self.state.override or self.state.state

    def _roll(self, now: float) -> None:
        s = self.state
        if now >= s.current_period_start + s.period_duration:
            logger.info(
                f"Circuit breaker period rolled over "
                f"(volume={s.current_volume}, trades={s.current_trades})"
            )
            s.current_period_start = now
            s.current_volume = 0
            s.current_trades = 0
            s.state = CircuitState.NORMAL
            s.override = None

    def _compute(self) -> CircuitState:
        s = self.state
        ratio = s.current_volume / s.max_volume_per_period
        if ratio >= 1.0 or s.current_trades >= s.max_trades_per_period:
            return CircuitState.EMERGENCY
        if ratio >= self.warning_fraction:
            return CircuitState.WARNING
        return CircuitState.NORMAL

    def admit(self, volume: int, now: float) -> CircuitState:
        """Account for a new trade of `volume` and return the resulting state"""
        self._roll(now)
        s = self.state
        previous = self.current

        s.current_volume += volume
        s.current_trades += 1
        s.state = self._compute()

        if self.current is not previous:
            log = logger.warning if self.current is not CircuitState.NORMAL else logger.info
            log(
                f"Circuit breaker {previous.value} -> {self.current.value} "
                f"(volume={s.current_volume}/{s.max_volume_per_period}, "
                f"trades={s.current_trades}/{s.max_trades_per_period})"
            )
        return self.current

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def force_state(self, state: CircuitState) -> None:
        logger.warning(f"Circuit breaker forced to {state.value}")
        self.state.override = state

    def clear_override(self) -> None:
        if self.state.override is not None:
            logger.info("Circuit breaker override cleared")
        self.state.override = None

    def update_thresholds(
        self,
        max_volume_per_period: Optional[int] = None,
        max_trades_per_period: Optional[int] = None,
        period_duration: Optional[int] = None,
        warning_fraction: Optional[float] = None,
    ) -> None:
        previous = (copy.copy(self.state), self.warning_fraction)
        if max_volume_per_period is not None:
            self.state.max_volume_per_period = max_volume_per_period
        if max_trades_per_period is not None:
            self.state.max_trades_per_period = max_trades_per_period
        if period_duration is not None:
            self.state.period_duration = period_duration
        if warning_fraction is not None:
            self.warning_fraction = warning_fraction
        try:
            self._validate()
        except ConfigurationError:
            self.state, self.warning_fraction = previous
            raise

    # -------------------------------------------------------------------------
    # Rollback
    # -------------------------------------------------------------------------

    def snapshot(self) -> CircuitBreakerState:
        return copy.copy(self.state)

    def restore(self, snapshot: CircuitBreakerState) -> None:
        self.state = copy.copy(snapshot)
