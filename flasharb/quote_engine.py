# flasharb/quote_engine.py
"""
Quote Oracle Adapter
Read-only expected outputs for single legs and whole routes
"""

import logging
from dataclasses import dataclass
from typing import List

from flasharb.chain import SystemClock
from flasharb.dex.venues import VenueRegistry
from flasharb.ledger import Ledger
from flasharb.models import Leg

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Quote:
    """Single venue quote"""
    venue: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    fee_amount: int
    fee_tier: int
    timestamp: float = 0

    @property
    def price(self) -> float:
        """token_out per token_in"""
        return self.amount_out / self.amount_in if self.amount_in > 0 else 0.0


# =============================================================================
# QUOTE ORACLES
# =============================================================================

class QuoteOracle:
    """
    Interface for read-only price quoting

    Subclasses implement quote(); quote_route() chains legs so each leg is
    quoted with the previous leg's expected output.
    """

    def quote(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
    ) -> Quote:
        raise NotImplementedError

    def quote_route(self, legs: List[Leg], amount_in: int) -> List[Quote]:
        quotes = []
        amount = amount_in
        for leg in legs:
            q = self.quote(leg.venue, leg.token_in, leg.token_out, amount, leg.fee_tier)
            quotes.append(q)
            amount = q.amount_out
        return quotes


class PoolQuoteOracle(QuoteOracle):
    """Quotes straight from the pool curves of registered venues"""

    def __init__(self, ledger: Ledger, venues: VenueRegistry, clock=None):
        self.ledger = ledger
        self.venues = venues
        self.clock = clock if clock is not None else SystemClock()

    def quote(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
    ) -> Quote:
        v = self.venues.get(venue)
        amount_out, fee_amount = v.quote(self.ledger, token_in, token_out, amount_in, fee_tier)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Quote {v.name}: {amount_in} {token_in} -> {amount_out} {token_out}")

        return Quote(
            venue=v.router,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            fee_amount=fee_amount,
            fee_tier=fee_tier,
            timestamp=self.clock.now(),
        )


def expected_route_output(quotes: List[Quote]) -> int:
    return quotes[-1].amount_out if quotes else 0
