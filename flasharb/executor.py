# flasharb/executor.py
"""
Swap Executor
Runs one exact-input swap against one venue router. No retries: a failed leg
aborts the whole atomic trade.
"""

import logging
from typing import Optional

from web3 import Web3

from flasharb.dex.venues import VenueRegistry
from flasharb.errors import (
    DeadlineExpired,
    LedgerError,
    SlippageExceeded,
    VenueUnavailable,
)
from flasharb.gas import GasMeter
from flasharb.ledger import Ledger

logger = logging.getLogger(__name__)


class SwapExecutor:
    """
    Executes swaps on behalf of `owner`

    The venue router is approved for exactly amount_in before the call and
    any unspent allowance is revoked afterwards.
    """

    def __init__(self, ledger: Ledger, venues: VenueRegistry, owner: str, clock):
        self.ledger = ledger
        self.venues = venues
        self.owner = Web3.to_checksum_address(owner)
        self.clock = clock

    def swap(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        fee_tier: int,
        deadline: float,
        gas: Optional[GasMeter] = None,
    ) -> int:
        """Returns the amount of token_out actually received"""
        now = self.clock.now()
        if now > deadline:
            raise DeadlineExpired(f"Swap deadline {deadline} passed at {now}")
        if amount_in <= 0:
            raise VenueUnavailable(f"Nothing to swap into {token_out}")

        v = self.venues.get(venue)
        balance_before = self.ledger.balance_of(self.owner, token_out)

        self.ledger.approve(token_in, self.owner, v.router, amount_in)
        if gas is not None:
            gas.charge_approval()

        try:
            v.swap(
                self.ledger,
                payer=self.owner,
                recipient=self.owner,
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                min_amount_out=min_amount_out,
                fee_tier=fee_tier,
                deadline=deadline,
                now=now,
            )
        except LedgerError as e:
            raise VenueUnavailable(f"{v.name}: {e}") from e
        finally:
            if self.ledger.allowance(token_in, self.owner, v.router):
                self.ledger.approve(token_in, self.owner, v.router, 0)

        if gas is not None:
            gas.charge_swap(v.kind)

        amount_out = self.ledger.balance_of(self.owner, token_out) - balance_before
        if amount_out <= 0:
            raise VenueUnavailable(f"{v.name}: swap returned nothing")
        if amount_out < min_amount_out:
            raise SlippageExceeded(
                f"{v.name}: received {amount_out} < minimum {min_amount_out}"
            )

        logger.info(f"Swapped {amount_in} {token_in} -> {amount_out} {token_out} on {v.name}")
        return amount_out


def min_output_for(expected_out: int, max_slippage_bps: int) -> int:
    """Lowest acceptable output given a slippage tolerance"""
    return expected_out * (10_000 - max_slippage_bps) // 10_000
