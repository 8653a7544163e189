# flasharb/ledger.py
"""
In-memory ERC-20 style token ledger

Every balance-affecting effect in the engine goes through a Ledger. Pools keep
their reserves here too, so a snapshot covers the whole market state.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

from web3 import Web3

from flasharb.errors import InsufficientAllowance, InsufficientBalance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    balances: Dict[Tuple[str, str], int]
    allowances: Dict[Tuple[str, str, str], int]


class Ledger:
    """
    Token balances keyed by (holder, token) and allowances keyed by
    (token, owner, spender). All addresses are checksummed on entry.
    """

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}

    @staticmethod
    def _key(address: str) -> str:
        return Web3.to_checksum_address(address)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def balance_of(self, holder: str, token: str) -> int:
        return self._balances.get((self._key(holder), self._key(token)), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self._allowances.get(
            (self._key(token), self._key(owner), self._key(spender)), 0
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def mint(self, holder: str, token: str, amount: int) -> None:
        """Credit tokens out of thin air (market setup only)"""
        if amount < 0:
            raise ValueError("Cannot mint a negative amount")
        key = (self._key(holder), self._key(token))
        self._balances[key] = self._balances.get(key, 0) + amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot transfer a negative amount")
        src = (self._key(sender), self._key(token))
        dst = (self._key(recipient), self._key(token))
        available = self._balances.get(src, 0)
        if available < amount:
            raise InsufficientBalance(
                f"{sender} holds {available} of {token}, needs {amount}"
            )
        self._balances[src] = available - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot approve a negative amount")
        key = (self._key(token), self._key(owner), self._key(spender))
        if amount == 0:
            self._allowances.pop(key, None)
        else:
            self._allowances[key] = amount

    def transfer_from(
        self,
        token: str,
        spender: str,
        owner: str,
        recipient: str,
        amount: int,
    ) -> None:
        """Move owner's tokens on behalf of spender, consuming allowance"""
        granted = self.allowance(token, owner, spender)
        if granted < amount:
            raise InsufficientAllowance(
                f"{spender} may spend {granted} of {owner}'s {token}, needs {amount}"
            )
        self.transfer(token, owner, recipient, amount)
        self.approve(token, owner, spender, granted - amount)

    # -------------------------------------------------------------------------
    # Rollback
    # -------------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(dict(self._balances), dict(self._allowances))

    def restore(self, snapshot: LedgerSnapshot) -> None:
        self._balances = dict(snapshot.balances)
        self._allowances = dict(snapshot.allowances)

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """Undo every movement made inside the block if it raises"""
        snapshot = self.snapshot()
        try:
            yield self
        except BaseException:
            self.restore(snapshot)
            logger.debug("Ledger rolled back to snapshot")
            raise
