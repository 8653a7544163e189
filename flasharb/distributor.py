# flasharb/distributor.py
"""
Profit Distributor
Splits realized profit among configured recipients by basis points
"""

import logging
from typing import Dict, List, Optional, Tuple

from web3 import Web3

from flasharb.config import BPS_DENOMINATOR
from flasharb.errors import ConfigurationError
from flasharb.ledger import Ledger

logger = logging.getLogger(__name__)


class ProfitDistributor:
    """
    Pays amount * bps // 10000 to each recipient in order. The rounding
    remainder goes to the last recipient, or to the caller when no recipients
    are configured, so the whole amount always leaves the source.
    """

    def __init__(self, recipients: Optional[List[Tuple[str, int]]] = None):
        self.recipients: List[Tuple[str, int]] = []
        if recipients:
            self.set_recipients(recipients)

    def set_recipients(self, recipients: List[Tuple[str, int]]) -> None:
        cleaned = []
        for address, bps in recipients:
            if not Web3.is_address(address):
                raise ConfigurationError(f"Invalid recipient address {address!r}")
            if bps < 0:
                raise ConfigurationError(f"Negative share for {address}")
            cleaned.append((Web3.to_checksum_address(address), int(bps)))

        total = sum(bps for _, bps in cleaned)
        if total > BPS_DENOMINATOR:
            raise ConfigurationError(f"Recipient shares total {total} bps > {BPS_DENOMINATOR}")

        self.recipients = cleaned
        logger.info(f"Profit recipients set: {len(cleaned)} ({total} bps)")

    def allocate(self, amount: int, caller: str) -> Dict[str, int]:
        """Recipient -> amount, without moving tokens"""
        allocation: Dict[str, int] = {}
        paid = 0
        for address, bps in self.recipients:
            share = amount * bps // BPS_DENOMINATOR
            allocation[address] = allocation.get(address, 0) + share
            paid += share

        remainder = amount - paid
        if remainder:
            default = self.recipients[-1][0] if self.recipients else Web3.to_checksum_address(caller)
            allocation[default] = allocation.get(default, 0) + remainder
        return allocation

    def distribute(self, ledger: Ledger, source: str, token: str, amount: int, caller: str) -> Dict[str, int]:
        if amount < 0:
            raise ValueError("Cannot distribute a negative amount")
        allocation = self.allocate(amount, caller)
        for address, share in allocation.items():
            if share:
                ledger.transfer(token, source, address, share)
        logger.info(f"Distributed {amount} of {token} to {len(allocation)} recipient(s)")
        return allocation
