# flasharb/gas.py
"""
Gas accounting for one atomic execution
"""

from flasharb.config import (
    GAS_APPROVAL,
    GAS_BASE_TX,
    GAS_FLASH_LOAN,
    GAS_SWAP,
    GAS_TRANSFER,
)


class GasMeter:
    """Accumulates the gas an execution would consume on-chain"""

    def __init__(self):
        self.used = GAS_BASE_TX

    def charge(self, units: int) -> None:
        self.used += units

    def charge_flash_loan(self) -> None:
        self.charge(GAS_FLASH_LOAN)

    def charge_approval(self) -> None:
        self.charge(GAS_APPROVAL)

    def charge_swap(self, venue_kind) -> None:
        self.charge(GAS_SWAP[venue_kind.value])

    def charge_transfer(self, count: int = 1) -> None:
        self.charge(GAS_TRANSFER * count)


def gas_cost_wei(gas_units: int, gas_price_wei: int) -> int:
    return gas_units * gas_price_wei
