from unittest.mock import MagicMock

from flasharb.chain import ManualClock, SystemClock, Web3Clock
from flasharb.gas import GasMeter, gas_cost_wei
from flasharb.config import GAS_BASE_TX, GAS_FLASH_LOAN, GAS_TRANSFER


def test_manual_clock_advances():
    clock = ManualClock(timestamp=100.0, block=10)
    clock.advance(seconds=24, blocks=2)
    assert clock.now() == 124.0
    assert clock.block_number() == 12


def test_system_clock_block_height(monkeypatch):
    monkeypatch.setattr("flasharb.chain.time.time", lambda: 1_200.0)
    clock = SystemClock(genesis=0.0, block_time=12)
    assert clock.now() == 1_200.0
    assert clock.block_number() == 100


def test_web3_clock_reads_latest_block():
    w3 = MagicMock()
    w3.eth.get_block.return_value.timestamp = 1_700_000_123
    w3.eth.block_number = 18_000_042

    clock = Web3Clock(w3)

    assert clock.now() == 1_700_000_123.0
    assert clock.block_number() == 18_000_042
    w3.eth.get_block.assert_called_once_with("latest")


def test_gas_meter():
    gas = GasMeter()
    gas.charge_flash_loan()
    gas.charge_transfer(2)
    assert gas.used == GAS_BASE_TX + GAS_FLASH_LOAN + 2 * GAS_TRANSFER
    assert gas_cost_wei(gas.used, 30 * 10**9) == gas.used * 30 * 10**9
