# flasharb/chain.py
"""
Execution-environment clocks: wall-clock seconds and block height
"""

import time

from web3 import Web3

from flasharb.config import BLOCK_TIME_SECONDS


class SystemClock:
    """Wall clock with a block height derived from the configured block time"""

    def __init__(self, genesis: float = 0.0, block_time: int = BLOCK_TIME_SECONDS):
        self.genesis = genesis
        self.block_time = block_time

    def now(self) -> float:
        return time.time()

    def block_number(self) -> int:
        return int((self.now() - self.genesis) // self.block_time)


class ManualClock:
    """Deterministic clock for simulations and tests"""

    def __init__(self, timestamp: float = 1_700_000_000.0, block: int = 18_000_000):
        self.timestamp = timestamp
        self.block = block

    def now(self) -> float:
        return self.timestamp

    def block_number(self) -> int:
        return self.block

    def advance(self, seconds: float = 0, blocks: int = 0) -> None:
        self.timestamp += seconds
        self.block += blocks


class Web3Clock:
    """Reads the latest block from a connected node"""

    def __init__(self, w3: Web3):
        self.w3 = w3

    def now(self) -> float:
        return float(self.w3.eth.get_block("latest").timestamp)

    def block_number(self) -> int:
        return self.w3.eth.block_number
