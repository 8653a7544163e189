# flasharb/config.py
"""
Flash Arbitrage Engine Configuration
Defaults for the execution core, overridable from config/.env or the environment
"""

import os
from dotenv import load_dotenv
from pathlib import Path

# -----------------------------
# Load .env if present
# -----------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / "config" / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


# -----------------------------
# Chain Configuration
# -----------------------------
CHAIN_ID = _env_int("CHAIN_ID", 1)  # Ethereum mainnet
RPC_URL = os.getenv("RPC_URL", "")
BLOCK_TIME_SECONDS = _env_int("BLOCK_TIME_SECONDS", 12)

# -----------------------------
# Contract Addresses (Ethereum mainnet)
# -----------------------------
BALANCER_VAULT = os.getenv("BALANCER_VAULT", "0xBA12222222228d8Ba445958a75a0704d566BF2C8")
UNISWAP_V3_ROUTER = os.getenv("UNISWAP_V3_ROUTER", "0xE592427A0AEce92De3Edee1F18E0157C05861564")
UNISWAP_V3_QUOTER = os.getenv("UNISWAP_V3_QUOTER", "0x61fFE014bA17989E743c5F6cB21bF9697530B21e")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# -----------------------------
# Flash Loan Configuration
# -----------------------------
LENDER_FEE_BPS = _env_int("LENDER_FEE_BPS", 0)  # Balancer charges no flash fee

# -----------------------------
# Basis Points
# -----------------------------
BPS_DENOMINATOR = 10_000
MAX_PROFIT_BPS = 10_000                 # 100% ceiling for the dynamic threshold
FEE_TIER_DENOMINATOR = 1_000_000        # Uniswap V3 fee tiers (3000 = 0.30%)

# -----------------------------
# Route Validation
# -----------------------------
MAX_ROUTE_HOPS = _env_int("MAX_ROUTE_HOPS", 4)
ROUTE_FAILURE_THRESHOLD = _env_int("ROUTE_FAILURE_THRESHOLD", 3)
ROUTE_BLACKLIST_COOLDOWN = _env_int("ROUTE_BLACKLIST_COOLDOWN", 3600)  # seconds, 0 = until reset
ROUTE_MAX_DIVERGENCE_BPS = _env_int("ROUTE_MAX_DIVERGENCE_BPS", 100)   # quote vs realized

# -----------------------------
# Circuit Breaker
# -----------------------------
CB_MAX_VOLUME_PER_PERIOD = _env_int("CB_MAX_VOLUME_PER_PERIOD", 10**30)
CB_MAX_TRADES_PER_PERIOD = _env_int("CB_MAX_TRADES_PER_PERIOD", 100)
CB_PERIOD_SECONDS = _env_int("CB_PERIOD_SECONDS", 3600)
CB_WARNING_FRACTION = _env_float("CB_WARNING_FRACTION", 0.8)

# -----------------------------
# Profitability
# -----------------------------
BASE_MIN_PROFIT_BPS = _env_int("BASE_MIN_PROFIT_BPS", 10)     # 0.10%
VOLATILITY_MULTIPLIER = _env_int("VOLATILITY_MULTIPLIER", 1)  # bps per volatility point
DEFAULT_SLIPPAGE_BPS = _env_int("DEFAULT_SLIPPAGE_BPS", 50)   # 0.50%

# -----------------------------
# MEV Protection
# -----------------------------
MEV_PROTECTION_BLOCKS = _env_int("MEV_PROTECTION_BLOCKS", 2)

# -----------------------------
# Gas Configuration
# -----------------------------
GAS_BASE_TX = 21_000
GAS_FLASH_LOAN = 80_000
GAS_APPROVAL = 46_000
GAS_TRANSFER = 35_000
GAS_SWAP = {
    "constant_product": 110_000,
    "stable_swap": 160_000,
    "aggregator": 190_000,
}
GAS_LIMIT = _env_int("GAS_LIMIT", 5_000_000)

# -----------------------------
# Logging & Persistence
# -----------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SAVE_TRADE_HISTORY = os.getenv("SAVE_TRADE_HISTORY", "false").lower() == "true"
TRADE_DB_PATH = os.getenv("TRADE_DB_PATH", str(BASE_DIR / "data" / "trades.db"))
