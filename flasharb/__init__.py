# flasharb/__init__.py
"""
Flash Arbitrage Execution Engine
Atomic flash-loan-funded cross-venue arbitrage

Modules:
- config: Configuration and environment
- ledger: In-memory token ledger with snapshot/rollback
- dex: Venue variants and Uniswap V3 router adapters
- quote_engine: Quote oracle adapter
- executor: Single-leg swap executor
- route_validator: Route checks and failed-route blacklist
- circuit_breaker: Rolling-window admission control
- profitability: Dynamic minimum-profit guard
- distributor: Profit sharing
- flash_loan: Balancer vault flash loans
- orchestrator: The execution state machine
- telemetry: Statistics and trade history
- main: Simulation entry point
"""

__version__ = "3.0.0"
__author__ = "FlashArb"

from flasharb.models import (
    CircuitState,
    TradeRequest,
    TradeResult,
)
from flasharb.orchestrator import FlashLoanOrchestrator

__all__ = [
    "CircuitState",
    "FlashLoanOrchestrator",
    "TradeRequest",
    "TradeResult",
]
