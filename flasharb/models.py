# flasharb/models.py
"""
Data model for one arbitrage execution and the shared aggregates around it
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from web3 import Web3

from flasharb.errors import MalformedRoute

MAX_FEE_TIER = 2**24 - 1  # uint24 on-chain


# =============================================================================
# ENUMS
# =============================================================================

class CircuitState(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    EMERGENCY = "emergency"


class ContinuationPhase(Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ABORTED = "aborted"


# =============================================================================
# REQUEST
# =============================================================================

def _normalize(address):
    """Checksum well-formed addresses; leave anything else for validation to reject"""
    if isinstance(address, str) and Web3.is_address(address):
        return Web3.to_checksum_address(address)
    return address


@dataclass(frozen=True)
class Leg:
    """One single-venue swap within a route"""
    venue: str
    token_in: str
    token_out: str
    fee_tier: int


@dataclass
class TradeRequest:
    """Caller-supplied intent for one flash-loan arbitrage"""
    venues: List[str]          # one router address per leg
    path: List[str]            # token path, len(venues) + 1
    fee_tiers: List[int]       # per-leg fee tier
    loan_amount: int           # base units of path[0]
    min_profit_bps: int
    max_slippage_bps: int
    deadline: float            # unix timestamp
    mev_protection: bool = False
    max_gas_price: Optional[int] = None  # wei

    def __post_init__(self):
        self.venues = [_normalize(v) for v in self.venues]
        self.path = [_normalize(t) for t in self.path]

    @property
    def loan_token(self) -> str:
        return self.path[0]

    @property
    def hop_count(self) -> int:
        return len(self.venues)

    def legs(self) -> List[Leg]:
        return [
            Leg(self.venues[i], self.path[i], self.path[i + 1], self.fee_tiers[i])
            for i in range(len(self.venues))
        ]

    def validate_shape(self) -> None:
        """Structural invariants; raises MalformedRoute"""
        if len(self.path) < 2:
            raise MalformedRoute(f"Path needs at least 2 tokens, got {len(self.path)}")
        if len(self.venues) != len(self.path) - 1:
            raise MalformedRoute(
                f"Expected {len(self.path) - 1} venues for path, got {len(self.venues)}"
            )
        if len(self.fee_tiers) != len(self.venues):
            raise MalformedRoute(
                f"Expected {len(self.venues)} fee tiers, got {len(self.fee_tiers)}"
            )
        if str(self.path[0]).lower() != str(self.path[-1]).lower():
            raise MalformedRoute("Route must return to the borrowed token")
        if self.loan_amount <= 0:
            raise MalformedRoute(f"Loan amount must be positive, got {self.loan_amount}")
        if any(not 0 <= tier <= MAX_FEE_TIER for tier in self.fee_tiers):
            raise MalformedRoute(f"Fee tiers must be in [0, {MAX_FEE_TIER}]")
        if self.min_profit_bps < 0 or not 0 <= self.max_slippage_bps <= 10_000:
            raise MalformedRoute("Profit and slippage bounds must be valid basis points")


# =============================================================================
# PER-EXECUTION STATE
# =============================================================================

@dataclass
class LoanGrant:
    """Amounts advanced by the lender for one atomic execution"""
    tokens: List[str]
    amounts: List[int]
    fees: List[int]

    def amount_of(self, token: str) -> int:
        return sum(a for t, a in zip(self.tokens, self.amounts) if t == token)

    def fee_of(self, token: str) -> int:
        return sum(f for t, f in zip(self.tokens, self.fees) if t == token)

    def total_due(self, token: str) -> int:
        return self.amount_of(token) + self.fee_of(token)


@dataclass
class ExecutionContext:
    """Ephemeral state threaded through one in-flight trade"""
    trade_id: int
    started_at: float
    starting_balances: Dict[str, int] = field(default_factory=dict)
    leg_outputs: List[int] = field(default_factory=list)
    step: int = 0
    min_profit: int = 0
    realized_profit: int = 0
    distributed: Dict[str, int] = field(default_factory=dict)


# =============================================================================
# OUTCOMES & AGGREGATES
# =============================================================================

@dataclass(frozen=True)
class TradeResult:
    """Immutable outcome of one execution attempt"""
    trade_id: int
    success: bool
    loan_amount: int
    profit: int
    gas_used: int
    timestamp: float
    token_in: str
    token_out: str
    route_fingerprint: str = ""
    reason: str = ""
    step: int = 0
    phase: str = ""
    message: str = ""
    mev_protected: bool = False

    def to_dict(self) -> dict:
        return {
            "trade_id": self.trade_id,
            "success": self.success,
            "loan_amount": self.loan_amount,
            "profit": self.profit,
            "gas_used": self.gas_used,
            "timestamp": self.timestamp,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "route_fingerprint": self.route_fingerprint,
            "reason": self.reason,
            "step": self.step,
            "phase": self.phase,
            "message": self.message,
            "mev_protected": self.mev_protected,
        }


@dataclass
class Statistics:
    """Process-wide trade counters, written only by the orchestrator"""
    total_trades: int = 0
    successful_trades: int = 0
    failed_trades: int = 0
    total_volume: int = 0
    total_profit: int = 0
    volume_by_token: Dict[str, int] = field(default_factory=dict)
    profit_by_token: Dict[str, int] = field(default_factory=dict)
    total_gas_used: int = 0
    average_gas_used: int = 0
    volatility_index: int = 0
    circuit_breaker_triggers: int = 0
    mev_protected_trades: int = 0
    last_trade_timestamp: float = 0

    @property
    def success_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.successful_trades / self.total_trades * 100


@dataclass
class CircuitBreakerState:
    max_volume_per_period: int
    max_trades_per_period: int
    period_duration: int
    current_period_start: float = field(default_factory=time.time)
    current_volume: int = 0
    current_trades: int = 0
    state: CircuitState = CircuitState.NORMAL
    override: Optional[CircuitState] = None


@dataclass
class FailedRouteRecord:
    fingerprint: str
    failures: int = 0
    last_failure: float = 0
