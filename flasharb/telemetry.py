# flasharb/telemetry.py
"""
Statistics & Telemetry Sink
Trade counters and the append-only trade history
"""

import logging
from typing import Dict, List, Optional

from flasharb.models import Statistics, TradeResult

logger = logging.getLogger(__name__)


class TradeHistory:
    """
    Append-only TradeResult log keyed by a monotonically increasing id.
    Optionally mirrored into a TradeJournal.
    """

    def __init__(self, journal=None):
        self._results: Dict[int, TradeResult] = {}
        self._next_id = 1
        self.journal = journal
        if journal is not None:
            self._next_id = journal.last_trade_id() + 1

    def next_id(self) -> int:
        trade_id = self._next_id
        self._next_id += 1
        return trade_id

    def append(self, result: TradeResult) -> None:
        if result.trade_id in self._results:
            raise ValueError(f"Trade {result.trade_id} already recorded")
        self._results[result.trade_id] = result
        if self.journal is not None:
            self.journal.record(result)

    def get(self, trade_id: int) -> Optional[TradeResult]:
        return self._results.get(trade_id)

    def all(self) -> List[TradeResult]:
        return [self._results[k] for k in sorted(self._results)]

    def failures(self) -> List[TradeResult]:
        return [r for r in self.all() if not r.success]

    def __len__(self) -> int:
        return len(self._results)


class StatisticsSink:
    """Owns the Statistics aggregate; written by the orchestrator only"""

    def __init__(self, stats: Optional[Statistics] = None):
        self.stats = stats if stats is not None else Statistics()

    def record_success(self, result: TradeResult, token: str) -> None:
        s = self.stats
        s.total_trades += 1
        s.successful_trades += 1
        s.total_volume += result.loan_amount
        s.total_profit += result.profit
        s.volume_by_token[token] = s.volume_by_token.get(token, 0) + result.loan_amount
        s.profit_by_token[token] = s.profit_by_token.get(token, 0) + result.profit
        s.total_gas_used += result.gas_used
        # rolling average over successful executions
        s.average_gas_used = (
            s.average_gas_used * (s.successful_trades - 1) + result.gas_used
        ) // s.successful_trades
        if result.mev_protected:
            s.mev_protected_trades += 1
        s.last_trade_timestamp = result.timestamp

    def record_failure(self, result: TradeResult) -> None:
        s = self.stats
        s.total_trades += 1
        s.failed_trades += 1
        if result.reason == "CircuitBreakerTripped":
            s.circuit_breaker_triggers += 1
        s.last_trade_timestamp = result.timestamp

    def set_volatility_index(self, volatility_index: int) -> None:
        self.stats.volatility_index = volatility_index

    def summary(self) -> str:
        s = self.stats
        return (
            f"\n{'='*60}\n"
            f"📊 EXECUTION STATISTICS\n"
            f"{'='*60}\n"
            f"Trades: {s.total_trades} "
            f"(ok {s.successful_trades}, failed {s.failed_trades}, {s.success_rate:.1f}%)\n"
            f"Volume: {s.total_volume}\n"
            f"Profit: {s.total_profit}\n"
            f"Average Gas: {s.average_gas_used}\n"
            f"Volatility Index: {s.volatility_index}\n"
            f"Circuit Breaker Trips: {s.circuit_breaker_triggers}\n"
            f"MEV-Protected Trades: {s.mev_protected_trades}\n"
            f"{'='*60}\n"
        )
