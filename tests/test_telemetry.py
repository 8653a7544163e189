import pytest

from flasharb.events import TRADE_FAILED, TRADE_STARTED, Event, EventLog
from flasharb.models import TradeResult
from flasharb.storage import TradeJournal
from flasharb.telemetry import StatisticsSink, TradeHistory

from helpers import TOKEN_A, TOKEN_B


def _result(trade_id, success=True, profit=10, gas_used=100_000, reason="", mev=False):
    return TradeResult(
        trade_id=trade_id,
        success=success,
        loan_amount=1000,
        profit=profit if success else 0,
        gas_used=gas_used,
        timestamp=1_700_000_000.0 + trade_id,
        token_in=TOKEN_A,
        token_out=TOKEN_B,
        reason=reason,
        mev_protected=mev,
    )


def test_statistics_rolling_average_gas():
    sink = StatisticsSink()
    sink.record_success(_result(1, gas_used=100_000), TOKEN_A)
    sink.record_success(_result(2, gas_used=200_000, mev=True), TOKEN_A)

    s = sink.stats
    assert s.successful_trades == 2
    assert s.total_volume == 2000
    assert s.total_profit == 20
    assert s.volume_by_token[TOKEN_A] == 2000
    assert s.average_gas_used == 150_000
    assert s.mev_protected_trades == 1


def test_failures_do_not_touch_volume_or_profit():
    sink = StatisticsSink()
    sink.record_failure(_result(1, success=False, reason="InsufficientProjectedProfit"))
    sink.record_failure(_result(2, success=False, reason="CircuitBreakerTripped"))

    s = sink.stats
    assert s.failed_trades == 2
    assert s.total_volume == 0
    assert s.total_profit == 0
    assert s.circuit_breaker_triggers == 1
    assert s.success_rate == 0.0
    assert "EXECUTION STATISTICS" in sink.summary()


def test_history_ids_are_unique():
    history = TradeHistory()
    assert [history.next_id() for _ in range(3)] == [1, 2, 3]

    history.append(_result(1))
    with pytest.raises(ValueError):
        history.append(_result(1))


def test_history_failures():
    history = TradeHistory()
    history.append(_result(2, success=False, reason="DeadlineExpired"))
    history.append(_result(1))
    assert [r.trade_id for r in history.all()] == [1, 2]
    assert [r.trade_id for r in history.failures()] == [2]


def test_history_resumes_ids_from_journal():
    journal = TradeJournal()
    journal.record(_result(7))
    history = TradeHistory(journal)
    assert history.next_id() == 8
    history.append(_result(8))
    assert journal.get(8) == _result(8)


def test_event_log_fans_out():
    log = EventLog()
    seen = []
    log.subscribe(seen.append)
    log.publish_all([Event(TRADE_STARTED, 1.0, {"trade_id": 1}), Event(TRADE_FAILED, 2.0)])

    assert [e.name for e in seen] == [TRADE_STARTED, TRADE_FAILED]
    assert log.named(TRADE_FAILED)[0].timestamp == 2.0
