import pytest

from flasharb.circuit_breaker import CircuitBreaker
from flasharb.errors import ConfigurationError
from flasharb.models import CircuitState

NOW = 1_700_000_000.0


@pytest.fixture
def breaker():
    return CircuitBreaker(
        max_volume_per_period=10_000,
        max_trades_per_period=5,
        period_duration=3600,
        warning_fraction=0.8,
        now=NOW,
    )


def test_normal_below_warning(breaker):
    assert breaker.admit(1000, NOW) is CircuitState.NORMAL


def test_warning_then_emergency_by_volume(breaker):
    assert breaker.admit(8000, NOW) is CircuitState.WARNING
    assert breaker.admit(2000, NOW) is CircuitState.EMERGENCY


def test_emergency_by_trade_count(breaker):
    states = [breaker.admit(1, NOW) for _ in range(5)]
    assert states[:4] == [CircuitState.NORMAL] * 4
    assert states[4] is CircuitState.EMERGENCY


def test_period_rollover_resets_counters(breaker):
    breaker.admit(10_000, NOW)
    assert breaker.current is CircuitState.EMERGENCY

    assert breaker.admit(100, NOW + 3600) is CircuitState.NORMAL
    assert breaker.state.current_volume == 100
    assert breaker.state.current_trades == 1
    assert breaker.state.current_period_start == NOW + 3600


def test_state_is_monotone_within_period(breaker):
    order = [CircuitState.NORMAL, CircuitState.WARNING, CircuitState.EMERGENCY]
    previous = 0
    for _ in range(4):
        state = breaker.admit(2500, NOW + 10)
        assert order.index(state) >= previous
        previous = order.index(state)


def test_forced_state_wins_until_cleared(breaker):
    breaker.force_state(CircuitState.EMERGENCY)
    assert breaker.admit(1, NOW) is CircuitState.EMERGENCY
    breaker.clear_override()
    assert breaker.admit(1, NOW) is CircuitState.NORMAL


def test_forced_state_cleared_by_rollover(breaker):
    breaker.force_state(CircuitState.EMERGENCY)
    assert breaker.admit(1, NOW + 3600) is CircuitState.NORMAL


def test_snapshot_restore(breaker):
    breaker.admit(9500, NOW)
    snap = breaker.snapshot()
    breaker.admit(1000, NOW)
    breaker.restore(snap)

    assert breaker.state.current_volume == 9500
    assert breaker.state.current_trades == 1
    assert breaker.current is CircuitState.WARNING


def test_update_thresholds(breaker):
    breaker.update_thresholds(max_volume_per_period=20_000)
    assert breaker.admit(10_000, NOW) is CircuitState.NORMAL


@pytest.mark.parametrize("kwargs", [
    {"max_volume_per_period": 0},
    {"max_trades_per_period": -1},
    {"period_duration": 0},
    {"warning_fraction": 1.5},
])
def test_invalid_thresholds_are_rejected_and_reverted(breaker, kwargs):
    with pytest.raises(ConfigurationError):
        breaker.update_thresholds(**kwargs)
    assert breaker.state.max_volume_per_period == 10_000
    assert breaker.state.max_trades_per_period == 5
    assert breaker.state.period_duration == 3600
    assert breaker.warning_fraction == 0.8
