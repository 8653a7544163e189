import pytest

from flasharb.errors import (
    DeadlineExpired,
    InsufficientProjectedProfit,
    InsufficientRealizedProfit,
    MalformedRoute,
    RouteBlacklisted,
    SlippageExceeded,
)
from flasharb.route_validator import RouteFailurePolicy, RouteValidator, route_fingerprint

from helpers import TOKEN_A, TOKEN_B, V1_ROUTER, V2_ROUTER, make_request

NOW = 1_700_000_000.0


def test_fingerprint_is_stable_and_case_insensitive():
    a = make_request(NOW)
    b = make_request(NOW, venues=[V1_ROUTER.lower(), V2_ROUTER.lower()])
    assert route_fingerprint(a) == route_fingerprint(b)
    assert route_fingerprint(a).startswith("0x")
    assert len(route_fingerprint(a)) == 66


def test_fingerprint_depends_on_fee_tiers():
    a = make_request(NOW)
    b = make_request(NOW, fee_tiers=[0, 500])
    assert route_fingerprint(a) != route_fingerprint(b)


def test_valid_route_returns_fingerprint():
    request = make_request(NOW)
    assert RouteValidator().validate(request, NOW) == route_fingerprint(request)


def test_too_many_hops():
    request = make_request(
        NOW,
        venues=[V1_ROUTER, V2_ROUTER] * 2 + [V1_ROUTER],
        path=[TOKEN_A, TOKEN_B, TOKEN_A, TOKEN_B, TOKEN_A, TOKEN_A],
        fee_tiers=[0] * 5,
    )
    with pytest.raises(MalformedRoute, match="hops"):
        RouteValidator(max_hops=4).validate(request, NOW)


def test_zero_address_rejected():
    request = make_request(NOW, venues=[V1_ROUTER, "0x" + "0" * 40])
    with pytest.raises(MalformedRoute):
        RouteValidator().validate(request, NOW)


def test_garbage_address_rejected():
    request = make_request(NOW, path=[TOKEN_A, "not-a-token", TOKEN_A])
    with pytest.raises(MalformedRoute):
        RouteValidator().validate(request, NOW)


@pytest.mark.parametrize("overrides", [
    {"path": [TOKEN_A]},
    {"venues": [V1_ROUTER]},
    {"fee_tiers": [0]},
    {"path": [TOKEN_A, TOKEN_B, TOKEN_B]},
    {"loan_amount": 0},
    {"max_slippage_bps": 10_001},
    {"fee_tiers": [0, 2**24]},
])
def test_malformed_shapes(overrides):
    with pytest.raises(MalformedRoute):
        RouteValidator().validate(make_request(NOW, **overrides), NOW)


def test_expired_deadline():
    with pytest.raises(DeadlineExpired):
        RouteValidator().validate(make_request(NOW, deadline=NOW - 1), NOW)


def test_blacklist_after_threshold_and_reset():
    validator = RouteValidator(failure_threshold=3, cooldown=None)
    request = make_request(NOW)
    fp = validator.validate(request, NOW)

    for _ in range(3):
        validator.record_failure(fp, NOW)

    with pytest.raises(RouteBlacklisted):
        validator.validate(request, NOW + 10**9)

    validator.reset_route(fp)
    assert validator.validate(request, NOW) == fp


def test_blacklist_expires_after_cooldown():
    validator = RouteValidator(failure_threshold=1, cooldown=3600)
    request = make_request(NOW, deadline=NOW + 7200)
    fp = validator.validate(request, NOW)
    validator.record_failure(fp, NOW)

    assert validator.is_blacklisted(fp, NOW + 3599)
    assert not validator.is_blacklisted(fp, NOW + 3600)


class TestRouteFailurePolicy:
    def test_swap_errors_always_count(self):
        assert RouteFailurePolicy().counts(SlippageExceeded())

    def test_projection_misses_never_count(self):
        assert not RouteFailurePolicy().counts(InsufficientProjectedProfit(), 1015, 0)

    def test_realized_shortfall_counts_only_past_divergence(self):
        policy = RouteFailurePolicy(max_divergence_bps=100)
        # 995 vs 1015 is ~197 bps short
        assert policy.counts(InsufficientRealizedProfit(), 1015, 995)
        assert not policy.counts(InsufficientRealizedProfit(), 1015, 1010)
