import pytest

from flasharb.chain import ManualClock
from flasharb.ledger import Ledger
from flasharb.orchestrator import FlashLoanOrchestrator
from flasharb.profitability import ProfitabilityGuard
from flasharb.route_validator import RouteValidator

from helpers import ENGINE, OWNER, build_market


@pytest.fixture
def clock():
    return ManualClock(timestamp=1_700_000_000.0, block=18_000_000)


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def market(ledger):
    return build_market(ledger)


@pytest.fixture
def make_engine(clock):
    """Factory for an orchestrator over a given market"""

    def _make(market, **kwargs):
        kwargs.setdefault("profitability", ProfitabilityGuard(base_bps=10, volatility_multiplier=1))
        kwargs.setdefault("route_validator", RouteValidator(max_hops=4, failure_threshold=3, cooldown=3600))
        return FlashLoanOrchestrator(
            address=ENGINE,
            owner=OWNER,
            ledger=market.ledger,
            lender=market.lender,
            venues=market.venues,
            clock=clock,
            mev_protection_blocks=2,
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(make_engine, market):
    return make_engine(market)
