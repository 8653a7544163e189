import pytest

from flasharb.errors import VenueUnavailable
from flasharb.models import Leg
from flasharb.quote_engine import PoolQuoteOracle, Quote, expected_route_output

from helpers import TOKEN_A, TOKEN_B, V1_ROUTER, V2_ROUTER, addr


def test_route_quotes_chain_outputs(market):
    oracle = PoolQuoteOracle(market.ledger, market.venues)
    legs = [Leg(V1_ROUTER, TOKEN_A, TOKEN_B, 0), Leg(V2_ROUTER, TOKEN_B, TOKEN_A, 0)]

    quotes = oracle.quote_route(legs, 1000)

    assert [q.amount_in for q in quotes] == [1000, 1020]
    assert [q.amount_out for q in quotes] == [1020, 1015]
    assert expected_route_output(quotes) == 1015


def test_quoting_is_read_only(market):
    oracle = PoolQuoteOracle(market.ledger, market.venues)
    before = market.ledger.snapshot()
    oracle.quote(V1_ROUTER, TOKEN_A, TOKEN_B, 1000, 0)
    assert market.ledger.snapshot() == before


def test_unknown_venue(market):
    oracle = PoolQuoteOracle(market.ledger, market.venues)
    with pytest.raises(VenueUnavailable):
        oracle.quote(addr(0x9999), TOKEN_A, TOKEN_B, 1000, 0)


def test_quote_price():
    q = Quote(V1_ROUTER, TOKEN_A, TOKEN_B, amount_in=1000, amount_out=1020, fee_amount=0, fee_tier=0)
    assert q.price == pytest.approx(1.02)
    assert expected_route_output([]) == 0


def test_quote_is_stamped_with_clock(market, clock):
    oracle = PoolQuoteOracle(market.ledger, market.venues, clock)
    assert oracle.quote(V1_ROUTER, TOKEN_A, TOKEN_B, 1000, 0).timestamp == clock.now()
