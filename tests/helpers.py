"""Shared builders for the test suite."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from web3 import Web3

from flasharb.dex.venues import Pool, Venue, VenueKind, VenueRegistry
from flasharb.flash_loan import VaultLender
from flasharb.ledger import Ledger
from flasharb.models import TradeRequest
from flasharb.quote_engine import Quote, QuoteOracle


def addr(n: int) -> str:
    return Web3.to_checksum_address(f"0x{n:040x}")


TOKEN_A = addr(0xA1)
TOKEN_B = addr(0xB2)
TOKEN_C = addr(0xC3)
V1_ROUTER = addr(0x1001)
V2_ROUTER = addr(0x1002)
AGG_ROUTER = addr(0x1003)
POOL_1 = addr(0x2001)
POOL_2 = addr(0x2002)
POOL_3 = addr(0x2003)
POOL_4 = addr(0x2004)
POOL_5 = addr(0x2005)
CURVE_ROUTER = addr(0x1004)
ENGINE = addr(0xE001)
OWNER = addr(0xE0F0)
STRANGER = addr(0xBAD)
LENDER = addr(0xBA11)
R1 = addr(0xF001)
R2 = addr(0xF002)

LENDER_LIQUIDITY = 10**12


@dataclass
class Market:
    ledger: Ledger
    venues: VenueRegistry
    lender: VaultLender
    v1: Venue
    v2: Venue
    pool_1: Pool
    pool_2: Pool


def build_market(
    ledger: Ledger,
    scale: int = 1,
    lender_fee_bps: int = 0,
    pool_2_reserves: Optional[Tuple[int, int]] = None,
) -> Market:
    """
    Two constant-product venues with zero fees. With scale=1 a 1000 A loan
    buys exactly 1020 B on V1, which sells for exactly 1015 A on V2.
    """
    pool_1 = Pool(POOL_1, TOKEN_A, TOKEN_B, fee_tier=0)
    pool_2 = Pool(POOL_2, TOKEN_A, TOKEN_B, fee_tier=0)
    ledger.mint(POOL_1, TOKEN_A, 999_000 * scale)
    ledger.mint(POOL_1, TOKEN_B, 1_020_000 * scale)
    a_reserve, b_reserve = pool_2_reserves or (1_015_000 * scale, 1_018_980 * scale)
    ledger.mint(POOL_2, TOKEN_A, a_reserve)
    ledger.mint(POOL_2, TOKEN_B, b_reserve)

    v1 = Venue("V1", V1_ROUTER, VenueKind.CONSTANT_PRODUCT, pools=[pool_1])
    v2 = Venue("V2", V2_ROUTER, VenueKind.CONSTANT_PRODUCT, pools=[pool_2])
    venues = VenueRegistry([v1, v2])

    lender = VaultLender(ledger, address=LENDER, fee_bps=lender_fee_bps)
    ledger.mint(LENDER, TOKEN_A, LENDER_LIQUIDITY)
    return Market(ledger, venues, lender, v1, v2, pool_1, pool_2)


def add_token_c(market: Market) -> None:
    """
    Adds a B/C pool on V2 and a C/A pool on V1 so that A -> B -> C -> A over
    V1, V2, V1 turns 1000 A into 1020 B, 1020 C and finally 1015 A.
    """
    ledger = market.ledger
    pool_3 = Pool(POOL_3, TOKEN_B, TOKEN_C, fee_tier=0)
    pool_4 = Pool(POOL_4, TOKEN_C, TOKEN_A, fee_tier=0)
    ledger.mint(POOL_3, TOKEN_B, 998_980)
    ledger.mint(POOL_3, TOKEN_C, 1_000_000)
    ledger.mint(POOL_4, TOKEN_C, 1_018_980)
    ledger.mint(POOL_4, TOKEN_A, 1_015_000)
    market.v2.add_pool(pool_3)
    market.v1.add_pool(pool_4)


def make_request(now: float, **overrides) -> TradeRequest:
    params = dict(
        venues=[V1_ROUTER, V2_ROUTER],
        path=[TOKEN_A, TOKEN_B, TOKEN_A],
        fee_tiers=[0, 0],
        loan_amount=1000,
        min_profit_bps=10,
        max_slippage_bps=50,
        deadline=now + 60,
    )
    params.update(overrides)
    return TradeRequest(**params)


class FixedQuoteOracle(QuoteOracle):
    """Returns preset outputs keyed by (venue, token_in)"""

    def __init__(self, outputs: Dict[Tuple[str, str], int]):
        self.outputs = outputs
        self.calls = 0

    def quote(self, venue, token_in, token_out, amount_in, fee_tier):
        self.calls += 1
        return Quote(
            venue=venue,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=self.outputs[(venue, token_in)],
            fee_amount=0,
            fee_tier=fee_tier,
        )
