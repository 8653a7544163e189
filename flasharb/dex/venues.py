# flasharb/dex/venues.py
"""
Swap venues as a closed set of tagged variants

A Venue is identified by its router address. Its kind decides the pricing
curve; pool reserves are read from the shared Ledger under the pool address.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from web3 import Web3

from flasharb.config import FEE_TIER_DENOMINATOR
from flasharb.errors import ConfigurationError, DeadlineExpired, SlippageExceeded, VenueUnavailable
from flasharb.ledger import Ledger

logger = logging.getLogger(__name__)


class VenueKind(Enum):
    CONSTANT_PRODUCT = "constant_product"   # Uniswap V2/V3 style x*y=k
    STABLE_SWAP = "stable_swap"             # Curve style two-coin invariant
    AGGREGATOR = "aggregator"               # routes to the best child venue


@dataclass
class Pool:
    address: str
    token0: str
    token1: str
    fee_tier: int                # hundredths of a bp, 3000 = 0.30%
    amplification: int = 100     # stable-swap A coefficient
    paused: bool = False

    def __post_init__(self):
        self.address = Web3.to_checksum_address(self.address)
        self.token0 = Web3.to_checksum_address(self.token0)
        self.token1 = Web3.to_checksum_address(self.token1)
        if self.amplification < 1:
            raise ConfigurationError(f"Pool {self.address}: amplification must be >= 1")
        if not 0 <= self.fee_tier < FEE_TIER_DENOMINATOR:
            raise ConfigurationError(f"Pool {self.address}: fee tier {self.fee_tier} out of range")

    def has_pair(self, token_a: str, token_b: str) -> bool:
        return {self.token0, self.token1} == {
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b),
        }

    def reserves(self, ledger: Ledger, token_in: str) -> Tuple[int, int]:
        """(reserve_in, reserve_out) for a swap selling token_in"""
        token_in = Web3.to_checksum_address(token_in)
        token_out = self.token1 if token_in == self.token0 else self.token0
        return (
            ledger.balance_of(self.address, token_in),
            ledger.balance_of(self.address, token_out),
        )


# =============================================================================
# PRICING CURVES
# =============================================================================

def constant_product_out(reserve_in: int, reserve_out: int, amount_in: int, fee_tier: int) -> int:
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * (FEE_TIER_DENOMINATOR - fee_tier)
    return (amount_in_with_fee * reserve_out) // (
        reserve_in * FEE_TIER_DENOMINATOR + amount_in_with_fee
    )


def _stable_invariant(x: int, y: int, amp: int) -> int:
    s = x + y
    if s == 0:
        return 0
    ann = amp * 2
    d = s
    for _ in range(255):
        d_p = d * d // (x * 2) * d // (y * 2)
        prev = d
        d = (ann * s + d_p * 2) * d // ((ann - 1) * d + 3 * d_p)
        if abs(d - prev) <= 1:
            break
    return d


def _stable_y(x: int, d: int, amp: int) -> int:
    ann = amp * 2
    c = d * d // (x * 2) * d // (ann * 2)
    b = x + d // ann
    y = d
    for _ in range(255):
        prev = y
        y = (y * y + c) // (2 * y + b - d)
        if abs(y - prev) <= 1:
            break
    return y


def stable_swap_out(reserve_in: int, reserve_out: int, amount_in: int, fee_tier: int, amp: int) -> int:
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    d = _stable_invariant(reserve_in, reserve_out, amp)
    y = _stable_y(reserve_in + amount_in, d, amp)
    dy = reserve_out - y - 1
    if dy <= 0:
        return 0
    return dy - dy * fee_tier // FEE_TIER_DENOMINATOR


def pool_amount_out(ledger: Ledger, pool: Pool, kind: VenueKind, token_in: str, amount_in: int) -> int:
    reserve_in, reserve_out = pool.reserves(ledger, token_in)
    if kind is VenueKind.STABLE_SWAP:
        return stable_swap_out(reserve_in, reserve_out, amount_in, pool.fee_tier, pool.amplification)
    return constant_product_out(reserve_in, reserve_out, amount_in, pool.fee_tier)


# =============================================================================
# VENUE
# =============================================================================

class Venue:
    """
    One swap venue behind a router address

    Constant-product and stable-swap venues own pools directly. Aggregators own
    no pools and fill through whichever child venue quotes best.
    """

    def __init__(
        self,
        name: str,
        router: str,
        kind: VenueKind,
        pools: Optional[List[Pool]] = None,
        children: Optional[List["Venue"]] = None,
    ):
        self.name = name
        self.router = Web3.to_checksum_address(router)
        self.kind = kind
        self.pools: List[Pool] = list(pools or [])
        self.children: List[Venue] = list(children or [])

        if kind is VenueKind.AGGREGATOR and self.pools:
            raise ValueError("Aggregator venues route through children, not pools")
        if kind is not VenueKind.AGGREGATOR and self.children:
            raise ValueError(f"{kind.value} venues cannot have children")

    def __repr__(self) -> str:
        return f"Venue({self.name!r}, {self.kind.value}, {self.router})"

    def add_pool(self, pool: Pool) -> None:
        if self.kind is VenueKind.AGGREGATOR:
            raise ValueError("Aggregator venues route through children, not pools")
        self.pools.append(pool)

    def find_pool(self, token_in: str, token_out: str, fee_tier: int) -> Optional[Pool]:
        for pool in self.pools:
            if pool.fee_tier == fee_tier and pool.has_pair(token_in, token_out):
                return pool
        return None

    def _candidates(self, token_in: str, token_out: str, fee_tier: int) -> List[Tuple[Pool, VenueKind]]:
        if self.kind is VenueKind.AGGREGATOR:
            found = []
            for child in self.children:
                for pool in child.pools:
                    if pool.has_pair(token_in, token_out):
                        found.append((pool, child.kind))
            return found
        pool = self.find_pool(token_in, token_out, fee_tier)
        return [(pool, self.kind)] if pool else []

    def _best_fill(
        self,
        ledger: Ledger,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
    ) -> Tuple[Pool, int]:
        candidates = [
            (pool, kind) for pool, kind in self._candidates(token_in, token_out, fee_tier)
            if not pool.paused
        ]
        if not candidates:
            raise VenueUnavailable(
                f"{self.name}: no active pool for {token_in}->{token_out} (fee {fee_tier})"
            )
        best_pool, best_out = None, 0
        for pool, kind in candidates:
            out = pool_amount_out(ledger, pool, kind, token_in, amount_in)
            if out > best_out:
                best_pool, best_out = pool, out
        if best_pool is None:
            raise VenueUnavailable(f"{self.name}: insufficient liquidity for {amount_in}")
        return best_pool, best_out

    def quote(
        self,
        ledger: Ledger,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
    ) -> Tuple[int, int]:
        """(amount_out, fee_amount) without touching the ledger"""
        pool, amount_out = self._best_fill(ledger, token_in, token_out, amount_in, fee_tier)
        fee_amount = amount_in * pool.fee_tier // FEE_TIER_DENOMINATOR
        return amount_out, fee_amount

    def swap(
        self,
        ledger: Ledger,
        payer: str,
        recipient: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        fee_tier: int,
        deadline: float,
        now: float,
    ) -> int:
        """Exact-input single hop; pulls amount_in from payer via allowance"""
        if now > deadline:
            raise DeadlineExpired(f"{self.name}: transaction too old")

        pool, amount_out = self._best_fill(ledger, token_in, token_out, amount_in, fee_tier)
        if amount_out < min_amount_out:
            raise SlippageExceeded(
                f"{self.name}: too little received ({amount_out} < {min_amount_out})"
            )

        ledger.transfer_from(token_in, self.router, payer, pool.address, amount_in)
        ledger.transfer(token_out, pool.address, recipient, amount_out)

        logger.debug(f"{self.name} swap {amount_in} {token_in} -> {amount_out} {token_out}")
        return amount_out


# =============================================================================
# REGISTRY
# =============================================================================

class VenueRegistry:
    """Router address -> Venue"""

    def __init__(self, venues: Optional[List[Venue]] = None):
        self._venues: Dict[str, Venue] = {}
        for venue in venues or []:
            self.register(venue)

    def register(self, venue: Venue) -> None:
        self._venues[venue.router] = venue
        logger.info(f"Registered venue {venue.name} at {venue.router}")

    def deregister(self, router: str) -> None:
        venue = self._venues.pop(Web3.to_checksum_address(router), None)
        if venue is not None:
            logger.info(f"Deregistered venue {venue.name}")

    def get(self, router: str) -> Venue:
        try:
            return self._venues[Web3.to_checksum_address(router)]
        except (KeyError, ValueError):
            raise VenueUnavailable(f"Unknown venue {router}") from None

    def __contains__(self, router: str) -> bool:
        try:
            return Web3.to_checksum_address(router) in self._venues
        except ValueError:
            return False

    def __iter__(self) -> Iterator[Venue]:
        return iter(self._venues.values())

    def __len__(self) -> int:
        return len(self._venues)
