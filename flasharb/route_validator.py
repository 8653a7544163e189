# flasharb/route_validator.py
"""
Route Validator
Hop limits, address sanity, failing-route blacklist and deadline checks
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from eth_abi import encode
from web3 import Web3

from flasharb.config import (
    MAX_ROUTE_HOPS,
    ROUTE_BLACKLIST_COOLDOWN,
    ROUTE_FAILURE_THRESHOLD,
    ROUTE_MAX_DIVERGENCE_BPS,
    ZERO_ADDRESS,
)
from flasharb.errors import (
    DeadlineExpired,
    ExecutionError,
    InsufficientRealizedProfit,
    MalformedRoute,
    RouteBlacklisted,
    SwapError,
)
from flasharb.models import FailedRouteRecord, TradeRequest

logger = logging.getLogger(__name__)


def route_fingerprint(request: TradeRequest) -> str:
    """keccak256 over the ABI-encoded venues, tokens and fee tiers"""
    encoded = encode(
        ["address[]", "address[]", "uint24[]"],
        [
            [Web3.to_checksum_address(v) for v in request.venues],
            [Web3.to_checksum_address(t) for t in request.path],
            list(request.fee_tiers),
        ],
    )
    return Web3.to_hex(Web3.keccak(encoded))


def _is_valid_address(value: str) -> bool:
    return isinstance(value, str) and Web3.is_address(value) and value.lower() != ZERO_ADDRESS


@dataclass
class RouteFailurePolicy:
    """
    Which failures count against a route

    Swap failures always count. A realized-profit shortfall counts only when
    the realized route output fell short of the quoted output by more than
    max_divergence_bps.
    """
    max_divergence_bps: int = ROUTE_MAX_DIVERGENCE_BPS

    def counts(self, error: ExecutionError, quoted_out: int = 0, realized_out: int = 0) -> bool:
        if isinstance(error, SwapError):
            return True
        if isinstance(error, InsufficientRealizedProfit) and quoted_out > 0:
            shortfall = quoted_out - realized_out
            return shortfall * 10_000 > quoted_out * self.max_divergence_bps
        return False


class RouteValidator:
    """
    Validates routes and keeps the advisory failed-route table

    The failure table is the only aggregate allowed to change when a trade
    fails; entries are cleared only by reset_route().
    """

    def __init__(
        self,
        max_hops: int = MAX_ROUTE_HOPS,
        failure_threshold: int = ROUTE_FAILURE_THRESHOLD,
        cooldown: Optional[int] = ROUTE_BLACKLIST_COOLDOWN,
        policy: Optional[RouteFailurePolicy] = None,
    ):
        self.max_hops = max_hops
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown or None
        self.policy = policy if policy is not None else RouteFailurePolicy()
        self.failed_routes: Dict[str, FailedRouteRecord] = {}

    def is_blacklisted(self, fingerprint: str, now: float) -> bool:
        record = self.failed_routes.get(fingerprint)
        if record is None or record.failures < self.failure_threshold:
            return False
        if self.cooldown is not None and now - record.last_failure >= self.cooldown:
            return False
        return True

    def validate(self, request: TradeRequest, now: float) -> str:
        """Returns the route fingerprint; raises a ValidationError subclass"""
        request.validate_shape()

        if request.hop_count > self.max_hops:
            raise MalformedRoute(f"Route has {request.hop_count} hops, max is {self.max_hops}")

        for address in list(request.venues) + list(request.path):
            if not _is_valid_address(address):
                raise MalformedRoute(f"Invalid address in route: {address!r}")

        fingerprint = route_fingerprint(request)
        if self.is_blacklisted(fingerprint, now):
            record = self.failed_routes[fingerprint]
            raise RouteBlacklisted(
                f"Route {fingerprint[:10]} failed {record.failures} times"
            )

        if now > request.deadline:
            raise DeadlineExpired(f"Deadline {request.deadline} passed at {now}")

        return fingerprint

    def record_failure(self, fingerprint: str, now: float) -> FailedRouteRecord:
        record = self.failed_routes.setdefault(fingerprint, FailedRouteRecord(fingerprint))
        record.failures += 1
        record.last_failure = now
        if record.failures == self.failure_threshold:
            logger.warning(f"Route {fingerprint[:10]} blacklisted after {record.failures} failures")
        return record

    def reset_route(self, fingerprint: str) -> None:
        if self.failed_routes.pop(fingerprint, None) is not None:
            logger.info(f"Route {fingerprint[:10]} reset")
