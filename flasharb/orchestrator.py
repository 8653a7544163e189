# flasharb/orchestrator.py
"""
Flash-Loan Orchestrator

Drives one arbitrage as a single atomic unit:

    admission -> route validation -> projected profit -> flash loan
      -> (lender callback) legs -> realized profit -> repay -> distribute
      -> statistics

Every balance change happens inside Ledger.atomic(); any ExecutionError
restores the ledger and the circuit breaker, and only a failure record is
kept. The lender callback runs nested inside request_loan(), so no other
execution can interleave; a reentrancy flag rejects nested requests.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from web3 import Web3

from flasharb.circuit_breaker import CircuitBreaker
from flasharb.config import MEV_PROTECTION_BLOCKS
from flasharb.distributor import ProfitDistributor
from flasharb.dex.venues import Venue, VenueRegistry
from flasharb.errors import (
    CircuitBreakerTripped,
    DeadlineExpired,
    ExecutionError,
    GasPriceTooHigh,
    InsufficientBalance,
    InsufficientRealizedProfit,
    LoanCallbackMissing,
    MevProtectionActive,
    OrphanCallback,
    ReentrantExecution,
    RepaymentShortfall,
    Unauthorized,
    VenueUnavailable,
)
from flasharb.events import (
    CIRCUIT_BREAKER_STATE_CHANGED,
    ROUTE_FAILED,
    TRADE_FAILED,
    TRADE_STARTED,
    TRADE_SUCCEEDED,
    Event,
    EventLog,
)
from flasharb.executor import SwapExecutor, min_output_for
from flasharb.flash_loan import VaultLender, decode_loan_data, encode_loan_data
from flasharb.gas import GasMeter
from flasharb.ledger import Ledger
from flasharb.models import (
    CircuitState,
    ContinuationPhase,
    ExecutionContext,
    LoanGrant,
    TradeRequest,
    TradeResult,
)
from flasharb.profitability import ProfitabilityGuard
from flasharb.quote_engine import PoolQuoteOracle, Quote, QuoteOracle, expected_route_output
from flasharb.route_validator import RouteValidator
from flasharb.telemetry import StatisticsSink, TradeHistory

logger = logging.getLogger(__name__)


@dataclass
class Continuation:
    """Tagged state of the one in-flight trade, handed to the lender by id"""
    trade_id: int
    request: TradeRequest
    caller: str
    fingerprint: str
    gas: GasMeter = field(default_factory=GasMeter)
    quotes: List[Quote] = field(default_factory=list)
    phase: ContinuationPhase = ContinuationPhase.PENDING
    grant: Optional[LoanGrant] = None
    context: Optional[ExecutionContext] = None


class FlashLoanOrchestrator:
    """
    Root of the execution engine

    `address` is the receiver that holds borrowed funds during a trade.
    `owner` is the only account allowed to use the administrative setters.
    """

    def __init__(
        self,
        address: str,
        owner: str,
        ledger: Ledger,
        lender: VaultLender,
        venues: VenueRegistry,
        clock,
        quote_oracle: Optional[QuoteOracle] = None,
        swap_executor: Optional[SwapExecutor] = None,
        route_validator: Optional[RouteValidator] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        profitability: Optional[ProfitabilityGuard] = None,
        distributor: Optional[ProfitDistributor] = None,
        statistics: Optional[StatisticsSink] = None,
        history: Optional[TradeHistory] = None,
        events: Optional[EventLog] = None,
        mev_protection_blocks: int = MEV_PROTECTION_BLOCKS,
    ):
        self.address = Web3.to_checksum_address(address)
        self.owner = Web3.to_checksum_address(owner)
        self.ledger = ledger
        self.lender = lender
        self.venues = venues
        self.clock = clock

        # explicit None checks: an empty TradeHistory is falsy
        if quote_oracle is None:
            quote_oracle = PoolQuoteOracle(ledger, venues, clock)
        if swap_executor is None:
            swap_executor = SwapExecutor(ledger, venues, self.address, clock)
        self.quote_oracle = quote_oracle
        self.swap_executor = swap_executor
        self.route_validator = route_validator if route_validator is not None else RouteValidator()
        self.circuit_breaker = circuit_breaker if circuit_breaker is not None else CircuitBreaker(now=clock.now())
        self.profitability = profitability if profitability is not None else ProfitabilityGuard()
        self.distributor = distributor if distributor is not None else ProfitDistributor()
        self.statistics = statistics if statistics is not None else StatisticsSink()
        self.history = history if history is not None else TradeHistory()
        self.events = events if events is not None else EventLog()
        self.mev_protection_blocks = mev_protection_blocks

        self.authorized: Set[str] = {self.owner}
        self._last_execution_block: Dict[str, int] = {}
        self._in_progress = False
        self._pending: Optional[Continuation] = None
        self._unit_events: List[Event] = []

        self.statistics.set_volatility_index(self.profitability.volatility_index)

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def request_execution(
        self,
        request: TradeRequest,
        caller: str,
        gas_price: Optional[int] = None,
    ) -> TradeResult:
        """Execute one trade atomically; always returns the recorded TradeResult"""
        if self._in_progress:
            raise ReentrantExecution("Execution requested while another is in flight")

        self._in_progress = True
        try:
            return self._run(request, caller, gas_price)
        finally:
            self._in_progress = False
            self._pending = None
            self._unit_events = []

    def _run(self, request: TradeRequest, caller: str, gas_price: Optional[int]) -> TradeResult:
        trade_id = self.history.next_id()
        breaker_snapshot = self.circuit_breaker.snapshot()

        try:
            with self.ledger.atomic():
                try:
                    continuation = self._execute(trade_id, request, caller, gas_price)
                except BaseException:
                    self.circuit_breaker.restore(breaker_snapshot)
                    if self._pending is not None:
                        self._pending.phase = ContinuationPhase.ABORTED
                    raise
        except ExecutionError as e:
            return self._record_failure(trade_id, request, e)

        return self._record_success(continuation)

    def _emit(self, name: str, **data) -> None:
        self._unit_events.append(Event(name, self.clock.now(), data))

    # =========================================================================
    # STEPS 1-4: BEFORE THE LOAN
    # =========================================================================

    def _check_preconditions(self, request: TradeRequest, caller: str, gas_price: Optional[int], now: float) -> str:
        """Returns the checksummed caller"""
        request.validate_shape()

        if now > request.deadline:
            raise DeadlineExpired(f"Deadline {request.deadline} passed at {now}")

        if not Web3.is_address(caller):
            raise Unauthorized(f"Caller {caller!r} is not an address")
        caller = Web3.to_checksum_address(caller)
        if caller not in self.authorized:
            raise Unauthorized(f"{caller} is not authorized to execute trades")

        if request.mev_protection:
            last = self._last_execution_block.get(caller)
            block = self.clock.block_number()
            if last is not None and block - last < self.mev_protection_blocks:
                raise MevProtectionActive(
                    f"Last execution at block {last}, now {block}; "
                    f"need {self.mev_protection_blocks} blocks"
                )

        if request.max_gas_price is not None and gas_price is not None:
            if gas_price > request.max_gas_price:
                raise GasPriceTooHigh(f"Gas price {gas_price} > max {request.max_gas_price}")
        return caller

    def _execute(
        self,
        trade_id: int,
        request: TradeRequest,
        caller: str,
        gas_price: Optional[int],
    ) -> Continuation:
        now = self.clock.now()
        caller = self._check_preconditions(request, caller, gas_price, now)

        self._emit(
            TRADE_STARTED,
            trade_id=trade_id,
            caller=caller,
            loan_token=request.loan_token,
            loan_amount=request.loan_amount,
        )

        # Step 1: admission
        previous = self.circuit_breaker.current
        state = self.circuit_breaker.admit(request.loan_amount, now)
        if state is not previous:
            self._emit(CIRCUIT_BREAKER_STATE_CHANGED, previous=previous.value, state=state.value)
        if state is CircuitState.EMERGENCY:
            raise CircuitBreakerTripped(
                f"Circuit breaker in emergency (volume {self.circuit_breaker.state.current_volume})"
            )

        # Step 2: route validation
        fingerprint = self.route_validator.validate(request, now)
        continuation = Continuation(trade_id, request, caller, fingerprint)
        self._pending = continuation

        # Step 3: projected profit
        loan = request.loan_amount
        try:
            continuation.quotes = self.quote_oracle.quote_route(request.legs(), loan)
        except VenueUnavailable as e:
            e.phase = "projection"
            raise
        lender_fee = self.lender.flash_fee(request.loan_token, loan)
        expected_profit = expected_route_output(continuation.quotes) - loan - lender_fee
        self.profitability.check_projected(expected_profit, loan, request.min_profit_bps)

        # Step 4: loan; the lender calls on_loan_received() before returning
        continuation.gas.charge_flash_loan()
        self.lender.request_loan(
            self,
            [request.loan_token],
            [loan],
            encode_loan_data(trade_id, fingerprint),
        )
        if continuation.phase is not ContinuationPhase.COMMITTED:
            raise LoanCallbackMissing(f"Lender returned without completing trade {trade_id}")
        return continuation

    # =========================================================================
    # STEPS 5-10: INSIDE THE LOAN
    # =========================================================================

    def on_loan_received(
        self,
        sender: str,
        tokens: List[str],
        amounts: List[int],
        fees: List[int],
        data: bytes,
    ) -> None:
        """Lender callback; runs nested inside request_loan()"""
        if Web3.to_checksum_address(sender) != self.lender.address:
            raise Unauthorized(f"Loan callback from unexpected sender {sender}")

        pending = self._pending
        if pending is None or pending.phase is not ContinuationPhase.PENDING:
            raise OrphanCallback("Loan callback with no outstanding request")
        trade_id, fingerprint = decode_loan_data(data)
        if trade_id != pending.trade_id or fingerprint != pending.fingerprint:
            raise OrphanCallback(f"Loan callback for unknown trade {trade_id}")

        pending.phase = ContinuationPhase.EXECUTING
        request = pending.request

        # Step 5: second deadline check
        now = self.clock.now()
        if now > request.deadline:
            raise DeadlineExpired(f"Deadline {request.deadline} passed inside loan at {now}")

        # Step 6: snapshot
        grant = LoanGrant(list(tokens), list(amounts), list(fees))
        pending.grant = grant
        token = request.loan_token
        ctx = ExecutionContext(trade_id=trade_id, started_at=now)
        ctx.starting_balances[token] = (
            self.ledger.balance_of(self.address, token) - grant.amount_of(token)
        )
        pending.context = ctx

        # Step 7: legs
        final_amount = self._execute_legs(pending, grant.amount_of(token))

        # Step 8: realized profit against a freshly computed threshold
        loan = grant.amount_of(token)
        ending = self.ledger.balance_of(self.address, token)
        ctx.realized_profit = ending - ctx.starting_balances[token] - loan - grant.fee_of(token)
        try:
            check = self.profitability.check_realized(
                ctx.realized_profit, loan, request.min_profit_bps
            )
        except InsufficientRealizedProfit as e:
            e.step = ctx.step
            raise
        ctx.min_profit = check.min_profit

        # Step 9: repayment
        for t in dict.fromkeys(grant.tokens):
            try:
                self.ledger.transfer(t, self.address, self.lender.address, grant.total_due(t))
            except InsufficientBalance as e:
                raise RepaymentShortfall(str(e), step=ctx.step) from e
            pending.gas.charge_transfer()

        # Step 10: distribution
        ctx.distributed = self.distributor.distribute(
            self.ledger, self.address, token, ctx.realized_profit, pending.caller
        )
        pending.gas.charge_transfer(sum(1 for v in ctx.distributed.values() if v))

        logger.info(
            f"[{trade_id}] Route closed at {final_amount}, profit {ctx.realized_profit} "
            f"(min {ctx.min_profit})"
        )
        pending.phase = ContinuationPhase.COMMITTED

    def _execute_legs(self, pending: Continuation, amount: int) -> int:
        request = pending.request
        ctx = pending.context
        for i, leg in enumerate(request.legs()):
            if i == 0:
                # final profit check is authoritative for the first leg
                min_out = 0
            else:
                quoted = pending.quotes[i]
                expected = quoted.amount_out * amount // quoted.amount_in if quoted.amount_in else 0
                min_out = min_output_for(expected, request.max_slippage_bps)
            try:
                amount = self.swap_executor.swap(
                    leg.venue,
                    leg.token_in,
                    leg.token_out,
                    amount,
                    min_out,
                    leg.fee_tier,
                    request.deadline,
                    gas=pending.gas,
                )
            except ExecutionError as e:
                e.step = i + 1
                raise
            ctx.leg_outputs.append(amount)
            ctx.step = i + 1
        return amount

    # =========================================================================
    # STEP 11: RECORDING
    # =========================================================================

    @staticmethod
    def _pair(request: TradeRequest) -> Tuple[str, str]:
        path = list(request.path or [])
        return (path[0] if path else "", path[1] if len(path) > 1 else "")

    def _record_success(self, continuation: Continuation) -> TradeResult:
        request = continuation.request
        ctx = continuation.context
        token_in, token_out = self._pair(request)

        result = TradeResult(
            trade_id=continuation.trade_id,
            success=True,
            loan_amount=request.loan_amount,
            profit=ctx.realized_profit,
            gas_used=continuation.gas.used,
            timestamp=self.clock.now(),
            token_in=token_in,
            token_out=token_out,
            route_fingerprint=continuation.fingerprint,
            step=ctx.step,
            phase="committed",
            mev_protected=request.mev_protection,
        )

        self.statistics.record_success(result, request.loan_token)
        self.statistics.set_volatility_index(self.profitability.volatility_index)
        self.history.append(result)
        self._last_execution_block[continuation.caller] = self.clock.block_number()

        self.events.publish_all(self._unit_events)
        self.events.publish(Event(TRADE_SUCCEEDED, result.timestamp, {
            "trade_id": result.trade_id,
            "profit": result.profit,
            "gas_used": result.gas_used,
            "route": list(request.venues),
            "path": list(request.path),
            "distributed": dict(ctx.distributed),
        }))
        logger.info(f"[{result.trade_id}] ✅ Trade committed: profit {result.profit}, gas {result.gas_used}")
        return result

    def _record_failure(self, trade_id: int, request: TradeRequest, error: ExecutionError) -> TradeResult:
        now = self.clock.now()
        pending = self._pending
        fingerprint = pending.fingerprint if pending else ""
        token_in, token_out = self._pair(request)

        if pending is not None:
            quoted_out = expected_route_output(pending.quotes)
            ctx = pending.context
            realized_out = ctx.leg_outputs[-1] if ctx and ctx.leg_outputs else 0
            if self.route_validator.policy.counts(error, quoted_out, realized_out):
                record = self.route_validator.record_failure(fingerprint, now)
                self.events.publish(Event(ROUTE_FAILED, now, {
                    "fingerprint": fingerprint,
                    "failures": record.failures,
                    "reason": error.reason,
                }))

        result = TradeResult(
            trade_id=trade_id,
            success=False,
            loan_amount=request.loan_amount,
            profit=0,
            gas_used=pending.gas.used if pending else GasMeter().used,
            timestamp=now,
            token_in=token_in,
            token_out=token_out,
            route_fingerprint=fingerprint,
            reason=error.reason,
            step=error.step or 0,
            phase=error.phase,
            message=str(error),
            mev_protected=request.mev_protection,
        )

        self.statistics.record_failure(result)
        self.history.append(result)
        self.events.publish(Event(TRADE_FAILED, now, {
            "trade_id": trade_id,
            "reason": result.reason,
            "step": result.step,
            "phase": result.phase,
            "message": result.message,
        }))
        logger.warning(f"[{trade_id}] ❌ Trade aborted at {result.phase} (step {result.step}): {error}")
        return result

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def _only_owner(self, caller: str) -> None:
        if self._in_progress:
            raise ReentrantExecution("Administrative call during an execution")
        if not Web3.is_address(caller) or Web3.to_checksum_address(caller) != self.owner:
            raise Unauthorized(f"{caller} is not the owner")

    def authorize(self, caller: str, account: str) -> None:
        self._only_owner(caller)
        self.authorized.add(Web3.to_checksum_address(account))

    def revoke(self, caller: str, account: str) -> None:
        self._only_owner(caller)
        self.authorized.discard(Web3.to_checksum_address(account))

    def set_profit_parameters(
        self,
        caller: str,
        base_bps: Optional[int] = None,
        volatility_multiplier: Optional[int] = None,
        max_bps: Optional[int] = None,
    ) -> None:
        self._only_owner(caller)
        self.profitability.set_parameters(base_bps, volatility_multiplier, max_bps)

    def set_volatility_index(self, caller: str, volatility_index: int) -> None:
        self._only_owner(caller)
        self.profitability.set_volatility_index(volatility_index)
        self.statistics.set_volatility_index(volatility_index)

    def update_circuit_breaker(self, caller: str, **thresholds) -> None:
        self._only_owner(caller)
        self.circuit_breaker.update_thresholds(**thresholds)

    def force_circuit_state(self, caller: str, state: CircuitState) -> None:
        self._only_owner(caller)
        previous = self.circuit_breaker.current
        self.circuit_breaker.force_state(state)
        if state is not previous:
            self.events.publish(Event(CIRCUIT_BREAKER_STATE_CHANGED, self.clock.now(), {
                "previous": previous.value,
                "state": state.value,
                "forced": True,
            }))

    def clear_circuit_override(self, caller: str) -> None:
        self._only_owner(caller)
        self.circuit_breaker.clear_override()

    def reset_route(self, caller: str, fingerprint: str) -> None:
        self._only_owner(caller)
        self.route_validator.reset_route(fingerprint)

    def register_venue(self, caller: str, venue: Venue) -> None:
        self._only_owner(caller)
        self.venues.register(venue)

    def deregister_venue(self, caller: str, router: str) -> None:
        self._only_owner(caller)
        self.venues.deregister(router)

    def set_profit_recipients(self, caller: str, recipients: List[Tuple[str, int]]) -> None:
        self._only_owner(caller)
        self.distributor.set_recipients(recipients)
