# flasharb/main.py
"""
Flash Arbitrage Simulation Runner

Run with: python -m flasharb.main scenario.json [--rpc-url URL]

Builds an in-memory market (tokens, pools, venues, vault liquidity) from a
JSON scenario, executes each trade through the orchestrator and prints the
results and statistics. With --rpc-url the trades are quoted on a live node
instead and unsigned flash-loan transactions are printed. No transaction is
ever signed or broadcast.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from web3 import Web3

from flasharb.chain import ManualClock, Web3Clock
from flasharb.circuit_breaker import CircuitBreaker
from flasharb.config import (
    CB_MAX_TRADES_PER_PERIOD,
    CB_MAX_VOLUME_PER_PERIOD,
    CB_PERIOD_SECONDS,
    CB_WARNING_FRACTION,
    DEFAULT_SLIPPAGE_BPS,
    LENDER_FEE_BPS,
    LOG_LEVEL,
    RPC_URL,
    SAVE_TRADE_HISTORY,
    TRADE_DB_PATH,
)
from flasharb.dex.routers import UniswapV3Quoter
from flasharb.dex.venues import Pool, Venue, VenueKind, VenueRegistry
from flasharb.errors import ExecutionError
from flasharb.flash_loan import VaultLender, build_flash_loan_tx, encode_loan_data
from flasharb.gas import gas_cost_wei
from flasharb.ledger import Ledger
from flasharb.models import TradeRequest, TradeResult
from flasharb.orchestrator import FlashLoanOrchestrator
from flasharb.quote_engine import expected_route_output
from flasharb.storage import TradeJournal
from flasharb.telemetry import TradeHistory

logger = logging.getLogger(__name__)

LOG_DIR = Path(__file__).parent.parent / "logs"


def setup_logging(level: str = LOG_LEVEL, log_to_file: bool = True) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        LOG_DIR.mkdir(exist_ok=True)
        handlers.append(
            logging.FileHandler(LOG_DIR / f"flasharb_{datetime.now().strftime('%Y%m%d')}.log")
        )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=handlers,
    )


# =============================================================================
# SCENARIO LOADING
# =============================================================================

def _resolve(name: str, table: Dict[str, str]) -> str:
    return table.get(name, name)


def build_engine(scenario: dict, journal: Optional[TradeJournal] = None) -> FlashLoanOrchestrator:
    """Build ledger, market and orchestrator from a scenario dict"""
    tokens: Dict[str, str] = scenario.get("tokens", {})
    clock_cfg = scenario.get("clock", {})
    clock = ManualClock(**clock_cfg) if clock_cfg else ManualClock()
    ledger = Ledger()

    # Venues: plain venues first, aggregators reference them by name
    by_name: Dict[str, Venue] = {}
    registry = VenueRegistry()
    for entry in scenario.get("venues", []):
        kind = VenueKind(entry.get("kind", VenueKind.CONSTANT_PRODUCT.value))
        if kind is VenueKind.AGGREGATOR:
            continue
        venue = Venue(entry["name"], entry["router"], kind)
        for p in entry.get("pools", []):
            pool = Pool(
                address=p["address"],
                token0=_resolve(p["token0"], tokens),
                token1=_resolve(p["token1"], tokens),
                fee_tier=p.get("fee_tier", 3000),
                amplification=p.get("amplification", 100),
                paused=p.get("paused", False),
            )
            reserve0, reserve1 = p.get("reserves", [0, 0])
            ledger.mint(pool.address, pool.token0, reserve0)
            ledger.mint(pool.address, pool.token1, reserve1)
            venue.add_pool(pool)
        by_name[venue.name] = venue
        registry.register(venue)

    for entry in scenario.get("venues", []):
        if entry.get("kind") == VenueKind.AGGREGATOR.value:
            children = [by_name[c] for c in entry.get("children", [])]
            venue = Venue(entry["name"], entry["router"], VenueKind.AGGREGATOR, children=children)
            by_name[venue.name] = venue
            registry.register(venue)

    lender_cfg = scenario.get("lender", {})
    lender_kwargs = {"fee_bps": lender_cfg.get("fee_bps", LENDER_FEE_BPS)}
    if "address" in lender_cfg:
        lender_kwargs["address"] = lender_cfg["address"]
    lender = VaultLender(ledger, **lender_kwargs)
    for symbol, amount in lender_cfg.get("liquidity", {}).items():
        ledger.mint(lender.address, _resolve(symbol, tokens), amount)

    engine_cfg = scenario["engine"]
    breaker_cfg = scenario.get("circuit_breaker", {})
    breaker = CircuitBreaker(
        max_volume_per_period=breaker_cfg.get("max_volume_per_period", CB_MAX_VOLUME_PER_PERIOD),
        max_trades_per_period=breaker_cfg.get("max_trades_per_period", CB_MAX_TRADES_PER_PERIOD),
        period_duration=breaker_cfg.get("period_duration", CB_PERIOD_SECONDS),
        warning_fraction=breaker_cfg.get("warning_fraction", CB_WARNING_FRACTION),
        now=clock.now(),
    )

    orchestrator = FlashLoanOrchestrator(
        address=engine_cfg["address"],
        owner=engine_cfg["owner"],
        ledger=ledger,
        lender=lender,
        venues=registry,
        clock=clock,
        circuit_breaker=breaker,
        history=TradeHistory(journal),
    )
    for account in engine_cfg.get("authorized", []):
        orchestrator.authorize(orchestrator.owner, account)
    if "recipients" in scenario:
        orchestrator.set_profit_recipients(
            orchestrator.owner, [(addr, bps) for addr, bps in scenario["recipients"]]
        )
    if "volatility_index" in scenario:
        orchestrator.set_volatility_index(orchestrator.owner, scenario["volatility_index"])
    return orchestrator


def build_requests(scenario: dict, engine: FlashLoanOrchestrator, clock=None) -> List[TradeRequest]:
    clock = clock if clock is not None else engine.clock
    tokens: Dict[str, str] = scenario.get("tokens", {})
    routers = {v.name: v.router for v in engine.venues}
    requests = []
    for t in scenario.get("trades", []):
        requests.append(TradeRequest(
            venues=[_resolve(v, routers) for v in t["venues"]],
            path=[_resolve(p, tokens) for p in t["path"]],
            fee_tiers=t.get("fee_tiers", [3000] * len(t["venues"])),
            loan_amount=t["loan_amount"],
            min_profit_bps=t.get("min_profit_bps", 0),
            max_slippage_bps=t.get("max_slippage_bps", DEFAULT_SLIPPAGE_BPS),
            deadline=clock.now() + t.get("deadline_in", 60),
            mev_protection=t.get("mev_protection", False),
            max_gas_price=t.get("max_gas_price"),
        ))
    return requests


def run_scenario(scenario: dict, journal: Optional[TradeJournal] = None) -> List[TradeResult]:
    engine = build_engine(scenario, journal)
    caller = scenario["engine"].get("caller", engine.owner)
    gas_price = scenario.get("gas_price")
    results = []
    for request in build_requests(scenario, engine):
        result = engine.request_execution(request, caller, gas_price=gas_price)
        results.append(result)
        if result.success and gas_price:
            cost = gas_cost_wei(result.gas_used, gas_price)
            logger.info(f"[{result.trade_id}] Gas cost: {Web3.from_wei(cost, 'gwei')} gwei")
        engine.clock.advance(seconds=12, blocks=1)
    logger.info(engine.statistics.summary())
    return results


# =============================================================================
# LIVE DRY RUN
# =============================================================================

def plan_live(scenario: dict, w3: Web3) -> List[dict]:
    """
    Quote each scenario trade through QuoterV2 on a live node and build (never
    sign or send) the vault flashLoan transaction that would fund it.
    Scenario routers and tokens must be real deployments.
    """
    engine = build_engine(scenario)
    clock = Web3Clock(w3)
    oracle = UniswapV3Quoter(w3, clock=clock)
    sender = Web3.to_checksum_address(scenario["engine"].get("caller", engine.owner))
    gas_price = scenario.get("gas_price") or w3.eth.gas_price
    nonce = w3.eth.get_transaction_count(sender)

    plans = []
    for trade_id, request in enumerate(build_requests(scenario, engine, clock), start=1):
        plan = {"trade_id": trade_id, "loan_amount": request.loan_amount}
        try:
            fingerprint = engine.route_validator.validate(request, clock.now())
            quotes = oracle.quote_route(request.legs(), request.loan_amount)
        except ExecutionError as e:
            logger.warning(f"[{trade_id}] Not planned: {e.reason}: {e}")
            plan["error"] = f"{e.reason}: {e}"
            plans.append(plan)
            continue

        lender_fee = engine.lender.flash_fee(request.loan_token, request.loan_amount)
        plan["route_fingerprint"] = fingerprint
        plan["expected_profit"] = expected_route_output(quotes) - request.loan_amount - lender_fee
        plan["tx"] = build_flash_loan_tx(
            w3,
            engine.address,
            [request.loan_token],
            [request.loan_amount],
            encode_loan_data(trade_id, fingerprint),
            sender,
            gas_price,
            nonce,
            vault=engine.lender.address,
        )
        nonce += 1
        plans.append(plan)
    return plans


def format_plan(plan: dict) -> str:
    if "error" in plan:
        return f"#{plan['trade_id']} ❌ {plan['error']}"
    return f"#{plan['trade_id']} 📝 expected_profit={plan['expected_profit']} nonce={plan['tx'].get('nonce')}"


def format_result(result: TradeResult) -> str:
    if result.success:
        return f"#{result.trade_id} ✅ profit={result.profit} gas={result.gas_used}"
    return f"#{result.trade_id} ❌ {result.reason} at {result.phase} (step {result.step}): {result.message}"


# =============================================================================
# CLI
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Simulate flash-loan arbitrage executions")
    parser.add_argument("scenario", help="Path to a JSON scenario file")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    parser.add_argument("--no-log-file", action="store_true", help="Log to stdout only")
    parser.add_argument("--journal", default=TRADE_DB_PATH if SAVE_TRADE_HISTORY else None,
                        help="SQLite file to persist trade results")
    parser.add_argument("--rpc-url", nargs="?", const=RPC_URL, default=None,
                        help="Quote trades on a live node and print unsigned flash-loan txs")
    args = parser.parse_args(argv)

    setup_logging(args.log_level, log_to_file=not args.no_log_file)

    with open(args.scenario) as f:
        scenario = json.load(f)

    if args.rpc_url is not None:
        if not args.rpc_url:
            parser.error("--rpc-url given without a URL and RPC_URL is not set")
        plans = plan_live(scenario, Web3(Web3.HTTPProvider(args.rpc_url)))
        for plan in plans:
            print(format_plan(plan))
        return 0 if all("error" not in p for p in plans) else 1

    journal = TradeJournal(args.journal) if args.journal else None
    try:
        results = run_scenario(scenario, journal)
    finally:
        if journal is not None:
            journal.close()

    for result in results:
        print(format_result(result))
    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
