#!/usr/bin/env python3
"""Command-line entry point for the CLM rebalance harness"""

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from typing import List, Optional

from clmharness.config import Settings, get_settings
from clmharness.core.pools import Dialect, price_impact_percent
from clmharness.core.rebalance import Preflight, default_trade_scenarios
from clmharness.core.rebalance.suite import RebalanceSuite
from clmharness.core.recovery import UnrecoverableError, error_context
from clmharness.core.reporting import RunReporter
from clmharness.core.swap import SwapRequest
from clmharness.harness import Harness
from clmharness.logging_config import setup_logging


def print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def cli_pool_state(settings: Settings, pool: str, dialect: Optional[str]) -> int:
    async with Harness.from_settings(settings, with_signer=False) as harness:
        state = await harness.pool_reader.read_pool_state(pool, Dialect.parse(dialect) if dialect else None)
    print_json(state.to_dict())
    return 0 if state.ok else 1


async def cli_tick_range(settings: Settings, vault: str, strategy: Optional[str]) -> int:
    async with Harness.from_settings(settings, with_signer=False) as harness:
        resolution = await harness.range_resolver.resolve_with_diagnostics(vault, strategy)
    print_json({
        "strategy": resolution.strategy,
        "range": resolution.tick_range.to_dict() if resolution.tick_range else None,
        "probes": [p.to_dict() for p in resolution.probes],
    })
    return 0 if resolution.tick_range else 1


async def cli_swap(
    settings: Settings,
    dex: str,
    symbol_in: str,
    symbol_out: str,
    amount: Decimal,
    slippage_bps: Optional[int],
    routing_param: Optional[str],
) -> int:
    async with Harness.from_settings(settings) as harness:
        deployment = harness.deployment
        token_in = await harness.erc20.meta(deployment.token_address(symbol_in), symbol_in)
        request = SwapRequest(
            dex=dex,
            token_in=token_in.address,
            token_out=deployment.token_address(symbol_out),
            amount_in=token_in.to_raw(amount),
            routing_param=int(routing_param) if routing_param and routing_param.isdigit() else routing_param,
            slippage_bps=slippage_bps,
        )
        result = await harness.swapper.swap(request)
    print_json(result.to_dict())
    return 0


async def cli_suite(
    settings: Settings,
    vaults: Optional[List[str]],
    trades: bool,
    rebalance: bool,
    journey: bool = False,
) -> int:
    async with Harness.from_settings(settings) as harness:
        if journey:
            suite_name = "clm-journey"
        else:
            suite_name = "clm-rebalance" if rebalance else "clm-trades"
        reporter = RunReporter(suite_name, settings.network_name)
        scenarios = (
            default_trade_scenarios(settings.trade_small_amount, settings.trade_large_amount)
            if trades
            else []
        )
        suite = RebalanceSuite(
            harness.orchestrator,
            harness.deployment,
            harness.reader,
            reporter,
            trade_scenarios=scenarios,
            run_rebalance=rebalance,
            preflight=Preflight(harness.rpc, harness.executor.address, settings.chain_id or None),
            journey_deposit=settings.journey_deposit_amount if journey else None,
        )
        try:
            await suite.run(vaults)
        finally:
            json_path, md_path = reporter.finalize(settings.results_dir)

    summary = reporter.summary
    print(f"\n📊 {summary.passed} passed, {summary.failed} failed, {summary.skipped} skipped")
    print(f"   {json_path}\n   {md_path}")
    return 1 if summary.failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CLM vault rebalance harness")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("pool-state", help="Read normalized pool state")
    p.add_argument("pool")
    p.add_argument("--dialect", choices=[d.value for d in Dialect], default=None)

    p = sub.add_parser("tick-range", help="Resolve a vault's active tick range")
    p.add_argument("vault")
    p.add_argument("--strategy", default=None, help="Expected strategy address fallback")

    p = sub.add_parser("swap", help="Execute one exact-input swap")
    p.add_argument("dex")
    p.add_argument("token_in", help="Token symbol from the deployment file")
    p.add_argument("token_out", help="Token symbol from the deployment file")
    p.add_argument("amount", type=Decimal, help="Amount in whole tokens")
    p.add_argument("--slippage-bps", type=int, default=None)
    p.add_argument("--routing-param", default=None, help="Fee tier or pool deployer address")

    p = sub.add_parser("price-impact", help="Percent change between two price samples")
    p.add_argument("before", type=int)
    p.add_argument("after", type=int)

    for name, help_text in (
        ("rebalance", "Run the rebalance scenario"),
        ("trade", "Run trade scenarios"),
        ("journey", "Deposit, run trade scenarios, then withdraw"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--vault", action="append", default=None, help="Vault name (repeatable)")

    p = sub.add_parser("full", help="Run trade scenarios then the rebalance scenario")
    p.add_argument("--vault", action="append", default=None, help="Vault name (repeatable)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    if args.command == "price-impact":
        print(price_impact_percent(args.before, args.after))
        return 0

    if args.command == "pool-state":
        coro = cli_pool_state(settings, args.pool, args.dialect)
    elif args.command == "tick-range":
        coro = cli_tick_range(settings, args.vault, args.strategy)
    elif args.command == "swap":
        coro = cli_swap(
            settings, args.dex, args.token_in, args.token_out, args.amount,
            args.slippage_bps, args.routing_param,
        )
    else:
        coro = cli_suite(
            settings,
            args.vault,
            trades=args.command in ("trade", "journey", "full"),
            rebalance=args.command in ("rebalance", "full"),
            journey=args.command == "journey",
        )

    try:
        return asyncio.run(coro)
    except UnrecoverableError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        print_json(error_context(e).to_dict())
        return 2


if __name__ == "__main__":
    sys.exit(main())
