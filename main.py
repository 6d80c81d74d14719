#!/usr/bin/env python3
"""
Swap Engine - Command Line Entry Point
======================================

Inspect tokens, fees and quotes, or trade from a local keypair.

Usage:
    # Token metadata and selected venue
    python main.py token <mint>

    # Current priority fee levels and the dynamic fee for a trade
    python main.py fees --value 2.5 --urgency 7

    # Preview a buy of 0.1 SOL / a sell of 1000 tokens
    python main.py quote <mint> 0.1
    python main.py quote <mint> 1000 --sell --decimals 6

    # Trade (signs with a Solana CLI keypair file)
    python main.py buy <mint> 0.1 --keypair ~/.config/solana/id.json
    python main.py sell <mint> 1000 --keypair ~/.config/solana/id.json
"""
import asyncio
import argparse
import logging
import sys

from swapengine.core.config import EngineConfig
from swapengine.core.errors import TradeError
from swapengine.engine import Engine, build_engine
from swapengine.execution.priority_fee import format_priority_fee
from swapengine.execution.venue import TradeOptions
from swapengine.models import ExecutionResult, TradeSide, VenueKind
from swapengine.wallet import KeypairSigner


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )


async def show_token(engine: Engine, mint: str) -> int:
    info = await engine.router.get_token_info(mint)
    if info is None:
        print(f"\nNo market data for {mint}\n")
        return 1

    venue = engine.router.venue_for(info, engine.config.prefer_pumpportal)

    print(f"\n{'='*60}")
    print(f"  {info.symbol} - {info.name}")
    print(f"{'='*60}")
    print(f"  Price:        ${info.price_usd:.10f}")
    print(f"  Price (SOL):  {info.price_native:.10f}")
    print(f"  Liquidity:    ${info.liquidity:,.0f}")
    print(f"  Volume 24h:   ${info.volume_24h:,.0f}")
    print(f"  Change 24h:   {info.price_change_24h:+.2f}%")
    print(f"  DEX:          {info.dex_name}")
    print(f"  Pump.fun:     {'yes' if info.is_pump_fun else 'no'}"
          f"{' (bonding curve)' if info.on_bonding_curve else ''}")
    print(f"  Venue:        {venue.value}")
    print(f"{'='*60}\n")
    return 0


async def show_fees(engine: Engine, value_sol: float, urgency: int) -> int:
    fees = await engine.fees.get_priority_fees()
    dynamic = await engine.fees.calculate_dynamic_fee(value_sol, urgency)

    print(f"\n{'='*60}")
    print(f"  PRIORITY FEES ({fees.source})")
    print(f"{'='*60}")
    for name, value in fees.to_dict().items():
        if name in ('timestamp', 'source'):
            continue
        print(f"  {name:12}  {value:>10,}  ({format_priority_fee(value)})")
    print(f"\n  Dynamic fee for {value_sol} SOL at urgency {urgency}: {dynamic:,}")
    print(f"{'='*60}\n")
    return 0


async def show_quote(engine: Engine, mint: str, amount: float, sell: bool, decimals) -> int:
    side = TradeSide.SELL if sell else TradeSide.BUY
    try:
        quote = await engine.router.get_quote(mint, amount, side, decimals=decimals)
    except (TradeError, ValueError) as e:
        print(f"\nQuote failed: {e}\n")
        return 1

    print(f"\n{'='*60}")
    print(f"  {side.value.upper()} QUOTE via {quote.venue.value}")
    print(f"{'='*60}")
    print(f"  In:           {quote.in_amount:,}")
    print(f"  Out:          {quote.out_amount:,}")
    print(f"  Min out:      {quote.min_out_amount:,}  ({quote.slippage_bps} bps)")
    print(f"  Impact:       {quote.price_impact_pct:.4f}%")
    print(f"  Route:        {quote.route}")
    print(f"{'='*60}\n")
    return 0


def print_result(result: ExecutionResult) -> int:
    print(f"\n{'='*60}")
    if result.success:
        print(f"  SUCCESS via {result.venue.value if result.venue else '?'} ({result.tier})")
        print(f"  Signature:    {result.signature}")
        print(f"  Output:       {result.output_amount:,} (min {result.min_output_amount:,})")
    else:
        print(f"  FAILED: {result.error_category or 'Transaction failed'}")
        print(f"  Error:        {result.error}")
    print(f"  Latency:      {result.latency_ms:.0f}ms")
    print(f"{'='*60}\n")
    return 0 if result.success else 1


def trade_options(args, config: EngineConfig) -> TradeOptions:
    return TradeOptions(
        slippage_bps=args.slippage or config.default_slippage_bps,
        priority_fee=args.priority_fee,
        urgency=args.urgency,
        force_venue=VenueKind(args.venue) if args.venue else None,
        use_jito=not args.no_jito,
    )


async def run_command(args) -> int:
    config = EngineConfig.from_env()
    engine = build_engine(config)

    async with engine:
        if args.command == "token":
            return await show_token(engine, args.mint)

        if args.command == "fees":
            urgency = config.default_urgency if args.urgency is None else args.urgency
            return await show_fees(engine, args.value, urgency)

        if args.command == "quote":
            return await show_quote(engine, args.mint, args.amount, args.sell, args.decimals)

        signer = KeypairSigner.from_file(args.keypair)
        opts = trade_options(args, config)

        if args.command == "buy":
            result = await engine.router.buy(args.mint, args.amount, signer, opts)
            return print_result(result)

        decimals = args.decimals
        if decimals is None:
            balance = await engine.rpc.get_token_balance(signer.public_key, args.mint)
            if balance is None:
                print(f"\nNo {args.mint} balance in {signer.public_key}\n")
                return 1
            decimals = balance.decimals
        result = await engine.router.sell(args.mint, args.amount, decimals, signer, opts)
        return print_result(result)


def add_trade_args(parser: argparse.ArgumentParser):
    parser.add_argument("--keypair", required=True, help="Solana CLI keypair JSON file")
    parser.add_argument("--slippage", type=int, default=None, help="Slippage in bps")
    parser.add_argument("--priority-fee", type=int, default=None, help="Priority fee (default: dynamic)")
    parser.add_argument("--urgency", type=int, default=None, help="Fee urgency 1-10 (default: engine default_urgency)")
    parser.add_argument("--venue", choices=[v.value for v in VenueKind], help="Force a venue")
    parser.add_argument("--no-jito", action="store_true", help="Skip the Jito bundle tier")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Solana Swap Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py token <mint>
  python main.py fees --value 2.5 --urgency 7
  python main.py quote <mint> 0.1
  python main.py buy <mint> 0.1 --keypair ~/.config/solana/id.json
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="Show token metadata and venue")
    token.add_argument("mint")

    fees = sub.add_parser("fees", help="Show priority fee levels")
    fees.add_argument("--value", type=float, default=1.0, help="Trade value in SOL (default: 1)")
    fees.add_argument("--urgency", type=int, default=None, help="Urgency 1-10 (default: engine default_urgency)")

    quote = sub.add_parser("quote", help="Preview a quote")
    quote.add_argument("mint")
    quote.add_argument("amount", type=float, help="SOL for buys, tokens for sells")
    quote.add_argument("--sell", action="store_true")
    quote.add_argument("--decimals", type=int, default=None)

    buy = sub.add_parser("buy", help="Buy a token with SOL")
    buy.add_argument("mint")
    buy.add_argument("amount", type=float, help="SOL to spend")
    add_trade_args(buy)

    sell = sub.add_parser("sell", help="Sell a token for SOL")
    sell.add_argument("mint")
    sell.add_argument("amount", type=float, help="Tokens to sell")
    sell.add_argument("--decimals", type=int, default=None, help="Token decimals (default: from chain)")
    add_trade_args(sell)

    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
