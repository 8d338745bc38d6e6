"""Command-line interface for the portfolio valuation engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .logging_setup import configure_logging
from .models import PortfolioSnapshot
from .services import (
    PortfolioMonitor,
    build_network_report,
    build_quote_report,
    build_snapshot_report,
)
from .sources.discovery import validate_wallet_address


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="portfolio-valuation",
        description="Multi-venue DeFi portfolio valuation",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    snapshot_parser = sub.add_parser("snapshot", help="Compute one portfolio snapshot")
    snapshot_parser.add_argument("wallet", nargs="?", default=None, help="Wallet address (overrides config)")

    watch_parser = sub.add_parser("watch", help="Continuously refresh the portfolio")
    watch_parser.add_argument("wallet", nargs="?", default=None, help="Wallet address (overrides config)")
    watch_parser.add_argument(
        "--interval",
        "-i",
        type=int,
        default=None,
        help="Refresh interval in seconds (overrides config)",
    )

    sub.add_parser("network", help="Show chain status")

    price_parser = sub.add_parser("price", help="Resolve the USD price of one token")
    price_parser.add_argument("address", help="Token contract address")

    return parser


def _wallet(args: argparse.Namespace, config: AppConfig) -> str:
    wallet = getattr(args, "wallet", None) or config.wallet
    if not wallet:
        raise ValueError("No wallet address given on the command line or in config")
    return validate_wallet_address(wallet)


def _print_snapshot(monitor: PortfolioMonitor, snapshot: PortfolioSnapshot) -> None:
    print(build_snapshot_report(snapshot, monitor.display_holdings_usd()))
    print()


async def _snapshot(monitor: PortfolioMonitor, wallet: str) -> None:
    await monitor.connect(wallet, start_polling=False)
    try:
        await monitor.poll_discovery()
        snapshot = await monitor.run_cycle()
        if snapshot is not None:
            _print_snapshot(monitor, snapshot)
        if monitor.discovery_failures:
            print("⚠️ Token discovery unavailable, showing configured tokens only")
    finally:
        await monitor.disconnect()


async def _price(monitor: PortfolioMonitor, address: str) -> None:
    tokens = await monitor.registry.resolve([address])
    token = tokens.get(address.lower())
    if token is None:
        print(f"{address}: unknown token")
        return
    quote = await monitor.resolver.resolve(token)
    print(build_quote_report(token.symbol, quote))


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = PortfolioMonitor(config)

    if args.command == "snapshot":
        await _snapshot(monitor, _wallet(args, config))
    elif args.command == "watch":
        monitor.subscribe(lambda snapshot: _print_snapshot(monitor, snapshot))
        await monitor.run_continuous(_wallet(args, config), args.interval)
    elif args.command == "network":
        print(build_network_report(await monitor.check_network()))
    elif args.command == "price":
        await _price(monitor, args.address)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
