"""Command-line interface for the Blend P&L engine."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .logging_setup import configure_logging
from .models import ValuationMode
from .services import PerformanceService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="blend-pnl",
        description="Profit and loss for Blend lending and backstop positions",
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
    parser.add_argument(
        "--live-prices",
        action="store_true",
        help="Value historical flows at today's prices instead of prices on the day",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("report", help="Compute and print P&L for every account")

    watch_parser = sub.add_parser("watch", help="Recompute P&L periodically")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Refresh interval in minutes (overrides config)",
    )

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    mode = ValuationMode.LIVE if args.live_prices else ValuationMode.HISTORICAL
    service = PerformanceService(config, mode=mode)

    if args.command == "report":
        reports = await service.report()
        if not reports:
            sys.exit(1)
        print("\n\n".join(reports))
    elif args.command == "watch":
        await service.run_continuous(args.interval)
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

    asyncio.run(_run(args))
