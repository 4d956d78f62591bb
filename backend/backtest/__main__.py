"""CLI entry point for the signal backtest (``signal:backtest``).

Completely independent of app/. Reads labelled snapshots from
cg_signal_dataset through backtest's own asyncpg pool.

Usage:
    python -m backtest --symbol BTC --days 30
    python -m backtest --symbol ETH --start 2025-06-01 --end 2025-06-30
    signal-backtest --symbol BTC --start 2025-06-01T00:00:00Z -o result.json
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone

from backtest.config import get_backtest_settings
from backtest.report import NO_DATA_MESSAGE, ReportFormatter
from backtest.service import BacktestService, SnapshotSource, parse_datetime
from backtest.storage.database import BacktestDatabase
from backtest.storage.snapshot_source import PostgresSnapshotSource

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "BTC"
DEFAULT_DAYS = 30


def parse_start(value: str) -> datetime:
    """Parse an ISO-8601 start date/datetime."""
    try:
        return parse_datetime(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date: {value} (expected ISO-8601, e.g. 2025-01-01 or 2025-01-01T00:00:00Z)"
        )


def parse_end(value: str) -> datetime:
    """Parse an ISO-8601 end; a bare date covers the full day."""
    dt = parse_start(value)
    if "T" not in value and " " not in value.strip():
        dt = dt.replace(hour=23, minute=59, second=59)
    return dt


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number of days: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"--days must be positive, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="signal-backtest",
        description="Run rule-based signal backtest over cg_signal_dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m backtest --symbol BTC
  python -m backtest --symbol ETH --days 90
  python -m backtest --symbol BTC --start 2025-06-01 --end 2025-06-30 -o btc.json
        """,
    )
    parser.add_argument(
        "--symbol",
        type=str,
        default=None,
        help=f"Symbol to evaluate (default: BACKTEST_DEFAULT_SYMBOL or {DEFAULT_SYMBOL})",
    )
    parser.add_argument(
        "--start",
        type=parse_start,
        default=None,
        help="ISO start date",
    )
    parser.add_argument(
        "--end",
        type=parse_end,
        default=None,
        help="ISO end date (default: now)",
    )
    parser.add_argument(
        "--days",
        type=positive_int,
        default=None,
        help=f"Lookback days if start not provided (default: BACKTEST_DEFAULT_DAYS or {DEFAULT_DAYS})",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    args = parser.parse_args(argv)

    if args.start and args.end and args.start > args.end:
        parser.error("--start must not be after --end")

    return args


def resolve_window(
    args: argparse.Namespace, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """Apply the --days fallback: start defaults to end minus the lookback."""
    end = args.end or now or datetime.now(timezone.utc)
    start = args.start or end - timedelta(days=args.days or DEFAULT_DAYS)
    return start, end


async def cmd_run_backtest(
    args: argparse.Namespace,
    source: SnapshotSource,
    now: datetime | None = None,
) -> int:
    """Run a backtest and print the metrics table."""
    start, end = resolve_window(args, now)
    service = BacktestService(source)

    result = await service.run(symbol=args.symbol or DEFAULT_SYMBOL, start=start, end=end)

    if result.total == 0:
        print(NO_DATA_MESSAGE)
        return 0

    ReportFormatter.print_console(result)

    if args.output:
        ReportFormatter.save_json(result, args.output)

    return 0


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    settings = get_backtest_settings()
    args.symbol = args.symbol or settings.default_symbol
    args.days = args.days or settings.default_days

    db = BacktestDatabase(settings.database_url)
    await db.init()

    try:
        return await cmd_run_backtest(args, PostgresSnapshotSource(db.pool))
    except ValueError as e:
        logger.error(f"Backtest failed: {e}")
        return 1
    finally:
        await db.close()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
