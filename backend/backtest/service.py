"""BacktestService: evaluate the rule signal over labelled snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from core.models.signal import SignalSnapshot

from backtest.stats import BacktestResult, StatisticsCalculator

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30


class SnapshotSource(Protocol):
    """Protocol for reading labelled snapshots."""

    async def get_labeled(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[SignalSnapshot]: ...


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 date or datetime. Naive values are taken as UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_date(value: datetime | str | None, fallback: datetime) -> datetime:
    if value is None or value == "":
        return fallback
    if isinstance(value, str):
        return parse_datetime(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BacktestService:
    """Run the rule backtest for one symbol over a time window."""

    def __init__(
        self,
        source: SnapshotSource,
        calculator: StatisticsCalculator | None = None,
    ):
        self._source = source
        self._calculator = calculator or StatisticsCalculator()

    async def run(
        self,
        symbol: str = "BTC",
        start: datetime | str | None = None,
        end: datetime | str | None = None,
        now: datetime | None = None,
    ) -> BacktestResult:
        now = now or datetime.now(timezone.utc)
        symbol = (symbol or "BTC").upper()
        start_dt = resolve_date(start, now - timedelta(days=DEFAULT_LOOKBACK_DAYS))
        end_dt = resolve_date(end, now)

        if start_dt > end_dt:
            raise ValueError(f"start {start_dt.isoformat()} is after end {end_dt.isoformat()}")

        snapshots = await self._source.get_labeled(symbol, start_dt, end_dt)
        logger.info(
            f"[{symbol}] Backtesting {len(snapshots)} labelled snapshots "
            f"{start_dt:%Y-%m-%d %H:%M} → {end_dt:%Y-%m-%d %H:%M}"
        )

        return self._calculator.calculate(snapshots, symbol, start_dt, end_dt)
