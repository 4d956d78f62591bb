"""Labelled snapshot source for backtesting.

Reads cg_signal_dataset through the shared asyncpg pool.
No app/ dependency.
"""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from core.models.signal import LabelDirection, SignalSnapshot

logger = logging.getLogger(__name__)


class PostgresSnapshotSource:
    """Read labelled snapshots from PostgreSQL via shared asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get_labeled(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[SignalSnapshot]:
        """Fetch snapshots with a forward price in ascending time order."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT id, symbol, pair, interval, generated_at,
                          price_now, price_future, signal_rule,
                          signal_score, signal_confidence,
                          label_direction, label_magnitude, label_horizon_hours
                   FROM cg_signal_dataset
                   WHERE symbol=$1
                     AND price_future IS NOT NULL
                     AND generated_at >= $2 AND generated_at <= $3
                   ORDER BY generated_at ASC""",
                symbol.upper(),
                start,
                end,
            )

        return [self._row_to_snapshot(row) for row in rows]

    @staticmethod
    def _row_to_snapshot(row) -> SignalSnapshot:
        direction = row["label_direction"]
        return SignalSnapshot(
            id=row["id"],
            symbol=row["symbol"],
            pair=row["pair"],
            interval=row["interval"],
            generated_at=row["generated_at"],
            price_now=row["price_now"],
            price_future=row["price_future"],
            signal_rule=row["signal_rule"] or "",
            signal_score=row["signal_score"] or 0.0,
            signal_confidence=row["signal_confidence"] or 0.0,
            label_direction=LabelDirection(direction.upper()) if direction else None,
            label_magnitude=row["label_magnitude"],
            label_horizon_hours=row["label_horizon_hours"],
        )
