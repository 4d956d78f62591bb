"""Repository for the cg_signal_dataset table."""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from core.models.signal import LabelDirection, SignalSnapshot
from app.storage.database import Database, SignalDatasetTable, get_database

logger = logging.getLogger(__name__)


class SignalSnapshotRepository:
    """Persist and query scored signal snapshots."""

    def __init__(self, db: Database | None = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    async def save(self, snapshot: SignalSnapshot) -> None:
        """Insert a snapshot, refreshing the score if it already exists."""
        async with self.db.session() as session:
            stmt = insert(SignalDatasetTable).values(
                id=snapshot.id,
                symbol=snapshot.symbol,
                pair=snapshot.pair,
                interval=snapshot.interval,
                generated_at=snapshot.generated_at,
                price_now=snapshot.price_now,
                price_future=snapshot.price_future,
                signal_rule=snapshot.signal_rule,
                signal_score=snapshot.signal_score,
                signal_confidence=snapshot.signal_confidence,
                signal_reasons=snapshot.signal_reasons,
                features_payload=snapshot.features_payload,
                ai_probability=snapshot.ai_probability,
                ai_decision=snapshot.ai_decision,
                label_direction=snapshot.label_direction.value if snapshot.label_direction else None,
                label_magnitude=snapshot.label_magnitude,
                label_horizon_hours=snapshot.label_horizon_hours,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "price_now": stmt.excluded.price_now,
                    "signal_rule": stmt.excluded.signal_rule,
                    "signal_score": stmt.excluded.signal_score,
                    "signal_confidence": stmt.excluded.signal_confidence,
                    "signal_reasons": stmt.excluded.signal_reasons,
                    "features_payload": stmt.excluded.features_payload,
                    "ai_probability": stmt.excluded.ai_probability,
                    "ai_decision": stmt.excluded.ai_decision,
                },
            )
            await session.execute(stmt)

    async def update_label(
        self,
        snapshot_id: str,
        price_future: float,
        direction: LabelDirection,
        magnitude: float,
        horizon_hours: int,
    ) -> None:
        async with self.db.session() as session:
            stmt = (
                update(SignalDatasetTable)
                .where(SignalDatasetTable.id == snapshot_id)
                .values(
                    price_future=price_future,
                    label_direction=direction.value,
                    label_magnitude=magnitude,
                    label_horizon_hours=horizon_hours,
                )
            )
            await session.execute(stmt)

    async def get_labeled(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[SignalSnapshot]:
        """Labelled snapshots in [start, end], oldest first."""
        async with self.db.session() as session:
            stmt = (
                select(SignalDatasetTable)
                .where(
                    SignalDatasetTable.symbol == symbol.upper(),
                    SignalDatasetTable.price_future.is_not(None),
                    SignalDatasetTable.generated_at >= start,
                    SignalDatasetTable.generated_at <= end,
                )
                .order_by(SignalDatasetTable.generated_at.asc())
            )
            result = await session.execute(stmt)
            return [self._row_to_snapshot(row) for row in result.scalars().all()]

    async def get_unlabeled(self, before: datetime, limit: int = 500) -> list[SignalSnapshot]:
        """Labelable snapshots (entry price, no forward price) generated at or before `before`."""
        async with self.db.session() as session:
            stmt = (
                select(SignalDatasetTable)
                .where(
                    SignalDatasetTable.price_future.is_(None),
                    SignalDatasetTable.price_now.is_not(None),
                    SignalDatasetTable.generated_at <= before,
                )
                .order_by(SignalDatasetTable.generated_at.asc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [self._row_to_snapshot(row) for row in result.scalars().all()]

    async def get_recent(
        self, symbol: str | None = None, limit: int = 100
    ) -> list[SignalSnapshot]:
        """Most recent snapshots, newest first."""
        async with self.db.session() as session:
            stmt = select(SignalDatasetTable)
            if symbol:
                stmt = stmt.where(SignalDatasetTable.symbol == symbol.upper())
            stmt = stmt.order_by(SignalDatasetTable.generated_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [self._row_to_snapshot(row) for row in result.scalars().all()]

    @staticmethod
    def _row_to_snapshot(row: SignalDatasetTable) -> SignalSnapshot:
        return SignalSnapshot(
            id=row.id,
            symbol=row.symbol,
            pair=row.pair,
            interval=row.interval,
            generated_at=row.generated_at,
            price_now=row.price_now,
            price_future=row.price_future,
            signal_rule=row.signal_rule,
            signal_score=row.signal_score or 0.0,
            signal_confidence=row.signal_confidence or 0.0,
            signal_reasons=row.signal_reasons or [],
            features_payload=row.features_payload or {},
            ai_probability=row.ai_probability,
            ai_decision=row.ai_decision,
            label_direction=LabelDirection(row.label_direction.upper()) if row.label_direction else None,
            label_magnitude=row.label_magnitude,
            label_horizon_hours=row.label_horizon_hours,
        )
