"""Database connection and table definitions.

The market-data tables are filled by the dashboard's external collectors
and are only read here. cg_signal_dataset is owned by this service.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import get_settings

Base = declarative_base()


class SignalDatasetTable(Base):
    """Scored feature snapshots with forward-return labels."""

    __tablename__ = "cg_signal_dataset"

    id = Column(String(36), primary_key=True)
    symbol = Column(String(20), nullable=False)
    pair = Column(String(20), nullable=False)
    interval = Column(String(10), nullable=False, default="1h")
    generated_at = Column(DateTime(timezone=True), nullable=False)
    price_now = Column(Float, nullable=True)
    price_future = Column(Float, nullable=True)
    signal_rule = Column(String(10), nullable=False, default="NEUTRAL")
    signal_score = Column(Float, default=0.0)
    signal_confidence = Column(Float, default=0.0)
    signal_reasons = Column(JSON, nullable=True)
    features_payload = Column(JSON, nullable=True)
    ai_probability = Column(Float, nullable=True)
    ai_decision = Column(String(10), nullable=True)
    label_direction = Column(String(10), nullable=True)  # UP / DOWN / FLAT
    label_magnitude = Column(Float, nullable=True)  # Percent move
    label_horizon_hours = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        Index("idx_signal_dataset_symbol_time", "symbol", "generated_at"),
        Index("idx_signal_dataset_unlabeled", "price_future", "generated_at"),
    )


# ── Collector tables (read-only) ────────────────────────────────


class FundingRateTable(Base):
    __tablename__ = "cg_funding_rate_history"

    exchange = Column(String(30), primary_key=True)
    pair = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    time = Column(DateTime(timezone=True), primary_key=True)
    close = Column(Float, nullable=True)


class OpenInterestTable(Base):
    __tablename__ = "cg_open_interest_history"

    symbol = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    unit = Column(String(10), primary_key=True)  # usd / coin
    time = Column(DateTime(timezone=True), primary_key=True)
    close = Column(Float, nullable=True)


class WhaleTransferTable(Base):
    __tablename__ = "cg_whale_transfers"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False)
    block_timestamp = Column(BigInteger, nullable=False)
    amount_usd = Column(Float, nullable=True)
    from_address = Column(String(255), nullable=True)
    to_address = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_whale_transfers_symbol_ts", "symbol", "block_timestamp"),
    )


class EtfFlowTable(Base):
    __tablename__ = "cg_etf_flows"

    date = Column(Date, primary_key=True)
    flow_usd = Column(Float, nullable=True)


class FearGreedTable(Base):
    __tablename__ = "cg_fear_greed_index"

    time = Column(DateTime(timezone=True), primary_key=True)
    value = Column(Integer, nullable=False)
    value_classification = Column(String(30), nullable=True)


class SpotOrderbookTable(Base):
    __tablename__ = "cg_spot_orderbook"

    symbol = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    time = Column(DateTime(timezone=True), primary_key=True)
    aggregated_bids_usd = Column(Float, nullable=True)
    aggregated_asks_usd = Column(Float, nullable=True)
    aggregated_bids_quantity = Column(Float, nullable=True)
    aggregated_asks_quantity = Column(Float, nullable=True)


class SpotTakerVolumeTable(Base):
    __tablename__ = "cg_spot_taker_volume"

    symbol = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    time = Column(DateTime(timezone=True), primary_key=True)
    aggregated_buy_volume_usd = Column(Float, nullable=True)
    aggregated_sell_volume_usd = Column(Float, nullable=True)


class SpotPriceTable(Base):
    __tablename__ = "cg_spot_price_history"

    pair = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    time = Column(DateTime(timezone=True), primary_key=True)
    close = Column(Float, nullable=True)


class LiquidationTable(Base):
    __tablename__ = "cg_liquidation_history"

    symbol = Column(String(20), primary_key=True)
    interval = Column(String(10), primary_key=True)
    time = Column(DateTime(timezone=True), primary_key=True)
    aggregated_long_liquidation_usd = Column(Float, nullable=True)
    aggregated_short_liquidation_usd = Column(Float, nullable=True)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Read-mostly dashboard workload: a small pool is plenty
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create cg_signal_dataset. Collector tables are never created here."""
        async with self.engine.begin() as conn:
            await conn.run_sync(
                Base.metadata.create_all, tables=[SignalDatasetTable.__table__]
            )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
