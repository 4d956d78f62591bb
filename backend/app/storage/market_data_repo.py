"""Read-only access to the collector's market-data tables.

Every query returns rows newest-first and bounded by `until`, so that
features built for a past instant never see later data.
"""

from datetime import date, datetime

from sqlalchemy import select

from core.models.market import (
    EtfFlowPoint,
    FearGreedPoint,
    FundingRatePoint,
    LiquidationPoint,
    OpenInterestPoint,
    OrderbookPoint,
    PricePoint,
    TakerVolumePoint,
    WhaleTransfer,
)
from app.storage.database import (
    Database,
    EtfFlowTable,
    FearGreedTable,
    FundingRateTable,
    LiquidationTable,
    OpenInterestTable,
    SpotOrderbookTable,
    SpotPriceTable,
    SpotTakerVolumeTable,
    WhaleTransferTable,
    get_database,
)


class MarketDataRepository:
    """Repository for the derivatives / spot / on-chain collector tables."""

    def __init__(self, db: Database | None = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    async def _fetch(self, stmt) -> list:
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def latest_funding_rates(
        self,
        pair: str,
        interval: str,
        exchanges: list[str] | None = None,
        limit: int = 200,
        until: datetime | None = None,
    ) -> list[FundingRatePoint]:
        """Funding-rate closes for all (or the given) exchanges.

        `limit` applies per exchange.
        """
        stmt = select(FundingRateTable).where(
            FundingRateTable.pair == pair.upper(),
            FundingRateTable.interval == interval,
        )
        if exchanges:
            stmt = stmt.where(FundingRateTable.exchange.in_(exchanges))
        if until is not None:
            stmt = stmt.where(FundingRateTable.time <= until)
        # Collector tracks at most ~30 exchanges per pair
        stmt = stmt.order_by(FundingRateTable.time.desc()).limit(limit * 30)

        rows = await self._fetch(stmt)

        per_exchange: dict[str, int] = {}
        points = []
        for row in rows:
            seen = per_exchange.get(row.exchange, 0)
            if seen >= limit:
                continue
            per_exchange[row.exchange] = seen + 1
            points.append(
                FundingRatePoint(exchange=row.exchange, time=row.time, close=row.close)
            )
        return points

    async def latest_open_interest(
        self,
        symbol: str,
        interval: str,
        unit: str = "usd",
        limit: int = 240,
        until: datetime | None = None,
    ) -> list[OpenInterestPoint]:
        stmt = select(OpenInterestTable).where(
            OpenInterestTable.symbol == symbol.upper(),
            OpenInterestTable.interval == interval,
            OpenInterestTable.unit == unit,
        )
        if until is not None:
            stmt = stmt.where(OpenInterestTable.time <= until)
        stmt = stmt.order_by(OpenInterestTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [OpenInterestPoint(time=r.time, close=r.close) for r in rows]

    async def latest_whale_transfers(
        self,
        symbol: str,
        since_ts: int | None = None,
        limit: int = 2000,
        until_ts: int | None = None,
    ) -> list[WhaleTransfer]:
        """Whale transfers between unix timestamps `since_ts` and `until_ts`."""
        stmt = select(WhaleTransferTable).where(
            WhaleTransferTable.symbol == symbol.upper()
        )
        if since_ts is not None:
            stmt = stmt.where(WhaleTransferTable.block_timestamp >= since_ts)
        if until_ts is not None:
            stmt = stmt.where(WhaleTransferTable.block_timestamp <= until_ts)
        stmt = stmt.order_by(WhaleTransferTable.block_timestamp.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [
            WhaleTransfer(
                block_timestamp=r.block_timestamp,
                amount_usd=r.amount_usd,
                from_address=r.from_address,
                to_address=r.to_address,
            )
            for r in rows
        ]

    async def latest_etf_flows(
        self, limit: int = 60, until: datetime | None = None
    ) -> list[EtfFlowPoint]:
        stmt = select(EtfFlowTable)
        if until is not None:
            stmt = stmt.where(EtfFlowTable.date <= _as_date(until))
        stmt = stmt.order_by(EtfFlowTable.date.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [EtfFlowPoint(date=r.date, flow_usd=r.flow_usd) for r in rows]

    async def fear_greed_history(
        self, limit: int = 60, until: datetime | None = None
    ) -> list[FearGreedPoint]:
        stmt = select(FearGreedTable)
        if until is not None:
            stmt = stmt.where(FearGreedTable.time <= until)
        stmt = stmt.order_by(FearGreedTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [
            FearGreedPoint(
                time=r.time, value=r.value, value_classification=r.value_classification
            )
            for r in rows
        ]

    async def latest_spot_orderbook(
        self,
        symbol: str,
        interval: str = "1m",
        limit: int = 120,
        until: datetime | None = None,
    ) -> list[OrderbookPoint]:
        stmt = select(SpotOrderbookTable).where(
            SpotOrderbookTable.symbol == symbol.upper(),
            SpotOrderbookTable.interval == interval,
        )
        if until is not None:
            stmt = stmt.where(SpotOrderbookTable.time <= until)
        stmt = stmt.order_by(SpotOrderbookTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [
            OrderbookPoint(
                time=r.time,
                aggregated_bids_usd=r.aggregated_bids_usd,
                aggregated_asks_usd=r.aggregated_asks_usd,
                aggregated_bids_quantity=r.aggregated_bids_quantity,
                aggregated_asks_quantity=r.aggregated_asks_quantity,
            )
            for r in rows
        ]

    async def latest_spot_taker_volume(
        self,
        symbol: str,
        interval: str,
        limit: int = 120,
        until: datetime | None = None,
    ) -> list[TakerVolumePoint]:
        stmt = select(SpotTakerVolumeTable).where(
            SpotTakerVolumeTable.symbol == symbol.upper(),
            SpotTakerVolumeTable.interval == interval,
        )
        if until is not None:
            stmt = stmt.where(SpotTakerVolumeTable.time <= until)
        stmt = stmt.order_by(SpotTakerVolumeTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [
            TakerVolumePoint(
                time=r.time,
                aggregated_buy_volume_usd=r.aggregated_buy_volume_usd,
                aggregated_sell_volume_usd=r.aggregated_sell_volume_usd,
            )
            for r in rows
        ]

    async def latest_spot_prices(
        self,
        pair: str,
        interval: str,
        limit: int = 120,
        until: datetime | None = None,
    ) -> list[PricePoint]:
        stmt = select(SpotPriceTable).where(
            SpotPriceTable.pair == pair.upper(),
            SpotPriceTable.interval == interval,
        )
        if until is not None:
            stmt = stmt.where(SpotPriceTable.time <= until)
        stmt = stmt.order_by(SpotPriceTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [PricePoint(time=r.time, close=r.close) for r in rows]

    async def latest_liquidations(
        self,
        symbol: str,
        interval: str,
        limit: int = 120,
        until: datetime | None = None,
    ) -> list[LiquidationPoint]:
        stmt = select(LiquidationTable).where(
            LiquidationTable.symbol == symbol.upper(),
            LiquidationTable.interval == interval,
        )
        if until is not None:
            stmt = stmt.where(LiquidationTable.time <= until)
        stmt = stmt.order_by(LiquidationTable.time.desc()).limit(limit)

        rows = await self._fetch(stmt)
        return [
            LiquidationPoint(
                time=r.time,
                aggregated_long_liquidation_usd=r.aggregated_long_liquidation_usd,
                aggregated_short_liquidation_usd=r.aggregated_short_liquidation_usd,
            )
            for r in rows
        ]


def _as_date(value: datetime | date) -> date:
    return value.date() if isinstance(value, datetime) else value
