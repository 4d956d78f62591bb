"""Market-data rows read from the dashboard's collector tables.

All models are immutable and carry floats: these values feed statistics,
not order prices, so Decimal precision is not needed.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class FundingRatePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    exchange: str
    time: datetime
    close: float | None


class OpenInterestPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    close: float | None


class WhaleTransfer(BaseModel):
    """Large on-chain transfer with wallet labels."""

    model_config = ConfigDict(frozen=True)

    block_timestamp: int  # Unix seconds
    amount_usd: float | None
    from_address: str | None = None
    to_address: str | None = None


class EtfFlowPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    flow_usd: float | None


class FearGreedPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    value: int
    value_classification: str | None = None


class OrderbookPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    aggregated_bids_usd: float | None
    aggregated_asks_usd: float | None
    aggregated_bids_quantity: float | None = None
    aggregated_asks_quantity: float | None = None


class TakerVolumePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    aggregated_buy_volume_usd: float | None
    aggregated_sell_volume_usd: float | None


class PricePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    close: float | None


class LiquidationPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    aggregated_long_liquidation_usd: float | None
    aggregated_short_liquidation_usd: float | None
