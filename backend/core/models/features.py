"""Feature snapshot models consumed by the signal engine.

Every numeric field is optional: a missing market-data source yields
None so that the engine skips the rules depending on it.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ExchangeFunding(BaseModel):
    latest: float | None = None
    mean: float | None = None
    std: float | None = None
    z_score: float | None = None
    trend_pct: float | None = None


class FundingFeatures(BaseModel):
    interval: str | None = None
    heat_score: float | None = None
    consensus: float | None = None
    trend_pct: float | None = None
    exchanges: dict[str, ExchangeFunding] = Field(default_factory=dict)


class OpenInterestFeatures(BaseModel):
    latest: float | None = None
    pct_change_6h: float | None = None
    pct_change_24h: float | None = None
    ema_6: float | None = None


class WhaleFlows(BaseModel):
    inflow_usd: float = 0.0
    outflow_usd: float = 0.0
    count_inflow: int = 0
    count_outflow: int = 0
    net_usd: float = 0.0


class WhaleFeatures(BaseModel):
    window_24h: WhaleFlows = Field(default_factory=WhaleFlows)
    window_7d: WhaleFlows = Field(default_factory=WhaleFlows)
    pressure_score: float | None = None
    cex_ratio: float | None = None
    sample_24h: int = 0
    sample_7d: int = 0
    is_stale: bool = True


class EtfFeatures(BaseModel):
    latest_flow: float | None = None
    ma7: float | None = None
    ma30: float | None = None
    streak: int | None = None


class SentimentFeatures(BaseModel):
    value: int | None = None
    classification: str | None = None
    ma7: float | None = None
    ma30: float | None = None


class OrderbookFeatures(BaseModel):
    bid_depth: float | None = None
    ask_depth: float | None = None
    imbalance: float | None = None
    bid_quantity: float | None = None
    ask_quantity: float | None = None


class TakerFlowFeatures(BaseModel):
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    buy_ratio: float | None = None


class PriceFeatures(BaseModel):
    last_close: float | None = None
    pct_change_24h: float | None = None
    volatility_24h: float | None = None


class MicrostructureFeatures(BaseModel):
    orderbook: OrderbookFeatures = Field(default_factory=OrderbookFeatures)
    taker_flow: TakerFlowFeatures = Field(default_factory=TakerFlowFeatures)
    price: PriceFeatures = Field(default_factory=PriceFeatures)


class LiquidationTotals(BaseModel):
    longs: float | None = None
    shorts: float | None = None


class LiquidationFeatures(BaseModel):
    latest: LiquidationTotals | None = None
    sum_24h: LiquidationTotals | None = None


class FeatureSet(BaseModel):
    """Complete point-in-time feature snapshot for one symbol."""

    symbol: str
    pair: str
    interval: str
    generated_at: datetime
    funding: FundingFeatures = Field(default_factory=FundingFeatures)
    open_interest: OpenInterestFeatures = Field(default_factory=OpenInterestFeatures)
    whales: WhaleFeatures = Field(default_factory=WhaleFeatures)
    etf: EtfFeatures = Field(default_factory=EtfFeatures)
    sentiment: SentimentFeatures = Field(default_factory=SentimentFeatures)
    microstructure: MicrostructureFeatures = Field(default_factory=MicrostructureFeatures)
    liquidations: LiquidationFeatures = Field(default_factory=LiquidationFeatures)
