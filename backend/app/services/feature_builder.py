"""Point-in-time feature builder.

Reads the collector tables through MarketDataRepository and condenses
them into a FeatureSet for the signal engine. Every repository call is
bounded by `as_of`, so snapshots can be rebuilt for past instants.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from itertools import groupby

from core.indicators import (
    ema,
    mean,
    percent_change_from_index,
    range_pct,
    stddev,
    zscore,
)
from core.models.features import (
    EtfFeatures,
    ExchangeFunding,
    FeatureSet,
    FundingFeatures,
    LiquidationFeatures,
    LiquidationTotals,
    MicrostructureFeatures,
    OpenInterestFeatures,
    OrderbookFeatures,
    PriceFeatures,
    SentimentFeatures,
    TakerFlowFeatures,
    WhaleFeatures,
    WhaleFlows,
)
from core.models.market import FundingRatePoint, WhaleTransfer
from app.storage.market_data_repo import MarketDataRepository

logger = logging.getLogger(__name__)

# Substrings identifying exchange-owned wallet labels
EXCHANGE_KEYWORDS = (
    "binance",
    "coinbase",
    "kraken",
    "bitfinex",
    "bitstamp",
    "bybit",
    "okx",
    "okex",
    "deribit",
    "kucoin",
    "mexc",
    "huobi",
    "gate",
    "gemini",
)

FUNDING_Z_WINDOW = 60
FUNDING_TREND_WINDOW = 12
WHALE_LOOKBACK_DAYS = 7


def is_exchange_label(label: str | None) -> bool:
    if not label:
        return False
    label = label.lower()
    return any(keyword in label for keyword in EXCHANGE_KEYWORDS)


def aggregate_whale_flows(rows: list[WhaleTransfer]) -> WhaleFlows:
    """Sum transfers into (inflow) and out of (outflow) exchange wallets."""
    flows = WhaleFlows()
    for row in rows:
        amount = row.amount_usd or 0.0
        if is_exchange_label(row.to_address):
            flows.inflow_usd += amount
            flows.count_inflow += 1
        elif is_exchange_label(row.from_address):
            flows.outflow_usd += amount
            flows.count_outflow += 1
    flows.net_usd = flows.inflow_usd - flows.outflow_usd
    return flows


def flow_streak(flows: list[float | None]) -> int:
    """Signed count of consecutive same-sign flows, newest first."""
    if not flows or not flows[0]:
        return 0
    positive = flows[0] > 0
    count = 0
    for value in flows:
        if value is None or value == 0 or (value > 0) != positive:
            break
        count += 1
    return count if positive else -count


def funding_trend(closes: list[float | None]) -> float | None:
    """Percent change of the newest window mean against the previous window."""
    recent = mean(closes[:FUNDING_TREND_WINDOW])
    prior = mean(closes[FUNDING_TREND_WINDOW:FUNDING_TREND_WINDOW * 2])
    if recent is None or prior is None or prior == 0.0:
        return None
    # Funding flips sign; measure against the magnitude of the prior level
    return (recent - prior) / abs(prior) * 100


class FeatureBuilder:
    """Build complete feature snapshots ready for scoring."""

    def __init__(self, market_data: MarketDataRepository):
        self.market_data = market_data

    async def build(
        self,
        symbol: str = "BTC",
        pair: str = "BTCUSDT",
        interval: str = "1h",
        as_of: datetime | None = None,
    ) -> FeatureSet:
        now = as_of or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        symbol = symbol.upper()
        pair = pair.upper()

        (
            funding,
            open_interest,
            whales,
            etf,
            sentiment,
            micro,
            liquidations,
        ) = await asyncio.gather(
            self.build_funding_features(pair, now),
            self.build_open_interest_features(symbol, interval, now),
            self.build_whale_features(symbol, now),
            self.build_etf_features(now),
            self.build_sentiment_features(now),
            self.build_microstructure_features(symbol, pair, interval, now),
            self.build_liquidation_features(symbol, interval, now),
        )

        logger.debug(
            f"[{symbol}] Features built at {now:%Y-%m-%d %H:%M} "
            f"(funding={funding.interval}, whales_stale={whales.is_stale})"
        )

        return FeatureSet(
            symbol=symbol,
            pair=pair,
            interval=interval,
            generated_at=now,
            funding=funding,
            open_interest=open_interest,
            whales=whales,
            etf=etf,
            sentiment=sentiment,
            microstructure=micro,
            liquidations=liquidations,
        )

    async def build_funding_features(self, pair: str, until: datetime) -> FundingFeatures:
        interval = "1h"
        series = await self.market_data.latest_funding_rates(pair, interval, None, 200, until)

        if not series:
            interval = "1m"
            series = await self.market_data.latest_funding_rates(pair, interval, None, 500, until)

        exchanges: dict[str, ExchangeFunding] = {}
        for exchange, rows in _group_by_exchange(series):
            closes = [row.close for row in rows]
            latest = closes[0]
            window = closes[:FUNDING_Z_WINDOW]
            mu = mean(window)
            sigma = stddev(window)
            exchanges[exchange] = ExchangeFunding(
                latest=latest,
                mean=mu,
                std=sigma,
                z_score=zscore(latest, mu, sigma),
                trend_pct=funding_trend(closes),
            )

        snapshots = exchanges.values()
        return FundingFeatures(
            interval=interval,
            heat_score=mean(s.z_score for s in snapshots),
            consensus=mean(s.latest for s in snapshots),
            trend_pct=mean(s.trend_pct for s in snapshots),
            exchanges=exchanges,
        )

    async def build_open_interest_features(
        self, symbol: str, interval: str, until: datetime
    ) -> OpenInterestFeatures:
        series = await self.market_data.latest_open_interest(symbol, interval, "usd", 240, until)
        if not series:
            return OpenInterestFeatures()

        closes = [row.close for row in series]
        return OpenInterestFeatures(
            latest=closes[0],
            pct_change_6h=percent_change_from_index(closes, 6),
            pct_change_24h=percent_change_from_index(closes, 24),
            ema_6=ema(list(reversed(closes)), 6),
        )

    async def build_whale_features(self, symbol: str, now: datetime) -> WhaleFeatures:
        lookback_ts = int((now - timedelta(days=WHALE_LOOKBACK_DAYS)).timestamp())
        last_day_ts = int((now - timedelta(days=1)).timestamp())
        upper_ts = int(now.timestamp())

        raw = await self.market_data.latest_whale_transfers(symbol, lookback_ts, 2000, upper_ts)
        if not raw:
            raw = await self.market_data.latest_whale_transfers(symbol, None, 2000, upper_ts)
        if not raw:
            return WhaleFeatures()

        window_7d = [row for row in raw if row.block_timestamp >= lookback_ts]
        stale = False
        if not window_7d:
            window_7d = raw
            stale = True

        daily = [row for row in window_7d if row.block_timestamp >= last_day_ts]

        agg_7d = aggregate_whale_flows(window_7d)
        agg_24h = aggregate_whale_flows(daily)

        day_buckets = max(
            len({datetime.fromtimestamp(row.block_timestamp, tz=timezone.utc).date() for row in window_7d}),
            1,
        )
        avg_daily_magnitude = (agg_7d.inflow_usd + agg_7d.outflow_usd) / day_buckets
        baseline = max(avg_daily_magnitude, 1.0)

        exchange_flow = agg_24h.inflow_usd + agg_24h.outflow_usd

        return WhaleFeatures(
            window_24h=agg_24h,
            window_7d=agg_7d,
            pressure_score=agg_24h.net_usd / baseline,
            cex_ratio=agg_24h.inflow_usd / exchange_flow if exchange_flow > 0 else None,
            sample_24h=len(daily),
            sample_7d=len(window_7d),
            is_stale=stale or not daily,
        )

    async def build_etf_features(self, until: datetime) -> EtfFeatures:
        series = await self.market_data.latest_etf_flows(60, until)
        if not series:
            return EtfFeatures()

        flows = [row.flow_usd for row in series]
        return EtfFeatures(
            latest_flow=flows[0],
            ma7=mean(flows[:7]),
            ma30=mean(flows[:30]),
            streak=flow_streak(flows),
        )

    async def build_sentiment_features(self, until: datetime) -> SentimentFeatures:
        history = await self.market_data.fear_greed_history(60, until)
        if not history:
            return SentimentFeatures()

        latest = history[0]
        values = [row.value for row in history]
        return SentimentFeatures(
            value=latest.value,
            classification=latest.value_classification,
            ma7=mean(values[:7]),
            ma30=mean(values[:30]),
        )

    async def build_microstructure_features(
        self, symbol: str, pair: str, interval: str, until: datetime
    ) -> MicrostructureFeatures:
        orderbook, taker, prices = await asyncio.gather(
            self.market_data.latest_spot_orderbook(symbol, "1m", 120, until),
            self.market_data.latest_spot_taker_volume(symbol, interval, 120, until),
            self.market_data.latest_spot_prices(pair, interval, 120, until),
        )

        book = orderbook[0] if orderbook else None
        bid_depth = book.aggregated_bids_usd if book else None
        ask_depth = book.aggregated_asks_usd if book else None

        window = taker[:24]
        buy = sum(row.aggregated_buy_volume_usd or 0.0 for row in window)
        sell = sum(row.aggregated_sell_volume_usd or 0.0 for row in window)
        total = buy + sell

        closes = [row.close for row in prices]

        return MicrostructureFeatures(
            orderbook=OrderbookFeatures(
                bid_depth=bid_depth,
                ask_depth=ask_depth,
                imbalance=orderbook_imbalance(bid_depth, ask_depth),
                bid_quantity=book.aggregated_bids_quantity if book else None,
                ask_quantity=book.aggregated_asks_quantity if book else None,
            ),
            taker_flow=TakerFlowFeatures(
                buy_volume=buy,
                sell_volume=sell,
                buy_ratio=buy / total if total > 0 else None,
            ),
            price=PriceFeatures(
                last_close=closes[0] if closes else None,
                pct_change_24h=percent_change_from_index(closes, 24),
                volatility_24h=range_pct(closes[:25]),
            ),
        )

    async def build_liquidation_features(
        self, symbol: str, interval: str, until: datetime
    ) -> LiquidationFeatures:
        series = await self.market_data.latest_liquidations(symbol, interval, 120, until)
        if not series:
            return LiquidationFeatures()

        latest = series[0]
        window = series[:24]
        return LiquidationFeatures(
            latest=LiquidationTotals(
                longs=latest.aggregated_long_liquidation_usd,
                shorts=latest.aggregated_short_liquidation_usd,
            ),
            sum_24h=LiquidationTotals(
                longs=sum(row.aggregated_long_liquidation_usd or 0.0 for row in window),
                shorts=sum(row.aggregated_short_liquidation_usd or 0.0 for row in window),
            ),
        )


def orderbook_imbalance(bid: float | None, ask: float | None) -> float | None:
    if bid is None or ask is None or (bid + ask) == 0.0:
        return None
    return (bid - ask) / (bid + ask)


def _group_by_exchange(series: list[FundingRatePoint]):
    """Group newest-first rows by exchange, keeping each group newest-first."""
    ordered = sorted(series, key=lambda row: row.exchange)  # stable: keeps time order
    return groupby(ordered, key=lambda row: row.exchange)
