"""Tests for FeatureBuilder with a mocked market-data repository."""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

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
from app.services.feature_builder import (
    FeatureBuilder,
    aggregate_whale_flows,
    flow_streak,
    funding_trend,
    is_exchange_label,
    orderbook_imbalance,
)

NOW = datetime(2025, 6, 10, 12, tzinfo=timezone.utc)

REPO_METHODS = (
    "latest_funding_rates",
    "latest_open_interest",
    "latest_whale_transfers",
    "latest_etf_flows",
    "fear_greed_history",
    "latest_spot_orderbook",
    "latest_spot_taker_volume",
    "latest_spot_prices",
    "latest_liquidations",
)


@pytest.fixture
def repo():
    """MarketDataRepository stand-in where every table is empty."""
    mock = MagicMock()
    for name in REPO_METHODS:
        setattr(mock, name, AsyncMock(return_value=[]))
    return mock


@pytest.fixture
def builder(repo):
    return FeatureBuilder(repo)


def hours_ago(n: int) -> datetime:
    return NOW - timedelta(hours=n)


def transfer(hours: int, amount: float, src: str | None = None, dst: str | None = None) -> WhaleTransfer:
    return WhaleTransfer(
        block_timestamp=int(hours_ago(hours).timestamp()),
        amount_usd=amount,
        from_address=src,
        to_address=dst,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_exchange_label(self):
        assert is_exchange_label("Binance Hot Wallet 14")
        assert is_exchange_label("OKX")
        assert not is_exchange_label("unknown wallet")
        assert not is_exchange_label(None)

    def test_aggregate_whale_flows(self):
        flows = aggregate_whale_flows(
            [
                transfer(1, 1000.0, dst="Binance"),
                transfer(2, 400.0, src="Coinbase", dst="unknown"),
                transfer(3, 999.0, src="unknown", dst="unknown"),
            ]
        )
        assert flows.inflow_usd == 1000.0
        assert flows.outflow_usd == 400.0
        assert flows.count_inflow == 1
        assert flows.count_outflow == 1
        assert flows.net_usd == 600.0

    @pytest.mark.parametrize(
        "flows,expected",
        [
            ([3.0, 2.0, 1.0, -1.0], 3),
            ([-1.0, -2.0, 5.0], -2),
            ([0.0, 1.0], 0),
            ([2.0, None, 1.0], 1),
            ([], 0),
        ],
    )
    def test_flow_streak(self, flows, expected):
        assert flow_streak(flows) == expected

    def test_funding_trend(self):
        closes = [0.0002] * 12 + [0.0001] * 12
        assert funding_trend(closes) == pytest.approx(100.0)

    def test_funding_trend_uses_magnitude_of_prior(self):
        closes = [0.0001] * 12 + [-0.0001] * 12
        assert funding_trend(closes) == pytest.approx(200.0)

    def test_funding_trend_insufficient(self):
        assert funding_trend([0.0001] * 12) is None

    def test_orderbook_imbalance(self):
        assert orderbook_imbalance(600.0, 400.0) == pytest.approx(0.2)
        assert orderbook_imbalance(None, 400.0) is None
        assert orderbook_imbalance(0.0, 0.0) is None


# ---------------------------------------------------------------------------
# FeatureBuilder
# ---------------------------------------------------------------------------

class TestBuild:
    @pytest.mark.asyncio
    async def test_empty_tables(self, builder):
        features = await builder.build("btc", "btcusdt", "1h", as_of=NOW)

        assert features.symbol == "BTC"
        assert features.pair == "BTCUSDT"
        assert features.generated_at == NOW
        assert features.funding.heat_score is None
        assert features.open_interest.pct_change_24h is None
        assert features.whales.pressure_score is None
        assert features.whales.is_stale is True
        assert features.etf.latest_flow is None
        assert features.sentiment.value is None
        assert features.microstructure.price.last_close is None
        assert features.liquidations.sum_24h is None

    @pytest.mark.asyncio
    async def test_queries_bounded_by_as_of(self, builder, repo):
        await builder.build("BTC", "BTCUSDT", "1h", as_of=NOW)

        assert repo.latest_etf_flows.await_args.args == (60, NOW)
        assert repo.fear_greed_history.await_args.args == (60, NOW)
        assert repo.latest_spot_prices.await_args.args == ("BTCUSDT", "1h", 120, NOW)

    @pytest.mark.asyncio
    async def test_naive_as_of_is_utc(self, builder):
        features = await builder.build(as_of=datetime(2025, 6, 10, 12))
        assert features.generated_at == NOW


class TestFundingFeatures:
    @pytest.mark.asyncio
    async def test_heat_and_consensus(self, builder, repo):
        rows = [
            FundingRatePoint(exchange="Binance", time=hours_ago(i), close=close)
            for i, close in enumerate([0.0003, 0.0001, 0.0001, 0.0001])
        ] + [
            FundingRatePoint(exchange="OKX", time=hours_ago(i), close=0.0001)
            for i in range(4)
        ]
        repo.latest_funding_rates.return_value = rows

        funding = await builder.build_funding_features("BTCUSDT", NOW)

        assert funding.interval == "1h"
        assert funding.exchanges["Binance"].z_score == pytest.approx(1.5)
        # OKX has zero variance, so it has no z-score and is skipped in the heat
        assert funding.exchanges["OKX"].z_score is None
        assert funding.heat_score == pytest.approx(1.5)
        assert funding.consensus == pytest.approx(0.0002)

    @pytest.mark.asyncio
    async def test_falls_back_to_minute_interval(self, builder, repo):
        repo.latest_funding_rates.side_effect = [
            [],
            [FundingRatePoint(exchange="Binance", time=NOW, close=0.0001)],
        ]

        funding = await builder.build_funding_features("BTCUSDT", NOW)

        assert funding.interval == "1m"
        assert funding.consensus == pytest.approx(0.0001)
        assert repo.latest_funding_rates.await_args.args == ("BTCUSDT", "1m", None, 500, NOW)


class TestOpenInterestFeatures:
    @pytest.mark.asyncio
    async def test_percent_changes(self, builder, repo):
        closes = [130.0] + [120.0] * 5 + [100.0] * 19 + [110.0]
        repo.latest_open_interest.return_value = [
            OpenInterestPoint(time=hours_ago(i), close=c) for i, c in enumerate(closes)
        ]

        oi = await builder.build_open_interest_features("BTC", "1h", NOW)

        assert oi.latest == 130.0
        assert oi.pct_change_6h == pytest.approx(30.0)
        assert oi.pct_change_24h == pytest.approx(30.0)
        assert oi.ema_6 is not None


class TestWhaleFeatures:
    @pytest.mark.asyncio
    async def test_pressure_and_ratio(self, builder, repo):
        repo.latest_whale_transfers.return_value = [
            transfer(1, 1000.0, dst="Binance Hot Wallet"),
            transfer(2, 500.0, src="Coinbase 3", dst="unknown"),
            transfer(72, 300.0, dst="Kraken"),
        ]

        whales = await builder.build_whale_features("BTC", NOW)

        assert whales.window_24h.inflow_usd == 1000.0
        assert whales.window_7d.inflow_usd == 1300.0
        # 1800 USD over two calendar days -> 900 per day baseline
        assert whales.pressure_score == pytest.approx(500.0 / 900.0)
        assert whales.cex_ratio == pytest.approx(1000.0 / 1500.0)
        assert whales.sample_24h == 2
        assert whales.sample_7d == 3
        assert whales.is_stale is False

    @pytest.mark.asyncio
    async def test_stale_when_only_old_rows(self, builder, repo):
        old = [transfer(24 * 30, 500.0, dst="Binance")]
        repo.latest_whale_transfers.side_effect = [[], old]

        whales = await builder.build_whale_features("BTC", NOW)

        assert whales.is_stale is True
        assert whales.sample_7d == 1
        assert whales.sample_24h == 0
        assert whales.cex_ratio is None


class TestEtfAndSentiment:
    @pytest.mark.asyncio
    async def test_etf(self, builder, repo):
        repo.latest_etf_flows.return_value = [
            EtfFlowPoint(date=date(2025, 6, 9), flow_usd=100.0),
            EtfFlowPoint(date=date(2025, 6, 8), flow_usd=50.0),
            EtfFlowPoint(date=date(2025, 6, 7), flow_usd=-30.0),
        ]

        etf = await builder.build_etf_features(NOW)

        assert etf.latest_flow == 100.0
        assert etf.ma7 == pytest.approx(40.0)
        assert etf.streak == 2

    @pytest.mark.asyncio
    async def test_sentiment(self, builder, repo):
        repo.fear_greed_history.return_value = [
            FearGreedPoint(time=hours_ago(0), value=72, value_classification="Greed"),
            FearGreedPoint(time=hours_ago(24), value=68, value_classification="Greed"),
        ]

        sentiment = await builder.build_sentiment_features(NOW)

        assert sentiment.value == 72
        assert sentiment.classification == "Greed"
        assert sentiment.ma7 == pytest.approx(70.0)


class TestMicrostructureFeatures:
    @pytest.mark.asyncio
    async def test_orderbook_taker_and_price(self, builder, repo):
        repo.latest_spot_orderbook.return_value = [
            OrderbookPoint(time=NOW, aggregated_bids_usd=600.0, aggregated_asks_usd=400.0)
        ]
        repo.latest_spot_taker_volume.return_value = [
            TakerVolumePoint(time=hours_ago(i), aggregated_buy_volume_usd=60.0, aggregated_sell_volume_usd=40.0)
            for i in range(30)
        ]
        repo.latest_spot_prices.return_value = [
            PricePoint(time=hours_ago(i), close=c)
            for i, c in enumerate([100.0, 104.0, 96.0] + [99.0] * 22)
        ]

        micro = await builder.build_microstructure_features("BTC", "BTCUSDT", "1h", NOW)

        assert micro.orderbook.imbalance == pytest.approx(0.2)
        assert micro.taker_flow.buy_volume == pytest.approx(24 * 60.0)
        assert micro.taker_flow.buy_ratio == pytest.approx(0.6)
        assert micro.price.last_close == 100.0
        assert micro.price.pct_change_24h == pytest.approx(1.0101, rel=1e-3)
        assert micro.price.volatility_24h == pytest.approx(8.0)
        assert repo.latest_spot_orderbook.await_args.args[1] == "1m"


class TestLiquidationFeatures:
    @pytest.mark.asyncio
    async def test_sums_last_24_rows(self, builder, repo):
        repo.latest_liquidations.return_value = [
            LiquidationPoint(
                time=hours_ago(i),
                aggregated_long_liquidation_usd=10.0,
                aggregated_short_liquidation_usd=None if i == 0 else 5.0,
            )
            for i in range(30)
        ]

        liq = await builder.build_liquidation_features("BTC", "1h", NOW)

        assert liq.latest.longs == 10.0
        assert liq.latest.shorts is None
        assert liq.sum_24h.longs == pytest.approx(240.0)
        assert liq.sum_24h.shorts == pytest.approx(115.0)
