"""Tests for the rule-based SignalEngine."""

import pytest
from datetime import datetime, timezone

from core.models.features import (
    EtfFeatures,
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
)
from core.models.signal import SignalRule
from core.signal_engine import SignalEngine


def make_features(**sections) -> FeatureSet:
    return FeatureSet(
        symbol="BTC",
        pair="BTCUSDT",
        interval="1h",
        generated_at=datetime(2025, 6, 1, 12, tzinfo=timezone.utc),
        **sections,
    )


@pytest.fixture
def engine():
    return SignalEngine()


class TestEmptyFeatures:
    def test_no_data_is_neutral(self, engine):
        result = engine.score(make_features())

        assert result.signal == SignalRule.NEUTRAL
        assert result.score == 0.0
        assert result.confidence == 0.0
        assert result.reasons == []
        assert result.factors == []


class TestFundingRules:
    def test_overheated_funding_is_bearish(self, engine):
        result = engine.score(make_features(funding=FundingFeatures(heat_score=1.8, consensus=0.0001)))

        assert result.score == -2.0
        assert result.signal == SignalRule.SELL
        assert result.reasons == ["Funding overheated (z 1.80)"]
        assert result.factors[0].context == {"heat": 1.8, "consensus": 0.0001}

    def test_discounted_funding_is_bullish(self, engine):
        result = engine.score(make_features(funding=FundingFeatures(heat_score=-2.25)))

        assert result.score == 2.0
        assert result.signal == SignalRule.BUY
        assert result.reasons == ["Funding deeply discounted (z -2.25)"]

    def test_threshold_is_strict(self, engine):
        result = engine.score(make_features(funding=FundingFeatures(heat_score=1.5)))
        assert result.reasons == []

    def test_trend_rules(self, engine):
        up = engine.score(make_features(funding=FundingFeatures(trend_pct=20)))
        down = engine.score(make_features(funding=FundingFeatures(trend_pct=-20)))

        assert up.score == 0.6
        assert up.reasons == ["Funding momentum turning higher"]
        assert down.score == -0.6
        assert down.reasons == ["Funding momentum rolling over"]

    def test_leverage_buildup_needs_positive_funding(self, engine):
        features = make_features(
            funding=FundingFeatures(heat_score=0.8),
            open_interest=OpenInterestFeatures(pct_change_24h=3.0),
        )
        result = engine.score(features)
        assert result.reasons == ["Leverage build-up with positive funding"]
        assert result.score == -1.5

        no_funding = engine.score(make_features(open_interest=OpenInterestFeatures(pct_change_24h=3.0)))
        assert no_funding.reasons == []

    def test_open_interest_flush(self, engine):
        result = engine.score(make_features(open_interest=OpenInterestFeatures(pct_change_24h=-5.0)))
        assert result.score == 1.0
        assert result.reasons == ["Open interest flushing (de-leverage)"]


class TestWhaleRules:
    def test_whale_inflow_and_concentration(self, engine):
        result = engine.score(make_features(whales=WhaleFeatures(pressure_score=2.0, cex_ratio=0.8)))

        assert result.score == pytest.approx(-2.1)
        assert result.signal == SignalRule.SELL
        assert "Whale inflow into exchanges" in result.reasons
        assert "Whale inflow concentrated on exchanges" in result.reasons

    def test_whale_accumulation(self, engine):
        result = engine.score(make_features(whales=WhaleFeatures(pressure_score=-1.5, cex_ratio=0.2)))

        assert result.score == pytest.approx(2.1)
        assert result.signal == SignalRule.BUY


class TestEtfRules:
    def test_inflow_above_average_with_streak(self, engine):
        etf = EtfFeatures(latest_flow=300e6, ma7=100e6, streak=4)
        result = engine.score(make_features(etf=etf))

        assert result.score == pytest.approx(2.1)
        assert result.reasons == ["ETF net inflow above weekly average", "ETF inflow streak"]

    def test_outflow_pressure(self, engine):
        etf = EtfFeatures(latest_flow=-300e6, ma7=-50e6, streak=-3)
        result = engine.score(make_features(etf=etf))

        assert result.score == pytest.approx(-2.1)
        assert result.reasons == ["ETF outflow pressure", "ETF outflow streak"]

    def test_inflow_below_average_does_not_fire(self, engine):
        etf = EtfFeatures(latest_flow=50e6, ma7=100e6, streak=1)
        assert engine.score(make_features(etf=etf)).reasons == []


class TestSentimentRules:
    @pytest.mark.parametrize(
        "value,expected",
        [(70, -1.0), (85, -1.0), (30, 1.0), (10, 1.0), (50, 0.0)],
    )
    def test_sentiment_zones(self, engine, value, expected):
        result = engine.score(make_features(sentiment=SentimentFeatures(value=value)))
        assert result.score == expected


class TestMicrostructureRules:
    def test_aggressive_buyers_in_calm_market(self, engine):
        micro = MicrostructureFeatures(
            taker_flow=TakerFlowFeatures(buy_ratio=0.6),
            orderbook=OrderbookFeatures(imbalance=0.2),
            price=PriceFeatures(volatility_24h=1.0),
        )
        result = engine.score(make_features(microstructure=micro))

        assert result.score == pytest.approx(1.8)
        assert result.signal == SignalRule.BUY
        assert result.reasons == [
            "Aggressive buyers dominating order flow",
            "Bid-side liquidity stacked",
            "Calm flow with buyers in control",
        ]

    def test_aggressive_sellers_in_volatile_market(self, engine):
        micro = MicrostructureFeatures(
            taker_flow=TakerFlowFeatures(buy_ratio=0.4),
            orderbook=OrderbookFeatures(imbalance=-0.3),
            price=PriceFeatures(volatility_24h=7.5),
        )
        result = engine.score(make_features(microstructure=micro))

        assert result.score == pytest.approx(-1.9)
        assert result.signal == SignalRule.SELL


class TestLiquidationRules:
    def test_long_flush(self, engine):
        liq = LiquidationFeatures(sum_24h=LiquidationTotals(longs=200.0, shorts=100.0))
        result = engine.score(make_features(liquidations=liq))
        assert result.reasons == ["Long liquidation flush (potential rebound)"]
        assert result.score == 0.8

    def test_short_spike(self, engine):
        liq = LiquidationFeatures(sum_24h=LiquidationTotals(longs=100.0, shorts=151.0))
        result = engine.score(make_features(liquidations=liq))
        assert result.reasons == ["Short liquidation spike (potential exhaustion)"]

    def test_balanced_or_missing(self, engine):
        balanced = LiquidationFeatures(sum_24h=LiquidationTotals(longs=100.0, shorts=120.0))
        assert engine.score(make_features(liquidations=balanced)).reasons == []
        assert engine.score(make_features(liquidations=LiquidationFeatures())).reasons == []


class TestSignalAndConfidence:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (1.5, SignalRule.BUY),
            (1.49, SignalRule.NEUTRAL),
            (-1.5, SignalRule.SELL),
            (-1.49, SignalRule.NEUTRAL),
            (0.0, SignalRule.NEUTRAL),
        ],
    )
    def test_determine_signal(self, score, expected):
        assert SignalEngine.determine_signal(score) == expected

    def test_confidence_saturates(self, engine):
        features = make_features(
            funding=FundingFeatures(heat_score=-2.0),
            whales=WhaleFeatures(pressure_score=-2.0, cex_ratio=0.1),
            etf=EtfFeatures(latest_flow=10.0, ma7=5.0, streak=5),
            sentiment=SentimentFeatures(value=20),
        )
        result = engine.score(features)

        assert result.score == pytest.approx(7.2)
        assert result.confidence == 1.0

    def test_confidence_scales_with_score(self, engine):
        result = engine.score(make_features(funding=FundingFeatures(heat_score=2.0)))
        assert result.confidence == pytest.approx(0.4)
