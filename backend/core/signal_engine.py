"""Rule-based signal engine.

Pure business logic with no I/O: takes a FeatureSet, returns a
SignalScore. Each rule that fires adds its weight to a running score
and records the reason; the total score maps to BUY / SELL / NEUTRAL.
Rules whose inputs are missing never fire.
"""

import logging
from typing import Any

from core.models.features import FeatureSet
from core.models.signal import SignalFactor, SignalRule, SignalScore

logger = logging.getLogger(__name__)

BUY_THRESHOLD = 1.5
SELL_THRESHOLD = -1.5
# |score| at which confidence saturates to 1.0
CONFIDENCE_SCALE = 5.0


def _gt(value: float | None, threshold: float) -> bool:
    return value is not None and value > threshold


def _lt(value: float | None, threshold: float) -> bool:
    return value is not None and value < threshold


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:,.2f}"


class _ScoreSheet:
    """Running score with the list of rules that fired."""

    def __init__(self):
        self.score = 0.0
        self.factors: list[SignalFactor] = []

    def contribute(
        self,
        condition: bool,
        weight: float,
        reason: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        if not condition:
            return
        self.score += weight
        self.factors.append(
            SignalFactor(reason=reason, weight=weight, context=context or {})
        )


class SignalEngine:
    """Score a feature snapshot against the discretionary rule book."""

    def score(self, features: FeatureSet) -> SignalScore:
        sheet = _ScoreSheet()

        self._funding_rules(sheet, features)
        self._whale_rules(sheet, features)
        self._etf_rules(sheet, features)
        self._sentiment_rules(sheet, features)
        self._microstructure_rules(sheet, features)
        self._liquidation_rules(sheet, features)

        signal = self.determine_signal(sheet.score)
        confidence = min(abs(sheet.score) / CONFIDENCE_SCALE, 1.0)

        logger.debug(
            f"[{features.symbol}] score={sheet.score:.2f} signal={signal.value} "
            f"rules={len(sheet.factors)}"
        )

        return SignalScore(
            signal=signal,
            score=round(sheet.score, 2),
            confidence=round(confidence, 3),
            reasons=[f.reason for f in sheet.factors],
            factors=sheet.factors,
        )

    @staticmethod
    def determine_signal(score: float) -> SignalRule:
        if score >= BUY_THRESHOLD:
            return SignalRule.BUY
        if score <= SELL_THRESHOLD:
            return SignalRule.SELL
        return SignalRule.NEUTRAL

    # ── Rule groups ─────────────────────────────────────────────

    def _funding_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        heat = f.funding.heat_score
        consensus = f.funding.consensus
        trend = f.funding.trend_pct
        oi_24h = f.open_interest.pct_change_24h

        sheet.contribute(
            _gt(heat, 1.5), -2.0,
            f"Funding overheated (z {_fmt(heat)})",
            {"heat": heat, "consensus": consensus},
        )
        sheet.contribute(
            _lt(heat, -1.5), 2.0,
            f"Funding deeply discounted (z {_fmt(heat)})",
            {"heat": heat, "consensus": consensus},
        )
        sheet.contribute(
            _gt(trend, 15), 0.6,
            "Funding momentum turning higher",
            {"trend_pct": trend},
        )
        sheet.contribute(
            _lt(trend, -15), -0.6,
            "Funding momentum rolling over",
            {"trend_pct": trend},
        )
        sheet.contribute(
            _gt(oi_24h, 2) and _gt(heat, 0.5), -1.5,
            "Leverage build-up with positive funding",
            {"oi_pct_24h": oi_24h, "funding_heat": heat},
        )
        sheet.contribute(
            _lt(oi_24h, -2), 1.0,
            "Open interest flushing (de-leverage)",
            {"oi_pct_24h": oi_24h},
        )

    def _whale_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        pressure = f.whales.pressure_score
        cex_ratio = f.whales.cex_ratio

        sheet.contribute(
            _gt(pressure, 1.2), -1.5,
            "Whale inflow into exchanges",
            {"pressure_score": pressure},
        )
        sheet.contribute(
            _lt(pressure, -1.2), 1.5,
            "Whale accumulation off-exchange",
            {"pressure_score": pressure},
        )
        sheet.contribute(
            _gt(cex_ratio, 0.65), -0.6,
            "Whale inflow concentrated on exchanges",
            {"cex_ratio": cex_ratio},
        )
        sheet.contribute(
            _lt(cex_ratio, 0.35), 0.6,
            "Whales distributing to cold storage",
            {"cex_ratio": cex_ratio},
        )

    def _etf_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        flow = f.etf.latest_flow
        ma7 = f.etf.ma7
        streak = f.etf.streak

        sheet.contribute(
            _gt(flow, 0) and ma7 is not None and flow > ma7, 1.2,
            "ETF net inflow above weekly average",
            {"latest_flow": flow, "ma7": ma7},
        )
        sheet.contribute(
            _lt(flow, 0) and ma7 is not None and flow < ma7, -1.2,
            "ETF outflow pressure",
            {"latest_flow": flow, "ma7": ma7},
        )
        sheet.contribute(
            streak is not None and streak >= 3, 0.9,
            "ETF inflow streak",
            {"streak": streak},
        )
        sheet.contribute(
            streak is not None and streak <= -3, -0.9,
            "ETF outflow streak",
            {"streak": streak},
        )

    def _sentiment_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        value = f.sentiment.value

        sheet.contribute(
            value is not None and value >= 70, -1.0,
            "Extreme greed zone",
            {"sentiment": value},
        )
        sheet.contribute(
            value is not None and value <= 30, 1.0,
            "Fear zone (contrarian bullish)",
            {"sentiment": value},
        )

    def _microstructure_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        taker = f.microstructure.taker_flow.buy_ratio
        imbalance = f.microstructure.orderbook.imbalance
        volatility = f.microstructure.price.volatility_24h

        sheet.contribute(
            _gt(taker, 0.55), 0.8,
            "Aggressive buyers dominating order flow",
            {"taker_buy_ratio": taker},
        )
        sheet.contribute(
            _lt(taker, 0.45), -0.8,
            "Aggressive sellers dominating order flow",
            {"taker_buy_ratio": taker},
        )
        sheet.contribute(
            _gt(imbalance, 0.1), 0.5,
            "Bid-side liquidity stacked",
            {"orderbook_imbalance": imbalance},
        )
        sheet.contribute(
            _lt(imbalance, -0.1), -0.5,
            "Ask-side liquidity stacked",
            {"orderbook_imbalance": imbalance},
        )
        sheet.contribute(
            _gt(volatility, 5) and _lt(taker, 0.45), -0.6,
            "High volatility with aggressive sellers",
            {"volatility_24h": volatility, "taker_buy_ratio": taker},
        )
        sheet.contribute(
            _lt(volatility, 1.5) and _gt(taker, 0.55), 0.5,
            "Calm flow with buyers in control",
            {"volatility_24h": volatility, "taker_buy_ratio": taker},
        )

    def _liquidation_rules(self, sheet: _ScoreSheet, f: FeatureSet) -> None:
        totals = f.liquidations.sum_24h
        if totals is None or totals.longs is None or totals.shorts is None:
            return
        longs, shorts = totals.longs, totals.shorts

        sheet.contribute(
            longs > shorts * 1.5, 0.8,
            "Long liquidation flush (potential rebound)",
            {"long_liq_24h": longs, "short_liq_24h": shorts},
        )
        sheet.contribute(
            shorts > longs * 1.5, -0.8,
            "Short liquidation spike (potential exhaustion)",
            {"long_liq_24h": longs, "short_liq_24h": shorts},
        )
