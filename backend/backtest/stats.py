"""Statistics calculator for rule backtests over cg_signal_dataset.

Every labelled snapshot is a one-horizon trade taken in the direction of
its rule signal:
  BUY  earns  +label_magnitude
  SELL earns  -label_magnitude
  NEUTRAL is counted but not traded.
A trade wins when the realised label agrees with the signal (BUY/UP,
SELL/DOWN). Returns are in percent and compound into the equity curve.
max_drawdown_pct is taken over the BUY returns followed by the SELL
returns; the timeline stays chronological.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.models.signal import LabelDirection, SignalRule, SignalSnapshot

logger = logging.getLogger(__name__)

# Decimals kept on every reported metric
PRECISION = 3


@dataclass
class BacktestMetrics:
    win_rate: float = 0.0  # Ratio 0..1 of directional hits over BUY+SELL trades
    buy_trades: int = 0
    sell_trades: int = 0
    neutral_trades: int = 0
    avg_return_buy_pct: float = 0.0
    avg_return_sell_pct: float = 0.0
    avg_return_all_pct: float = 0.0
    expectancy_pct: float = 0.0
    max_drawdown_pct: float = 0.0  # <= 0


@dataclass
class TimelinePoint:
    generated_at: datetime
    signal: str
    return_pct: float
    cumulative: float  # Compounded return since the first trade, percent
    drawdown: float  # Distance from the running equity peak, percent (<= 0)


@dataclass
class BacktestResult:
    """Complete backtest results."""

    symbol: str
    start: datetime
    end: datetime
    total: int = 0
    metrics: BacktestMetrics | None = None
    timeline: list[TimelinePoint] = field(default_factory=list)


def trade_return(snapshot: SignalSnapshot) -> float | None:
    """Signed percent return of a snapshot, None when it is not a trade."""
    rule = snapshot.rule
    if rule is None or not rule.is_trade:
        return None
    magnitude = snapshot.label_magnitude or 0.0
    return magnitude if rule == SignalRule.BUY else -magnitude


def average(values: list[float]) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), PRECISION)


def ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return round(numerator / denominator, PRECISION)


def max_drawdown(returns: list[float]) -> float:
    """Most negative peak-to-trough move of the compounded equity curve."""
    equity = 1.0
    peak = 1.0
    worst = 0.0
    for ret in returns:
        equity *= 1 + ret / 100
        peak = max(peak, equity)
        worst = min(worst, (equity - peak) / peak * 100)
    return round(worst, PRECISION)


class StatisticsCalculator:
    """Calculate backtest metrics and the equity timeline."""

    def calculate(
        self,
        snapshots: list[SignalSnapshot],
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> BacktestResult:
        result = BacktestResult(symbol=symbol, start=start, end=end, total=len(snapshots))
        if not snapshots:
            return result

        ordered = sorted(snapshots, key=lambda s: s.generated_at)
        result.metrics = self._calc_metrics(ordered)
        result.timeline = self._calc_timeline(ordered)
        return result

    def _calc_metrics(self, snapshots: list[SignalSnapshot]) -> BacktestMetrics:
        buy_returns: list[float] = []
        sell_returns: list[float] = []
        neutral = 0
        hits = 0

        for snapshot in snapshots:
            rule = snapshot.rule
            if rule == SignalRule.NEUTRAL:
                neutral += 1
                continue

            ret = trade_return(snapshot)
            if ret is None:
                continue

            if rule == SignalRule.BUY:
                buy_returns.append(ret)
                hits += snapshot.label_direction == LabelDirection.UP
            else:
                sell_returns.append(ret)
                hits += snapshot.label_direction == LabelDirection.DOWN

        trades = len(buy_returns) + len(sell_returns)
        # Drawdown walks every BUY return first, then every SELL return
        all_returns = buy_returns + sell_returns

        return BacktestMetrics(
            win_rate=ratio(hits, max(trades, 1)),
            buy_trades=len(buy_returns),
            sell_trades=len(sell_returns),
            neutral_trades=neutral,
            avg_return_buy_pct=average(buy_returns),
            avg_return_sell_pct=average(sell_returns),
            avg_return_all_pct=average(all_returns),
            expectancy_pct=average(all_returns),
            max_drawdown_pct=max_drawdown(all_returns),
        )

    def _calc_timeline(self, snapshots: list[SignalSnapshot]) -> list[TimelinePoint]:
        equity = 1.0
        peak = 1.0
        timeline = []

        for snapshot in snapshots:
            ret = trade_return(snapshot)
            if ret is None:
                continue
            equity *= 1 + ret / 100
            peak = max(peak, equity)

            timeline.append(
                TimelinePoint(
                    generated_at=snapshot.generated_at.astimezone(timezone.utc),
                    signal=snapshot.signal_rule,
                    return_pct=round(ret, PRECISION),
                    cumulative=round((equity - 1) * 100, PRECISION),
                    drawdown=round((equity - peak) / peak * 100, PRECISION),
                )
            )

        return timeline
