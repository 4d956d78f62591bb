"""Report formatting for backtest results.

Outputs results to console (metrics table) and JSON files.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from backtest.stats import BacktestResult

NO_DATA_MESSAGE = "No labeled snapshots available for the selected window."


def to_zulu(dt: datetime) -> str:
    """ISO-8601 UTC timestamp with a Z suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_ratio(value: float) -> str:
    """0.625 -> '62.50%'"""
    return f"{value * 100:,.2f}%"


def format_percent(value: float) -> str:
    """1.5 -> '1.50%'"""
    return f"{value:,.2f}%"


def render_table(headers: list[str], rows: list[list]) -> str:
    """Render a boxed ASCII table."""
    cells = [[str(c) for c in row] for row in rows]
    widths = [
        max(len(headers[i]), *(len(row[i]) for row in cells)) if cells else len(headers[i])
        for i in range(len(headers))
    ]

    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(values: list[str]) -> str:
        return "| " + " | ".join(v.ljust(w) for v, w in zip(values, widths)) + " |"

    out = [border, line(headers), border]
    out.extend(line(row) for row in cells)
    out.append(border)
    return "\n".join(out)


class ReportFormatter:
    """Format backtest results for display and export."""

    @staticmethod
    def header(result: BacktestResult) -> str:
        return (
            f"Backtest {result.symbol} {to_zulu(result.start)} → {to_zulu(result.end)} "
            f"({result.total} snapshots)"
        )

    @staticmethod
    def metric_rows(result: BacktestResult) -> list[list]:
        m = result.metrics
        if m is None:
            return []
        return [
            ["Win Rate", format_ratio(m.win_rate)],
            ["Buy Trades", m.buy_trades],
            ["Sell Trades", m.sell_trades],
            ["Neutral Trades", m.neutral_trades],
            ["Avg Return BUY", format_percent(m.avg_return_buy_pct)],
            ["Avg Return SELL", format_percent(m.avg_return_sell_pct)],
            ["Avg Return ALL", format_percent(m.avg_return_all_pct)],
            ["Expectancy", format_percent(m.expectancy_pct)],
            ["Max Drawdown", format_percent(m.max_drawdown_pct)],
        ]

    @staticmethod
    def render_console(result: BacktestResult) -> str:
        if result.total == 0 or result.metrics is None:
            return NO_DATA_MESSAGE
        return "\n".join(
            [
                ReportFormatter.header(result),
                render_table(["Metric", "Value"], ReportFormatter.metric_rows(result)),
            ]
        )

    @staticmethod
    def print_console(result: BacktestResult) -> None:
        """Print formatted report to console."""
        print(ReportFormatter.render_console(result))

    @staticmethod
    def to_dict(result: BacktestResult) -> dict:
        """Convert results to JSON-serializable dict."""
        m = result.metrics
        return {
            "symbol": result.symbol,
            "start": to_zulu(result.start),
            "end": to_zulu(result.end),
            "total": result.total,
            "metrics": (
                {
                    "win_rate": m.win_rate,
                    "buy_trades": m.buy_trades,
                    "sell_trades": m.sell_trades,
                    "neutral_trades": m.neutral_trades,
                    "avg_return_buy_pct": m.avg_return_buy_pct,
                    "avg_return_sell_pct": m.avg_return_sell_pct,
                    "avg_return_all_pct": m.avg_return_all_pct,
                    "expectancy_pct": m.expectancy_pct,
                    "max_drawdown_pct": m.max_drawdown_pct,
                }
                if m is not None
                else {}
            ),
            "timeline": [
                {
                    "generated_at": to_zulu(p.generated_at),
                    "signal": p.signal,
                    "return_pct": p.return_pct,
                    "cumulative": p.cumulative,
                    "drawdown": p.drawdown,
                }
                for p in result.timeline
            ],
        }

    @staticmethod
    def save_json(result: BacktestResult, filepath: str) -> None:
        """Save results to JSON file."""
        data = ReportFormatter.to_dict(result)
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2)
        print(f"\nResults saved to {filepath}")
