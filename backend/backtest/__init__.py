"""Rule-signal backtesting over the cg_signal_dataset table.

Fully independent of app/. Only depends on core/ for models.

Storage:
- Snapshots: read from PostgreSQL via asyncpg (no SQLAlchemy)

Usage:
    python -m backtest --symbol BTC --days 30
    python -m backtest --symbol ETH --start 2025-01-01 --end 2025-03-31
"""

from backtest.service import BacktestService
from backtest.stats import BacktestMetrics, BacktestResult, StatisticsCalculator

__all__ = ["BacktestService", "BacktestMetrics", "BacktestResult", "StatisticsCalculator"]
