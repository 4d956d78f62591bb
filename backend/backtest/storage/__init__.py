"""Backtest storage layer, independent of app/storage.

Uses an asyncpg pool to read labelled snapshots from cg_signal_dataset.
"""

from backtest.storage.database import BacktestDatabase
from backtest.storage.snapshot_source import PostgresSnapshotSource

__all__ = [
    "BacktestDatabase",
    "PostgresSnapshotSource",
]
