"""Data storage layer."""

from app.storage.database import Database, get_database, init_database
from app.storage.market_data_repo import MarketDataRepository
from app.storage.snapshot_repo import SignalSnapshotRepository

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "MarketDataRepository",
    "SignalSnapshotRepository",
]
