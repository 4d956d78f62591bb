"""Backtest-specific configuration.

Independent of app/config.py. Only needs a database URL.
Snapshots are read from the same PostgreSQL the dashboard writes to.
"""

from __future__ import annotations

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestSettings(BaseSettings):
    """Backtest configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = os.environ.get(
        "DATABASE_URL", "postgresql://localhost/derivatives_dashboard"
    )
    default_symbol: str = "BTC"
    default_days: int = 30


_settings: BacktestSettings | None = None


def get_backtest_settings() -> BacktestSettings:
    """Get cached backtest settings instance."""
    global _settings
    if _settings is None:
        _settings = BacktestSettings()
    return _settings
