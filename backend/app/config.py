"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database (market-data collector tables + cg_signal_dataset)
    database_url: str = "postgresql://localhost/derivatives_dashboard"

    # Exchange REST API used for forward price lookups
    binance_base_url: str = "https://api.binance.com"
    binance_api_key: str = ""
    binance_calls_per_minute: int = 1200

    # Signal defaults
    default_symbol: str = "BTC"
    default_pair: str = "BTCUSDT"
    default_interval: str = "1h"
    symbols: list[str] = ["BTC", "ETH"]

    # Dataset labelling
    label_horizon_hours: int = 24
    label_flat_threshold_pct: float = 0.0
    label_batch_size: int = 500

    # Background capture loop (one snapshot per symbol per tick)
    capture_enabled: bool = True
    capture_interval_minutes: int = 60

    # AI overlay decision thresholds
    ai_buy_threshold: float = 0.55
    ai_sell_threshold: float = 0.45

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
