"""Application configuration."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/trading_signals"

    # Signal generation
    default_timeframe: str = "1h"
    kline_limit: int = 100
    # "sma_20" keeps the smoothed proxy; "last_close" passes the latest close
    price_source: Literal["sma_20", "last_close"] = "sma_20"

    # Execution
    default_order_quantity: Decimal = Decimal("0.001")

    # Venue
    venue_timeout_seconds: float = 10.0
    venue_calls_per_minute: int = 1200
    # Public market data from testnet instead of live
    market_data_testnet: bool = False

    # Accounts and models (YAML)
    trading_config_path: str = "trading.yaml"

    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
