"""Configuration management for split_ledger."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Fallback to SQLite for local development
    database_url: str = "sqlite:///./split_ledger.db"

    # Currency used when a group is created without one
    default_currency: str = "USD"

    # Cache TTLs in seconds
    balances_cache_ttl: int = 120
    settlements_cache_ttl: int = 60
    expenses_cache_ttl: int = 120
    groups_cache_ttl: int = 300

    expenses_page_size: int = 20

    # "in_order" or "largest_first"
    settlement_strategy: str = "in_order"

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Load application settings once per process."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    numeric_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger().setLevel(numeric_level)
