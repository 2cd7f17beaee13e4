"""
Configuration and settings for the storage router.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the router and its HTTP surface."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Single database (pass-through mode)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # Comma-separated list of backends; list order is the backend index.
    database_urls: Optional[str] = Field(default=None, env="DATABASE_URLS")
    active_db_index: int = Field(default=0, env="ACTIVE_DB_INDEX")

    # Capacity monitoring
    db_size_limit_mb: float = Field(default=450, env="DB_SIZE_LIMIT_MB")
    db_warn_ratio: float = Field(default=0.85, env="DB_WARN_RATIO")
    db_check_interval_ms: int = Field(
        default=60 * 60 * 1000, env="DB_CHECK_INTERVAL_MS"
    )
    db_initial_probe_delay_ms: int = Field(
        default=5000, env="DB_INITIAL_PROBE_DELAY_MS"
    )
    db_initial_failover_delay_ms: int = Field(
        default=10000, env="DB_INITIAL_FAILOVER_DELAY_MS"
    )

    # Development toggles
    sql_echo: bool = Field(default=False, env="SQL_ECHO")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    def backend_urls(self) -> list[str]:
        """Return the configured backend URLs in index order."""
        if not self.database_urls:
            return []
        return [url.strip() for url in self.database_urls.split(",") if url.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
