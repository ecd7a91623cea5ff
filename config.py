"""
Configuration management for the holdings ledger.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Database
    database_url: str = "sqlite:///holdings_ledger.db"
    db_echo: bool = False
    sqlite_busy_timeout_ms: int = 5000

    # Optimistic retry for first-buy races on a fresh holding
    conflict_retry_attempts: int = 3
    conflict_retry_wait_seconds: float = 0.05

    # Concentration risk thresholds (percent of portfolio value)
    max_single_position_pct: float = 20.0
    high_concentration_pct: float = 30.0
    min_positions: int = 3

    # Market data
    price_cache_ttl_seconds: int = 60
    price_fetch_attempts: int = 3

    log_level: str = "INFO"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
