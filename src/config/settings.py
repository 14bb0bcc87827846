"""Application settings loaded from environment variables.

Uses Pydantic Settings for validation and type coercion.
All config flows through this single module.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """RoomArb pipeline configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = "INFO"

    # Live supplier search
    live_price_base_url: str = "http://localhost:8000"
    live_price_timeout_seconds: float = Field(default=30.0, gt=0)
    live_price_adults: int = Field(default=2, ge=1)
    default_currency: str = "EUR"

    # Caching
    cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    cache_max_entries: int = Field(default=1024, ge=1)
    elasticity_cache_ttl_seconds: float = Field(default=7200.0, gt=0)

    # Analysis
    analysis_lookback_days: int = Field(default=365, ge=1)
    forecast_days: int = Field(default=30, ge=1)
    max_ranked_opportunities: int = Field(default=50, ge=1)

    # Opportunity finder
    finder_history_months: int = Field(default=6, ge=1)
    finder_candidate_hotels: int = Field(default=50, ge=1)
    scan_limit_per_city: int = Field(default=10, ge=1)
    scan_max_results: int = Field(default=50, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
