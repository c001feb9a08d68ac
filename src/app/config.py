"""
Application configuration.

Centralized settings with support for:
- Environment variables (WFC_ prefix)
- .env file
- CLI argument overrides
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class Location:
    """
    Geographic location for weather queries.

    Immutable value object representing a point on Earth.
    """

    latitude: float
    longitude: float
    name: Optional[str] = None

    def __str__(self) -> str:
        if self.name:
            return f"{self.name} ({self.latitude:.4f}N, {self.longitude:.4f}E)"
        return f"{self.latitude:.4f}N, {self.longitude:.4f}E"


class Settings(BaseSettings):
    """
    Cache settings with environment variable support.

    Priority: CLI args > Environment > .env file > defaults

    Environment variables use WFC_ prefix:
    - WFC_CACHE_DB_PATH, WFC_CACHE_TTL_HOURS, WFC_CACHE_MAX_ENTRIES
    - WFC_STALE_FALLBACK, WFC_PROVIDER, WFC_OPENWEATHERMAP_API_KEY
    - WFC_CLEANUP_INTERVAL_MINUTES, WFC_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="WFC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Store
    cache_db_path: Path = Field(
        default=Path("data/cache/weather_forecast_cache.db"),
        description="SQLite file holding cached forecasts",
    )
    cache_ttl_hours: float = Field(default=6.0, gt=0, description="Hours a cached forecast stays fresh")
    cache_max_entries: Optional[int] = Field(
        default=None, gt=0, description="Capacity bound, oldest entries evicted first (unbounded if unset)"
    )
    stale_fallback: bool = Field(
        default=True, description="Serve expired entries when the provider fetch fails"
    )

    # Provider
    provider: str = Field(default="openweathermap", description="Weather provider")
    openweathermap_api_key: Optional[str] = Field(default=None, description="OpenWeatherMap API key")
    provider_timeout: float = Field(default=10.0, gt=0, description="Provider request timeout in seconds")

    # Maintenance
    cleanup_interval_minutes: int = Field(default=60, gt=0, description="Scheduled cleanup interval")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def ttl(self) -> timedelta:
        """Cache TTL as timedelta."""
        return timedelta(hours=self.cache_ttl_hours)

    def can_fetch(self) -> bool:
        """Check if provider configuration is complete."""
        if self.provider == "openweathermap":
            return bool(self.openweathermap_api_key)
        return True
