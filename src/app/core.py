"""
Dependency wiring.

Builds store, provider and service from Settings. Every entry point (CLI,
HTTP app, scheduler) gets its collaborators from here instead of reaching
for module-level singletons.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from app.config import Settings
from providers.base import ProviderFetchInvalid, WeatherProvider, get_provider
from services.weather_cache import WeatherCacheService
from stores.base import ForecastStore
from stores.sqlite import SqliteForecastStore

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class ConfigurationError(Exception):
    """Raised when settings are incomplete for the requested operation."""

    pass


class UnconfiguredProvider:
    """Stand-in for a provider without credentials; every fetch is refused."""

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def fetch_forecast(self, location: Any, target_date: date) -> Dict[str, Any]:
        raise ProviderFetchInvalid(self._name, "Provider is not configured (missing API key)")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for CLI and server entry points."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_store(settings: Settings) -> ForecastStore:
    """Open the SQLite store configured in settings."""
    return SqliteForecastStore(
        settings.cache_db_path,
        ttl=settings.ttl,
        max_entries=settings.cache_max_entries,
    )


def build_provider(settings: Settings) -> WeatherProvider:
    """
    Create the configured weather provider.

    Raises:
        ConfigurationError: If the provider is missing its credentials
    """
    if not settings.can_fetch():
        raise ConfigurationError(
            f"Provider '{settings.provider}' is not configured (missing API key)"
        )
    return get_provider(
        settings.provider,
        api_key=settings.openweathermap_api_key,
        timeout=settings.provider_timeout,
    )


def build_service(
    settings: Settings,
    store: Optional[ForecastStore] = None,
    provider: Optional[WeatherProvider] = None,
    require_provider: bool = True,
) -> WeatherCacheService:
    """
    Wire a WeatherCacheService from settings.

    Explicit store/provider arguments take precedence (tests, embedding).
    With require_provider=False a missing API key is tolerated: statistics
    and cleanup work, forecast fetches fail with ProviderFetchInvalid.
    """
    if provider is None:
        if require_provider or settings.can_fetch():
            provider = build_provider(settings)
        else:
            provider = UnconfiguredProvider(settings.provider)
    return WeatherCacheService(
        store=store if store is not None else build_store(settings),
        provider=provider,
        stale_fallback=settings.stale_fallback,
    )
