"""
Weather provider protocol and factory.

Defines the interface that all weather providers must implement,
enabling easy extension with new data sources. Providers are always
constructed explicitly and injected into the cache service; there is no
process-wide client.
"""
from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from app.config import Location


@runtime_checkable
class WeatherProvider(Protocol):
    """
    Protocol for weather data providers.

    All providers must implement this interface to be usable
    by the WeatherCacheService. Uses structural subtyping (PEP 544).

    Example:
        >>> provider = get_provider("openweathermap", api_key="...")
        >>> payload = provider.fetch_forecast("denver", date(2024, 1, 10))
    """

    @property
    def name(self) -> str:
        """
        Provider identifier.

        Returns:
            Short name like "openweathermap"
        """
        ...

    def fetch_forecast(
        self,
        location: Union[str, "Location"],
        target_date: date,
    ) -> Dict[str, Any]:
        """
        Fetch the forecast for one location and date.

        Single-shot from the caller's point of view; any retries happen
        inside the provider.

        Args:
            location: Free-text location or coordinates
            target_date: Day the forecast applies to

        Returns:
            Complete forecast payload (opaque to the cache)

        Raises:
            ProviderFetchFailed: Transient failure (timeout, 5xx)
            ProviderFetchInvalid: Permanent failure (invalid location, bad data)
        """
        ...


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderNotFoundError(ProviderError):
    """Raised when an unknown provider is requested."""

    def __init__(self, name: str) -> None:
        super().__init__(name, f"Provider not found: {name}")


class ProviderFetchFailed(ProviderError):
    """Raised on transient fetch failures (timeout, connection error, 5xx)."""

    pass


class ProviderFetchInvalid(ProviderError):
    """Raised on permanent fetch failures (invalid location, unusable response)."""

    pass


_PROVIDER_FACTORIES: dict[str, type] = {}


def register_provider(name: str, factory: type) -> None:
    """
    Register a provider factory.

    Called by provider modules to register themselves.
    """
    _PROVIDER_FACTORIES[name] = factory


def get_provider(name: str, **kwargs: Any) -> WeatherProvider:
    """
    Factory function to create provider instances.

    Each call returns a new instance; callers own it and pass it on.

    Args:
        name: Provider identifier (e.g., "openweathermap")
        **kwargs: Constructor arguments (api_key, timeout, ...)

    Returns:
        Provider instance implementing WeatherProvider protocol

    Raises:
        ProviderNotFoundError: If provider is not registered
    """
    # Lazy import providers to populate registry
    if not _PROVIDER_FACTORIES:
        _load_providers()

    if name not in _PROVIDER_FACTORIES:
        raise ProviderNotFoundError(name)

    return _PROVIDER_FACTORIES[name](**kwargs)


def _load_providers() -> None:
    """Load all available providers."""
    from providers.openweathermap import OpenWeatherMapProvider
    register_provider("openweathermap", OpenWeatherMapProvider)


def available_providers() -> list[str]:
    """Return list of available provider names."""
    if not _PROVIDER_FACTORIES:
        _load_providers()
    return list(_PROVIDER_FACTORIES.keys())
