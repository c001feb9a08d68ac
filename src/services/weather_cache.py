"""
Weather cache service - persistent forecast cache in front of a paid provider.

The only component callers interact with. Reads from the injected
ForecastStore, fetches from the injected WeatherProvider on miss or expiry,
writes complete payloads back, and exposes statistics and reclamation.

Callers must already be authenticated; this service performs no
authorization of its own.

Stale fallback: when enabled and a provider fetch fails transiently, an
expired entry still present in the store is served instead of the error.
Every such fallback is logged at WARNING and marked ForecastSource.STALE.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from app.models import CacheStatistics, ForecastResult, ForecastSource
from providers.base import ProviderFetchFailed, ProviderFetchInvalid, WeatherProvider
from services.cache_keys import DateLike, LocationLike, build_cache_key, normalize_date
from services.cache_stats import build_statistics
from stores.base import ForecastStore

logger = logging.getLogger("weather_cache")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WeatherCacheService:
    """
    Forecast cache orchestrating store and provider.

    Holds no mutable state beyond configuration; per-key atomicity is the
    store's job, so any number of requests may share one instance.

    Example:
        >>> store = SqliteForecastStore("data/cache/forecasts.db", ttl=timedelta(hours=6))
        >>> provider = get_provider("openweathermap", api_key="...")
        >>> service = WeatherCacheService(store, provider)
        >>> payload = service.get_forecast("Denver", "2024-01-10")
    """

    def __init__(
        self,
        store: ForecastStore,
        provider: WeatherProvider,
        stale_fallback: bool = True,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize weather cache.

        Args:
            store: Forecast store (owns entries and the TTL)
            provider: Weather provider used on miss/expiry
            stale_fallback: Serve expired entries on transient provider failure
            clock: Returns the current UTC time (default: wall clock)
        """
        self._store = store
        self._provider = provider
        self._stale_fallback = stale_fallback
        self._clock = clock or utc_now

    @property
    def ttl(self) -> timedelta:
        return self._store.ttl

    @property
    def stale_fallback(self) -> bool:
        return self._stale_fallback

    @property
    def provider_name(self) -> str:
        """Name of the underlying weather provider."""
        return self._provider.name

    def get_forecast(
        self,
        location: LocationLike,
        target_date: DateLike,
        day_offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Return the forecast payload for a location and date.

        Raises:
            ValueError: On blank location or malformed date
            StoreUnavailable: If the store cannot be read or written
            ProviderFetchFailed: Transient failure and no fallback available
            ProviderFetchInvalid: Permanent failure (never falls back)
        """
        return self.get_forecast_result(location, target_date, day_offset).payload

    def get_forecast_result(
        self,
        location: LocationLike,
        target_date: DateLike,
        day_offset: Optional[int] = None,
    ) -> ForecastResult:
        """
        Same as get_forecast(), with provenance (cache, provider or stale).

        Flow:
        1. Fresh entry in store -> served from cache
        2. Absent or expired -> fetch, validate, put, serve
        3. Fetch failed transiently and an entry exists -> serve it as stale
        """
        key = build_cache_key(location, target_date, day_offset)
        cache_key = key.as_string()
        now = self._clock()

        entry = self._store.get(cache_key)
        if entry is not None and not entry.is_expired(now):
            logger.debug("Cache HIT for %s (age %.0fs)", cache_key, entry.age_seconds(now))
            return ForecastResult(
                key=cache_key,
                payload=entry.payload,
                source=ForecastSource.CACHE,
                fetched_at=entry.fetched_at,
                expires_at=entry.expires_at,
            )

        logger.debug("Cache %s for %s", "STALE" if entry else "MISS", cache_key)

        try:
            payload = self._provider.fetch_forecast(location, key.target_date)
        except ProviderFetchFailed as e:
            if entry is None or not self._stale_fallback:
                raise
            logger.warning(
                "Provider fetch failed for %s (%s); serving stale entry fetched %.0fs ago",
                cache_key,
                e,
                entry.age_seconds(now),
            )
            return ForecastResult(
                key=cache_key,
                payload=entry.payload,
                source=ForecastSource.STALE,
                fetched_at=entry.fetched_at,
                expires_at=entry.expires_at,
            )

        self._validate_payload(payload)
        stored = self._store.put(cache_key, payload, self._clock())
        logger.info("Cached forecast for %s (expires %s)", cache_key, stored.expires_at.isoformat())
        return ForecastResult(
            key=cache_key,
            payload=stored.payload,
            source=ForecastSource.PROVIDER,
            fetched_at=stored.fetched_at,
            expires_at=stored.expires_at,
        )

    def _validate_payload(self, payload: Any) -> None:
        """Only complete, serializable payloads may reach the store."""
        if not isinstance(payload, dict) or not payload:
            raise ProviderFetchInvalid(self._provider.name, "Empty or malformed forecast payload")
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise ProviderFetchInvalid(
                self._provider.name, f"Forecast payload is not serializable: {e}"
            ) from e

    def get_forecasts_for_dates(
        self,
        location: LocationLike,
        dates: Iterable[DateLike],
    ) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        Cache-only lookup of fresh forecasts for several dates.

        Never calls the provider. Expired or missing dates map to None.

        Returns:
            {ISO date: payload or None} for every requested date
        """
        days = [normalize_date(value) for value in dates]
        keys = {day: build_cache_key(location, day).as_string() for day in days}
        now = self._clock()
        entries = self._store.get_many(keys.values())

        result: Dict[str, Optional[Dict[str, Any]]] = {}
        for day in days:
            entry = entries.get(keys[day])
            fresh = entry is not None and not entry.is_expired(now)
            result[day.isoformat()] = entry.payload if fresh else None
        return result

    def get_cache_stats(self) -> CacheStatistics:
        """
        Get cache statistics for monitoring.

        Pure read. Raises StoreUnavailable if the store cannot be read.
        """
        now = self._clock()
        snapshot = self._store.scan_stats(now)
        return build_statistics(
            snapshot, now, ttl=self._store.ttl, max_entries=self._store.max_entries
        )

    def cleanup_old_forecasts(self) -> int:
        """
        Delete every expired entry.

        Idempotent: an immediate second call returns 0. Entries refreshed
        concurrently are never removed, since the store evaluates expiry on
        the row's current expires_at.

        Returns:
            Number of entries removed
        """
        deleted = self._store.delete_expired(self._clock())
        logger.info("Cleaned up %d expired forecasts", deleted)
        return deleted

    def invalidate(
        self,
        location: LocationLike,
        target_date: DateLike,
        day_offset: Optional[int] = None,
    ) -> bool:
        """Drop one cached forecast. Returns True if an entry was removed."""
        cache_key = build_cache_key(location, target_date, day_offset).as_string()
        removed = self._store.delete(cache_key)
        if removed:
            logger.info("Invalidated cached forecast %s", cache_key)
        return removed
