"""
Data Transfer Objects (DTOs) for the weather forecast cache.

Defines the cache entry, key, snapshot and statistics structures shared by
stores, services and the HTTP surface, plus the daily forecast payload
produced by providers.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


def is_expired(expires_at: datetime, now: datetime) -> bool:
    """Single expiry threshold shared by reads, statistics and reclamation."""
    return expires_at <= now


class WeatherCondition(str, Enum):
    """Dominant condition classes used by snow-removal reports."""
    CLEAR = "clear"
    RAIN = "rain"
    LIGHT_SNOW = "lightSnow"
    HEAVY_SNOW = "heavySnow"
    DRIFTING_SNOW = "driftingSnow"
    SLEET = "sleet"
    FREEZING_RAIN = "freezingRain"


class TemperatureTrend(str, Enum):
    """Temperature development over the forecast day."""
    UP = "up"
    DOWN = "down"
    STEADY = "steady"


class ForecastSource(str, Enum):
    """Where a served forecast payload came from."""
    CACHE = "cache"
    PROVIDER = "provider"
    STALE = "stale"


@dataclass(frozen=True)
class CacheKey:
    """
    Composite identity of one forecast slot.

    Rendered as ``<location>|<YYYY-MM-DD>`` with an optional ``|+<offset>``
    suffix for forecast horizons. Build instances through
    ``services.cache_keys.build_cache_key`` so locations are normalized.
    """

    location: str
    target_date: date
    day_offset: Optional[int] = None

    def as_string(self) -> str:
        key = f"{self.location}|{self.target_date.isoformat()}"
        if self.day_offset is not None:
            key += f"|+{self.day_offset}"
        return key

    def __str__(self) -> str:
        return self.as_string()


@dataclass
class ForecastCacheEntry:
    """One cached forecast as held by a ForecastStore."""
    key: str
    payload: Dict[str, Any]
    fetched_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """True once now has reached expires_at."""
        return is_expired(self.expires_at, now)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()


@dataclass
class StoreSnapshot:
    """Raw counts read from a store at one instant (advisory)."""
    total: int = 0
    expired: int = 0
    oldest_fetched_at: Optional[datetime] = None
    newest_fetched_at: Optional[datetime] = None
    unique_locations: int = 0
    entries_by_date: Dict[str, int] = field(default_factory=dict)


@dataclass
class CacheStatistics:
    """Summary of cache contents for observability and cleanup reporting."""
    total_entries: int
    expired_entries: int
    live_entries: int
    oldest_fetched_at: Optional[datetime]
    newest_fetched_at: Optional[datetime]
    oldest_age_seconds: Optional[float]
    newest_age_seconds: Optional[float]
    unique_locations: int
    entries_by_date: Dict[str, int]
    ttl_seconds: float
    max_entries: Optional[int]
    generated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation (datetimes as ISO strings)."""
        data = asdict(self)
        for name in ("oldest_fetched_at", "newest_fetched_at", "generated_at"):
            value = data[name]
            data[name] = value.isoformat() if value is not None else None
        return data


@dataclass
class ForecastResult:
    """A served forecast payload together with its provenance."""
    key: str
    payload: Dict[str, Any]
    source: ForecastSource
    fetched_at: datetime
    expires_at: datetime

    @property
    def is_stale(self) -> bool:
        return self.source == ForecastSource.STALE


@dataclass
class DailyForecast:
    """
    Daily weather summary for one location and date.

    Produced by providers and stored verbatim (as ``to_payload()``) in the
    cache. Temperatures in Celsius, precipitation in mm, snowfall in cm,
    wind in m/s.
    """
    forecast_date: str
    temperature_high: float
    temperature_low: float
    temperature_avg: float
    conditions: WeatherCondition
    precipitation_total: float = 0.0
    snowfall_total: float = 0.0
    wind_speed_max: float = 0.0
    wind_speed_avg: float = 0.0
    temperature_trend: TemperatureTrend = TemperatureTrend.STEADY
    conditions_morning: Optional[WeatherCondition] = None
    conditions_afternoon: Optional[WeatherCondition] = None
    conditions_evening: Optional[WeatherCondition] = None
    forecast_confidence: float = 0.9
    forecast_id: Optional[str] = None
    api_source: str = "openweathermap"

    def to_payload(self) -> Dict[str, Any]:
        """Plain dict with enum members flattened to their values."""
        data = asdict(self)
        for name, value in data.items():
            if isinstance(value, Enum):
                data[name] = value.value
        return data
