"""
Service layer for the weather forecast cache.

Services orchestrate business logic between providers and stores.
"""
from services.cache_keys import build_cache_key, normalize_location
from services.cache_stats import build_statistics
from services.weather_cache import WeatherCacheService

__all__ = [
    "WeatherCacheService",
    "build_cache_key",
    "build_statistics",
    "normalize_location",
]
