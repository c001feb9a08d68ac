"""
Cache key construction.

Equivalent location spellings must collide on the same key, otherwise the
cache fills up with duplicates and the provider gets billed for each one.

- Free-text: trimmed, lowercased, whitespace collapsed, no spaces around commas
- Coordinates: rounded to 2 decimals (~1 km)
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

from app.config import Location
from app.models import CacheKey

COORDINATE_PRECISION = 2
KEY_SEPARATOR = "|"

_WHITESPACE = re.compile(r"\s+")
_COMMA_SPACING = re.compile(r"\s*,\s*")

LocationLike = Union[str, Location]
DateLike = Union[date, datetime, str]


def normalize_location(location: LocationLike) -> str:
    """
    Canonicalize a location for key construction.

    Args:
        location: Free-text location name or a Location with coordinates

    Returns:
        Canonical location string

    Raises:
        ValueError: If a free-text location is blank or contains the key separator

    Example:
        >>> normalize_location("  Denver ,  CO ")
        'denver,co'
    """
    if isinstance(location, Location):
        # + 0.0 folds -0.0 into 0.0
        lat = round(location.latitude, COORDINATE_PRECISION) + 0.0
        lon = round(location.longitude, COORDINATE_PRECISION) + 0.0
        return f"{lat:.{COORDINATE_PRECISION}f},{lon:.{COORDINATE_PRECISION}f}"

    text = _WHITESPACE.sub(" ", location.strip().lower())
    text = _COMMA_SPACING.sub(",", text)
    if not text:
        raise ValueError("Location must not be empty")
    if KEY_SEPARATOR in text:
        raise ValueError(f"Location must not contain {KEY_SEPARATOR!r}: {location!r}")
    return text


def normalize_date(value: DateLike) -> date:
    """Accept date, datetime or ISO string and return a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def build_cache_key(
    location: LocationLike,
    target_date: DateLike,
    day_offset: Optional[int] = None,
) -> CacheKey:
    """
    Build the composite cache key for one forecast slot.

    Raises:
        ValueError: On blank location, malformed date or negative offset
    """
    if day_offset is not None and day_offset < 0:
        raise ValueError(f"day_offset must be >= 0, got {day_offset}")
    return CacheKey(
        location=normalize_location(location),
        target_date=normalize_date(target_date),
        day_offset=day_offset,
    )

