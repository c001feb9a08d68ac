"""
Forecast store protocol and errors.

Defines the interface every cache backend must implement. A store owns
entry storage exclusively; it computes expires_at from its TTL on write and
never interprets freshness on read.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Protocol, runtime_checkable

from app.models import ForecastCacheEntry, StoreSnapshot


class StoreError(Exception):
    """Base exception for store errors."""

    def __init__(self, store: str, message: str) -> None:
        self.store = store
        super().__init__(f"[{store}] {message}")


class StoreUnavailable(StoreError):
    """
    Raised when the storage layer cannot be read or written.

    Must never be treated as a cache miss: doing so would turn a storage
    outage into a burst of paid provider calls.
    """

    pass


def validate_ttl(ttl: timedelta) -> timedelta:
    """Reject non-positive TTLs so that expires_at > fetched_at always holds."""
    if ttl <= timedelta(0):
        raise ValueError(f"TTL must be positive, got {ttl}")
    return ttl


@runtime_checkable
class ForecastStore(Protocol):
    """
    Protocol for forecast cache stores.

    Implementations must make each call atomic per key (no partial overwrite
    visible to concurrent readers) without serializing unrelated keys behind
    a global lock held across I/O.
    """

    @property
    def name(self) -> str:
        """Store identifier for logs and errors."""
        ...

    @property
    def ttl(self) -> timedelta:
        ...

    @property
    def max_entries(self) -> Optional[int]:
        """Capacity bound, or None for unbounded."""
        ...

    def get(self, key: str) -> Optional[ForecastCacheEntry]:
        """
        Return the entry for key regardless of expiry, or None.

        Raises:
            StoreUnavailable: On storage failure
        """
        ...

    def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[ForecastCacheEntry]]:
        """Batch variant of get(); every requested key is present in the result."""
        ...

    def put(
        self, key: str, payload: Dict[str, Any], fetched_at: datetime
    ) -> ForecastCacheEntry:
        """
        Upsert an entry; expires_at = fetched_at + ttl.

        Replaces any existing entry for key (last write wins). When a
        capacity bound is set, evicts the oldest entries by fetched_at.

        Raises:
            StoreUnavailable: On storage failure
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete a single entry. Returns True if one was removed."""
        ...

    def delete_expired(self, now: datetime) -> int:
        """
        Delete every entry with expires_at <= now.

        Returns:
            Number of entries removed
        """
        ...

    def scan_stats(self, now: datetime) -> StoreSnapshot:
        """Advisory snapshot of store contents; never blocks writers."""
        ...

    def count(self) -> int:
        ...
