"""
In-process forecast store.

Thread-safe dict-backed store for tests and single-process deployments.
Contents do not survive a restart; use SqliteForecastStore for that.
"""
from __future__ import annotations

import copy
from collections import Counter
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Dict, Iterable, Optional

from app.models import ForecastCacheEntry, StoreSnapshot, is_expired
from stores.base import validate_ttl


class MemoryForecastStore:
    """
    Dict-backed forecast store.

    Features:
    - TTL applied on put, same contract as SqliteForecastStore
    - Optional capacity bound with oldest-first eviction (by fetched_at)
    - Thread-safe: each call holds the lock only for its own dict operations
    """

    def __init__(
        self,
        ttl: timedelta,
        max_entries: Optional[int] = None,
    ) -> None:
        """
        Initialize store.

        Args:
            ttl: Time-to-live applied on every put
            max_entries: Capacity bound, None for unbounded
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._entries: Dict[str, ForecastCacheEntry] = {}
        self._lock = Lock()
        self._ttl = validate_ttl(ttl)
        self._max_entries = max_entries

    @property
    def name(self) -> str:
        return "memory"

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def max_entries(self) -> Optional[int]:
        return self._max_entries

    def get(self, key: str) -> Optional[ForecastCacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
        return copy.deepcopy(entry)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[ForecastCacheEntry]]:
        with self._lock:
            found = {key: self._entries.get(key) for key in keys}
        return copy.deepcopy(found)

    def put(
        self, key: str, payload: Dict[str, Any], fetched_at: datetime
    ) -> ForecastCacheEntry:
        if "|" not in key:
            raise ValueError(f"Malformed cache key: {key!r}")
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        # Entry is built completely before it becomes visible
        entry = ForecastCacheEntry(
            key=key,
            payload=copy.deepcopy(payload),
            fetched_at=fetched_at,
            expires_at=fetched_at + self._ttl,
        )
        with self._lock:
            self._entries[key] = entry
            self._evict_over_capacity(keep=key)
        return copy.deepcopy(entry)

    def _evict_over_capacity(self, keep: str) -> None:
        """Drop oldest entries beyond max_entries. Caller holds the lock."""
        if self._max_entries is None:
            return
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        candidates = sorted(
            (entry for key, entry in self._entries.items() if key != keep),
            key=lambda entry: (entry.fetched_at, entry.key),
        )
        for entry in candidates[:overflow]:
            del self._entries[entry.key]

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if is_expired(entry.expires_at, now)
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def scan_stats(self, now: datetime) -> StoreSnapshot:
        with self._lock:
            entries = list(self._entries.values())

        if not entries:
            return StoreSnapshot()

        fetched = [entry.fetched_at for entry in entries]
        locations = {entry.key.split("|")[0] for entry in entries}
        by_date = Counter(entry.key.split("|")[1] for entry in entries)
        return StoreSnapshot(
            total=len(entries),
            expired=sum(1 for entry in entries if is_expired(entry.expires_at, now)),
            oldest_fetched_at=min(fetched),
            newest_fetched_at=max(fetched),
            unique_locations=len(locations),
            entries_by_date=dict(sorted(by_date.items(), reverse=True)),
        )

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """
        Clear all cached entries.

        Used for testing and manual cache invalidation.
        """
        with self._lock:
            self._entries.clear()
