"""
Cache statistics aggregation.

Pure computation over a StoreSnapshot. "Expired" uses the same threshold
(expires_at <= now) as the reclamation path, so statistics and cleanup agree
on what is stale at any instant.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from app.models import CacheStatistics, StoreSnapshot, is_expired

__all__ = ["build_statistics", "is_expired"]


def _age_seconds(fetched_at: Optional[datetime], now: datetime) -> Optional[float]:
    if fetched_at is None:
        return None
    return max(0.0, (now - fetched_at).total_seconds())


def build_statistics(
    snapshot: StoreSnapshot,
    now: datetime,
    ttl: timedelta,
    max_entries: Optional[int] = None,
) -> CacheStatistics:
    """
    Shape a store snapshot into CacheStatistics.

    Args:
        snapshot: Counts read from the store at `now`
        now: Instant the snapshot was taken
        ttl: Store TTL (reported for context)
        max_entries: Store capacity bound, None if unbounded

    Returns:
        CacheStatistics with age bounds and live/expired split
    """
    return CacheStatistics(
        total_entries=snapshot.total,
        expired_entries=snapshot.expired,
        live_entries=max(0, snapshot.total - snapshot.expired),
        oldest_fetched_at=snapshot.oldest_fetched_at,
        newest_fetched_at=snapshot.newest_fetched_at,
        oldest_age_seconds=_age_seconds(snapshot.oldest_fetched_at, now),
        newest_age_seconds=_age_seconds(snapshot.newest_fetched_at, now),
        unique_locations=snapshot.unique_locations,
        entries_by_date=dict(snapshot.entries_by_date),
        ttl_seconds=ttl.total_seconds(),
        max_entries=max_entries,
        generated_at=now,
    )
