"""
SQLite forecast store.

Persistent cache backend keyed by cache key. Every statement runs in its own
short transaction, so a put, a delete_expired sweep and a stats scan only
ever contend at row level inside SQLite; there is no process-wide lock.

- WAL journal: readers (get, scan_stats) never block the writer
- One connection per thread
- Timestamps stored as integer microseconds since the epoch (UTC)
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from app.models import ForecastCacheEntry, StoreSnapshot
from stores.base import StoreUnavailable, validate_ttl

logger = logging.getLogger("forecast_store")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
BUSY_TIMEOUT = 5.0  # seconds
BATCH_SIZE = 500  # stay below SQLite's host parameter limit

SCHEMA = """
CREATE TABLE IF NOT EXISTS weather_forecast_cache (
    cache_key TEXT PRIMARY KEY,
    location TEXT NOT NULL,
    forecast_date TEXT NOT NULL,
    payload TEXT NOT NULL,
    fetched_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL,
    CHECK (expires_at > fetched_at)
);
CREATE INDEX IF NOT EXISTS idx_weather_forecast_expires_at
    ON weather_forecast_cache(expires_at);
CREATE INDEX IF NOT EXISTS idx_weather_forecast_fetched_at
    ON weather_forecast_cache(fetched_at);
"""


def _to_micros(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(microseconds=1)


def _from_micros(value: int) -> datetime:
    return EPOCH + timedelta(microseconds=value)


def _split_key(key: str) -> tuple[str, str]:
    parts = key.split("|")
    if len(parts) < 2 or not parts[0]:
        raise ValueError(f"Malformed cache key: {key!r}")
    return parts[0], parts[1]


class SqliteForecastStore:
    """
    SQLite-backed forecast store with TTL expiry and optional capacity bound.

    Example:
        >>> store = SqliteForecastStore("data/cache/forecasts.db", ttl=timedelta(hours=6))
        >>> store.put("denver|2024-01-10", {"temperature_high": -2.0}, fetched_at)
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        ttl: timedelta,
        max_entries: Optional[int] = None,
    ) -> None:
        """
        Open (and create if needed) the cache database.

        Args:
            db_path: SQLite file path (":memory:" is not supported, use
                MemoryForecastStore instead)
            ttl: Time-to-live applied on every put
            max_entries: Capacity bound, None for unbounded

        Raises:
            ValueError: If ttl or max_entries is not positive
            StoreUnavailable: If the database cannot be opened
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._db_path = Path(db_path)
        self._ttl = validate_ttl(ttl)
        self._max_entries = max_entries
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection().executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailable(self.name, f"Cannot open {self._db_path}: {e}") from e

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def max_entries(self) -> Optional[int]:
        return self._max_entries

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        """Return this thread's connection, opening it on first use."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self._db_path),
                    timeout=BUSY_TIMEOUT,
                    isolation_level=None,  # autocommit; transactions are explicit
                    check_same_thread=False,
                )
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.Error as e:
                raise self._fail("connect", e) from e
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _fail(self, operation: str, error: Exception) -> StoreUnavailable:
        logger.error("Store %s failed on %s: %s", operation, self._db_path, error)
        return StoreUnavailable(self.name, f"{operation} failed: {error}")

    def _row_to_entry(self, row: tuple) -> ForecastCacheEntry:
        key, payload, fetched_at, expires_at = row
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise StoreUnavailable(self.name, f"Corrupt payload for {key}: {e}") from e
        return ForecastCacheEntry(
            key=key,
            payload=data,
            fetched_at=_from_micros(fetched_at),
            expires_at=_from_micros(expires_at),
        )

    def get(self, key: str) -> Optional[ForecastCacheEntry]:
        try:
            row = self._connection().execute(
                "SELECT cache_key, payload, fetched_at, expires_at "
                "FROM weather_forecast_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise self._fail("get", e) from e
        if row is None:
            return None
        return self._row_to_entry(row)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[ForecastCacheEntry]]:
        wanted = list(dict.fromkeys(keys))
        result: Dict[str, Optional[ForecastCacheEntry]] = {key: None for key in wanted}
        conn = self._connection()
        try:
            for i in range(0, len(wanted), BATCH_SIZE):
                batch = wanted[i:i + BATCH_SIZE]
                placeholders = ",".join("?" * len(batch))
                rows = conn.execute(
                    "SELECT cache_key, payload, fetched_at, expires_at "
                    f"FROM weather_forecast_cache WHERE cache_key IN ({placeholders})",
                    batch,
                ).fetchall()
                for row in rows:
                    result[row[0]] = self._row_to_entry(row)
        except sqlite3.Error as e:
            raise self._fail("get_many", e) from e
        return result

    def put(
        self, key: str, payload: Dict[str, Any], fetched_at: datetime
    ) -> ForecastCacheEntry:
        location, forecast_date = _split_key(key)
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        entry = ForecastCacheEntry(
            key=key,
            payload=payload,
            fetched_at=fetched_at,
            expires_at=fetched_at + self._ttl,
        )
        raw = json.dumps(payload)
        conn = self._connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO weather_forecast_cache
                        (cache_key, location, forecast_date, payload, fetched_at, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(cache_key) DO UPDATE SET
                        location = excluded.location,
                        forecast_date = excluded.forecast_date,
                        payload = excluded.payload,
                        fetched_at = excluded.fetched_at,
                        expires_at = excluded.expires_at
                    """,
                    (
                        key,
                        location,
                        forecast_date,
                        raw,
                        _to_micros(entry.fetched_at),
                        _to_micros(entry.expires_at),
                    ),
                )
                evicted = self._evict_over_capacity(conn, keep=key)
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as e:
            raise self._fail("put", e) from e

        if evicted:
            logger.info("Evicted %d oldest entries (max_entries=%d)", evicted, self._max_entries)
        return entry

    def _evict_over_capacity(self, conn: sqlite3.Connection, keep: str) -> int:
        """Delete the oldest rows beyond max_entries, never the row just written."""
        if self._max_entries is None:
            return 0
        total = conn.execute("SELECT COUNT(*) FROM weather_forecast_cache").fetchone()[0]
        overflow = total - self._max_entries
        if overflow <= 0:
            return 0
        cursor = conn.execute(
            """
            DELETE FROM weather_forecast_cache WHERE cache_key IN (
                SELECT cache_key FROM weather_forecast_cache
                WHERE cache_key != ?
                ORDER BY fetched_at ASC, cache_key ASC
                LIMIT ?
            )
            """,
            (keep, overflow),
        )
        return cursor.rowcount

    def delete(self, key: str) -> bool:
        try:
            cursor = self._connection().execute(
                "DELETE FROM weather_forecast_cache WHERE cache_key = ?", (key,)
            )
        except sqlite3.Error as e:
            raise self._fail("delete", e) from e
        return cursor.rowcount > 0

    def delete_expired(self, now: datetime) -> int:
        try:
            cursor = self._connection().execute(
                "DELETE FROM weather_forecast_cache WHERE expires_at <= ?",
                (_to_micros(now),),
            )
        except sqlite3.Error as e:
            raise self._fail("delete_expired", e) from e
        return cursor.rowcount

    def scan_stats(self, now: datetime) -> StoreSnapshot:
        conn = self._connection()
        try:
            # Deferred read transaction: both queries see the same WAL snapshot
            conn.execute("BEGIN")
            try:
                total, expired, oldest, newest, locations = conn.execute(
                    """
                    SELECT COUNT(*),
                           COALESCE(SUM(CASE WHEN expires_at <= ? THEN 1 ELSE 0 END), 0),
                           MIN(fetched_at),
                           MAX(fetched_at),
                           COUNT(DISTINCT location)
                    FROM weather_forecast_cache
                    """,
                    (_to_micros(now),),
                ).fetchone()
                by_date = conn.execute(
                    "SELECT forecast_date, COUNT(*) FROM weather_forecast_cache "
                    "GROUP BY forecast_date ORDER BY forecast_date DESC"
                ).fetchall()
            finally:
                if conn.in_transaction:
                    conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise self._fail("scan_stats", e) from e

        return StoreSnapshot(
            total=total,
            expired=expired,
            oldest_fetched_at=_from_micros(oldest) if oldest is not None else None,
            newest_fetched_at=_from_micros(newest) if newest is not None else None,
            unique_locations=locations,
            entries_by_date={day: count for day, count in by_date},
        )

    def count(self) -> int:
        try:
            return self._connection().execute(
                "SELECT COUNT(*) FROM weather_forecast_cache"
            ).fetchone()[0]
        except sqlite3.Error as e:
            raise self._fail("count", e) from e

    def clear(self) -> None:
        """
        Remove all cached entries.

        Used for testing and manual cache invalidation.
        """
        try:
            self._connection().execute("DELETE FROM weather_forecast_cache")
        except sqlite3.Error as e:
            raise self._fail("clear", e) from e

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def __enter__(self) -> "SqliteForecastStore":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
