"""
Unit tests for ForecastStore implementations (memory and SQLite).

Every test runs against both stores through the parametrized `store`
fixture, so both honor the same contract.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0, TTL
from app.models import ForecastCacheEntry
from stores.base import ForecastStore
from stores.memory import MemoryForecastStore
from stores.sqlite import SqliteForecastStore

PAYLOAD_A = {"temperature_high": -2.0, "conditions": "lightSnow"}
PAYLOAD_B = {"temperature_high": 3.5, "conditions": "rain"}


class TestStoreBasicOperations:
    """get/put/delete semantics."""

    def test_implements_protocol(self, store):
        assert isinstance(store, ForecastStore)

    def test_get_missing_returns_none(self, store):
        """
        GIVEN: Empty store
        WHEN: get(key)
        THEN: None
        """
        assert store.get("denver|2024-01-10") is None

    def test_put_then_get(self, store):
        """
        GIVEN: Empty store
        WHEN: put(k, p, t) then get(k)
        THEN: payload == p and expires_at == t + TTL
        """
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        entry = store.get("denver|2024-01-10")

        assert isinstance(entry, ForecastCacheEntry)
        assert entry.payload == PAYLOAD_A
        assert entry.fetched_at == T0
        assert entry.expires_at == T0 + TTL
        assert entry.expires_at > entry.fetched_at

    def test_put_returns_entry(self, store):
        entry = store.put("denver|2024-01-10", PAYLOAD_A, T0)
        assert entry.key == "denver|2024-01-10"
        assert entry.expires_at == T0 + TTL

    def test_put_replaces_existing(self, store):
        """
        GIVEN: Entry for key
        WHEN: put() again with a different payload
        THEN: Last write wins, still one entry
        """
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        store.put("denver|2024-01-10", PAYLOAD_B, T0 + timedelta(hours=1))

        entry = store.get("denver|2024-01-10")
        assert entry.payload == PAYLOAD_B
        assert entry.fetched_at == T0 + timedelta(hours=1)
        assert store.count() == 1

    def test_get_returns_expired_entry(self, store):
        """Freshness is the caller's decision; expired entries stay readable."""
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        entry = store.get("denver|2024-01-10")
        assert entry.is_expired(T0 + timedelta(hours=7))
        assert entry.payload == PAYLOAD_A

    def test_delete(self, store):
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        assert store.delete("denver|2024-01-10") is True
        assert store.delete("denver|2024-01-10") is False
        assert store.get("denver|2024-01-10") is None

    def test_get_many(self, store):
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        store.put("denver|2024-01-11", PAYLOAD_B, T0)

        found = store.get_many(["denver|2024-01-10", "denver|2024-01-11", "denver|2024-01-12"])

        assert set(found) == {"denver|2024-01-10", "denver|2024-01-11", "denver|2024-01-12"}
        assert found["denver|2024-01-10"].payload == PAYLOAD_A
        assert found["denver|2024-01-11"].payload == PAYLOAD_B
        assert found["denver|2024-01-12"] is None

    def test_naive_fetched_at_treated_as_utc(self, store):
        store.put("denver|2024-01-10", PAYLOAD_A, datetime(2024, 1, 10, 6, 0))
        entry = store.get("denver|2024-01-10")
        assert entry.fetched_at == T0


class TestStoreExpiry:
    """delete_expired() reclaims exactly the expired entries."""

    def test_delete_expired_removes_only_expired(self, store):
        """
        GIVEN: One entry fetched 7h ago and one fetched 1h ago (TTL 6h)
        WHEN: delete_expired(now)
        THEN: Only the old one is removed
        """
        now = T0 + timedelta(hours=7)
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        store.put("boulder|2024-01-10", PAYLOAD_B, now - timedelta(hours=1))

        assert store.delete_expired(now) == 1
        assert store.get("denver|2024-01-10") is None
        assert store.get("boulder|2024-01-10") is not None

    def test_delete_expired_second_call_returns_zero(self, store):
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        now = T0 + timedelta(hours=7)

        assert store.delete_expired(now) == 1
        assert store.delete_expired(now) == 0

    def test_expiry_boundary_is_inclusive(self, store):
        """An entry is expired at exactly expires_at."""
        store.put("denver|2024-01-10", PAYLOAD_A, T0)

        assert store.delete_expired(T0 + TTL - timedelta(microseconds=1)) == 0
        assert store.delete_expired(T0 + TTL) == 1

    def test_denver_scenario(self, store):
        """
        GIVEN: put("denver|2024-01-10", payload_A, t0) with TTL 6h
        THEN: fresh at t0+5h, expired at t0+7h, cleanup at t0+7h removes 1
        """
        store.put("denver|2024-01-10", PAYLOAD_A, T0)

        entry = store.get("denver|2024-01-10")
        assert entry.payload == PAYLOAD_A
        assert not entry.is_expired(T0 + timedelta(hours=5))
        assert entry.is_expired(T0 + timedelta(hours=7))

        assert store.delete_expired(T0 + timedelta(hours=7)) == 1
        assert store.get("denver|2024-01-10") is None


class TestStoreStats:
    """scan_stats() snapshot."""

    def test_empty_store(self, store):
        snapshot = store.scan_stats(T0)
        assert snapshot.total == 0
        assert snapshot.expired == 0
        assert snapshot.oldest_fetched_at is None
        assert snapshot.newest_fetched_at is None
        assert snapshot.entries_by_date == {}

    def test_counts_match_expiry_threshold(self, store):
        """
        GIVEN: 3 entries, 2 of them expired at `now`
        WHEN: scan_stats(now)
        THEN: expired == number of entries with expires_at <= now
        """
        now = T0 + TTL
        store.put("denver|2024-01-10", PAYLOAD_A, T0)  # expires exactly now
        store.put("denver|2024-01-11", PAYLOAD_A, T0 - timedelta(hours=1))
        store.put("boulder|2024-01-10", PAYLOAD_B, T0 + timedelta(hours=2))

        snapshot = store.scan_stats(now)

        assert snapshot.total == 3
        assert snapshot.expired == 2
        assert snapshot.oldest_fetched_at == T0 - timedelta(hours=1)
        assert snapshot.newest_fetched_at == T0 + timedelta(hours=2)
        assert snapshot.unique_locations == 2
        assert snapshot.entries_by_date == {"2024-01-11": 1, "2024-01-10": 2}

        # Reclamation agrees with the snapshot
        assert store.delete_expired(now) == snapshot.expired


class TestStoreCapacity:
    """Optional max_entries bound with oldest-first eviction."""

    @pytest.fixture(params=["memory", "sqlite"])
    def bounded_store(self, request, tmp_path):
        if request.param == "memory":
            yield MemoryForecastStore(ttl=TTL, max_entries=3)
            return
        store = SqliteForecastStore(tmp_path / "bounded.db", ttl=TTL, max_entries=3)
        yield store
        store.close()

    def test_evicts_oldest_when_full(self, bounded_store):
        """
        GIVEN: Store at capacity (3 entries)
        WHEN: put(4th key)
        THEN: Entry with the oldest fetched_at is evicted
        """
        for i in range(3):
            bounded_store.put(f"loc{i}|2024-01-10", {"i": i}, T0 + timedelta(minutes=i))

        bounded_store.put("loc3|2024-01-10", {"i": 3}, T0 + timedelta(minutes=3))

        assert bounded_store.count() == 3
        assert bounded_store.get("loc0|2024-01-10") is None
        assert bounded_store.get("loc3|2024-01-10") is not None

    def test_update_existing_does_not_evict(self, bounded_store):
        for i in range(3):
            bounded_store.put(f"loc{i}|2024-01-10", {"i": i}, T0 + timedelta(minutes=i))

        bounded_store.put("loc1|2024-01-10", {"i": 10}, T0 + timedelta(minutes=5))

        assert bounded_store.count() == 3
        assert bounded_store.get("loc0|2024-01-10") is not None

    def test_new_entry_survives_even_if_oldest(self, bounded_store):
        """A backdated write is kept; an older existing entry goes instead."""
        for i in range(3):
            bounded_store.put(f"loc{i}|2024-01-10", {"i": i}, T0 + timedelta(minutes=i))

        bounded_store.put("old|2024-01-10", {"i": -1}, T0 - timedelta(hours=1))

        assert bounded_store.count() == 3
        assert bounded_store.get("old|2024-01-10") is not None
        assert bounded_store.get("loc0|2024-01-10") is None

    def test_unbounded_by_default(self, store):
        assert store.max_entries is None
        for i in range(20):
            store.put(f"loc{i}|2024-01-10", {"i": i}, T0)
        assert store.count() == 20


class TestStoreConfiguration:

    def test_rejects_non_positive_ttl(self, tmp_path):
        with pytest.raises(ValueError):
            MemoryForecastStore(ttl=timedelta(0))
        with pytest.raises(ValueError):
            SqliteForecastStore(tmp_path / "x.db", ttl=timedelta(hours=-1))

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            MemoryForecastStore(ttl=TTL, max_entries=0)

    def test_clear(self, store):
        store.put("denver|2024-01-10", PAYLOAD_A, T0)
        store.clear()
        assert store.count() == 0


class TestStoreConcurrency:
    """Per-key atomicity under concurrent writers."""

    def test_concurrent_puts_same_key_leave_one_row(self, store):
        """
        GIVEN: 20 threads writing the same key with different payloads
        WHEN: All complete
        THEN: Exactly one entry, matching one of the written payloads
        """
        payloads = [{"writer": i} for i in range(20)]

        def write(payload):
            store.put("denver|2024-01-10", payload, T0)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(write, payloads))

        assert store.count() == 1
        entry = store.get("denver|2024-01-10")
        assert entry.payload in payloads
        assert entry.expires_at == T0 + TTL
