"""
Integration tests for the background cleanup scheduler.

Uses a real SQLite store; the interval job itself is not awaited,
run_cleanup is invoked directly.
"""
from __future__ import annotations

import logging

import pytest

from conftest import FailingStore
from services.weather_cache import WeatherCacheService
from web import scheduler


@pytest.fixture
def service(sqlite_store, provider, clock):
    return WeatherCacheService(sqlite_store, provider, clock=clock)


@pytest.fixture(autouse=True)
def _stop_scheduler():
    yield
    scheduler.shutdown_scheduler()


class TestRunCleanup:

    def test_returns_deleted_count(self, service, clock) -> None:
        """
        GIVEN: Two forecasts, both past TTL
        WHEN: run_cleanup
        THEN: 2 returned, cache empty
        """
        service.get_forecast("Denver", "2024-01-10")
        service.get_forecast("Aspen", "2024-01-10")
        clock.advance(hours=7)

        assert scheduler.run_cleanup(service) == 2
        assert service.get_cache_stats().total_entries == 0

    def test_failure_is_logged_not_raised(self, provider, clock, caplog) -> None:
        broken = WeatherCacheService(FailingStore(), provider, clock=clock)

        with caplog.at_level(logging.ERROR, logger="scheduler"):
            assert scheduler.run_cleanup(broken) == -1

        assert "Scheduled forecast cleanup failed" in caplog.text


class TestSchedulerLifecycle:

    def test_status_before_init(self) -> None:
        assert scheduler.get_scheduler_status() == {"running": False, "jobs": []}

    def test_init_registers_cleanup_job(self, service) -> None:
        scheduler.init_scheduler(service, interval_minutes=15)

        status = scheduler.get_scheduler_status()
        assert status["running"] is True
        assert len(status["jobs"]) == 1
        job = status["jobs"][0]
        assert job["id"] == scheduler.CLEANUP_JOB_ID
        assert "15 min" in job["name"]
        assert job["next_run"] is not None

    def test_double_init_is_ignored(self, service, caplog) -> None:
        scheduler.init_scheduler(service, interval_minutes=15)
        with caplog.at_level(logging.WARNING, logger="scheduler"):
            scheduler.init_scheduler(service, interval_minutes=5)

        assert "already initialized" in caplog.text
        assert "15 min" in scheduler.get_scheduler_status()["jobs"][0]["name"]

    def test_shutdown(self, service) -> None:
        scheduler.init_scheduler(service, interval_minutes=15)
        scheduler.shutdown_scheduler()
        assert scheduler.get_scheduler_status()["running"] is False
