"""
Background Scheduler for cache reclamation.

Runs WeatherCacheService.cleanup_old_forecasts() on a fixed interval so
expired forecasts do not accumulate between manual cleanups.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from services.weather_cache import WeatherCacheService

logger = logging.getLogger("scheduler")

CLEANUP_JOB_ID = "forecast_cache_cleanup"

# Global scheduler instance
_scheduler: BackgroundScheduler | None = None


def init_scheduler(service: "WeatherCacheService", interval_minutes: int = 60) -> None:
    """
    Initialize and start the background scheduler.

    Called on HTTP server startup (see web.cache_api lifespan).

    Args:
        service: Cache service whose expired entries are reclaimed
        interval_minutes: Minutes between cleanup runs
    """
    global _scheduler

    # Avoid double initialization
    if _scheduler is not None:
        logger.warning("Scheduler already initialized, skipping")
        return

    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        run_cleanup,
        IntervalTrigger(minutes=interval_minutes),
        args=[service],
        id=CLEANUP_JOB_ID,
        name=f"Forecast cache cleanup (every {interval_minutes} min)",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info("Scheduler started with cleanup every %d minutes", interval_minutes)


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler shutdown complete")


def run_cleanup(service: "WeatherCacheService") -> int:
    """
    Run one cleanup pass.

    Failures are logged and reported as -1 so the scheduler keeps running;
    the next interval retries.
    """
    try:
        deleted = service.cleanup_old_forecasts()
    except Exception as e:
        logger.error("Scheduled forecast cleanup failed: %s", e)
        return -1
    logger.info("Scheduled cleanup removed %d expired forecasts", deleted)
    return deleted


def get_scheduler_status() -> dict:
    """Get current scheduler status for monitoring."""
    if _scheduler is None:
        return {"running": False, "jobs": []}

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": _scheduler.running,
        "jobs": jobs,
    }
