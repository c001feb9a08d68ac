"""
Cache management HTTP endpoints.

Starlette application exposing cache statistics and cleanup:
- GET    /api/weather/cache  statistics (default) and optional cleanup
- DELETE /api/weather/cache  cleanup only

Must be mounted behind the authentication layer; these handlers trust
every request they receive. Failures are reported as opaque 500 responses,
details go to the log only.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from web import scheduler

if TYPE_CHECKING:
    from app.config import Settings
    from services.weather_cache import WeatherCacheService

logger = logging.getLogger("cache_api")

CACHE_PATH = "/api/weather/cache"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _param(request: Request, name: str) -> str:
    return (request.query_params.get(name) or "").strip().lower()


def _service(request: Request) -> "WeatherCacheService":
    return request.app.state.service


def cache_status(request: Request) -> JSONResponse:
    """
    GET: cache statistics, optionally after a cleanup.

    Query params:
    - cleanup=true: clean up expired entries first
    - stats=false: omit statistics (any other value keeps them)
    """
    should_cleanup = _param(request, "cleanup") == "true"
    include_stats = _param(request, "stats") != "false"
    service = _service(request)

    try:
        cleanup = None
        if should_cleanup:
            deleted = service.cleanup_old_forecasts()
            cleanup = {"deleted_forecasts": deleted, "cleaned_at": _timestamp()}

        stats = None
        if include_stats:
            stats = service.get_cache_stats().to_dict()
    except Exception:
        logger.exception("Error in weather cache management")
        return JSONResponse(
            {"success": False, "error": "Failed to manage weather cache"}, status_code=500
        )

    return JSONResponse({
        "success": True,
        "stats": stats,
        "cleanup": cleanup,
        "timestamp": _timestamp(),
    })


def cache_cleanup(request: Request) -> JSONResponse:
    """DELETE: remove expired entries and report the count."""
    try:
        deleted = _service(request).cleanup_old_forecasts()
    except Exception:
        logger.exception("Error cleaning weather cache")
        return JSONResponse(
            {"success": False, "error": "Failed to clean weather cache"}, status_code=500
        )

    return JSONResponse({
        "success": True,
        "deleted_forecasts": deleted,
        "cleaned_at": _timestamp(),
    })


def create_app(
    service: "WeatherCacheService",
    cleanup_interval_minutes: Optional[int] = None,
) -> Starlette:
    """
    Build the cache management application.

    Args:
        service: Injected cache service shared by all requests
        cleanup_interval_minutes: Start the background cleanup job with this
            interval; None leaves scheduling to the caller
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if cleanup_interval_minutes:
            scheduler.init_scheduler(service, cleanup_interval_minutes)
        try:
            yield
        finally:
            if cleanup_interval_minutes:
                scheduler.shutdown_scheduler()

    app = Starlette(
        routes=[
            Route(CACHE_PATH, cache_status, methods=["GET"]),
            Route(CACHE_PATH, cache_cleanup, methods=["DELETE"]),
        ],
        lifespan=lifespan,
    )
    app.state.service = service
    return app


def build_app(settings: Optional["Settings"] = None) -> Starlette:
    """
    Application factory for ASGI servers (e.g. ``uvicorn --factory``).

    Statistics and cleanup never need the provider, so a missing API key
    does not prevent startup.
    """
    from app.config import Settings
    from app.core import build_service, configure_logging

    settings = settings or Settings()
    configure_logging(settings.log_level)
    service = build_service(settings, require_provider=False)
    return create_app(service, cleanup_interval_minutes=settings.cleanup_interval_minutes)
