"""
CLI entry point for the weather forecast cache.

Thin layer that wires together configuration, store, provider and service.
Business logic lives in services, this module only handles:
- Argument parsing
- Dependency wiring
- Exit codes (0 ok, 1 store/provider error, 2 configuration error)
"""
from __future__ import annotations

import argparse
import json
import sys
from typing import Optional

from pydantic import ValidationError

from app.config import Location, Settings
from app.core import ConfigurationError, build_service, configure_logging
from providers.base import ProviderError
from services.weather_cache import WeatherCacheService
from stores.base import StoreError


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all CLI options."""
    parser = argparse.ArgumentParser(
        prog="weather-cache",
        description="Inspect and maintain the weather forecast cache",
    )
    parser.add_argument(
        "--db",
        type=str,
        metavar="FILE",
        help="SQLite cache file (default: from settings/env)",
    )
    parser.add_argument(
        "--ttl-hours",
        type=float,
        help="Cache TTL in hours (default: 6)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("stats", help="Print cache statistics")
    commands.add_parser("cleanup", help="Delete expired forecasts")

    forecast = commands.add_parser("forecast", help="Get a forecast through the cache")
    forecast.add_argument("--location", help="Location name, e.g. 'Denver,US'")
    forecast.add_argument("--lat", type=float, help="Latitude (instead of --location)")
    forecast.add_argument("--lon", type=float, help="Longitude (instead of --location)")
    forecast.add_argument("--date", required=True, help="Forecast date (YYYY-MM-DD)")
    forecast.add_argument("--offset", type=int, help="Forecast horizon in days")
    forecast.add_argument(
        "--no-stale",
        action="store_true",
        help="Fail instead of serving an expired entry when the provider is down",
    )
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Build settings with CLI overrides."""
    overrides = {}
    if args.db is not None:
        overrides["cache_db_path"] = args.db
    if args.ttl_hours is not None:
        overrides["cache_ttl_hours"] = args.ttl_hours
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if getattr(args, "no_stale", False):
        overrides["stale_fallback"] = False
    return Settings(**overrides)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings_from_args(args)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        service = build_service(settings, require_provider=args.command == "forecast")
        if args.command == "stats":
            _print_json(service.get_cache_stats().to_dict())
        elif args.command == "cleanup":
            _print_json({"deleted_forecasts": service.cleanup_old_forecasts()})
        else:
            return _run_forecast(args, service)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except StoreError as e:
        print(f"Store error: {e}", file=sys.stderr)
        return 1
    except ProviderError as e:
        print(f"Provider error: {e}", file=sys.stderr)
        return 1
    return 0


def _run_forecast(args: argparse.Namespace, service: WeatherCacheService) -> int:
    """Fetch one forecast through the cache and print it with its provenance."""
    if args.location:
        location = args.location
    elif args.lat is not None and args.lon is not None:
        location = Location(latitude=args.lat, longitude=args.lon)
    else:
        print("Either --location or --lat/--lon is required", file=sys.stderr)
        return 2

    try:
        result = service.get_forecast_result(location, args.date, args.offset)
    except ValueError as e:
        print(f"Invalid request: {e}", file=sys.stderr)
        return 2

    _print_json({
        "key": result.key,
        "source": result.source.value,
        "fetched_at": result.fetched_at.isoformat(),
        "expires_at": result.expires_at.isoformat(),
        "forecast": result.payload,
    })
    return 0


if __name__ == "__main__":
    sys.exit(main())
