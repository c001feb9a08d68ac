"""
OpenWeatherMap Weather Provider.

Builds a daily forecast summary for one location and date from the
OpenWeatherMap 5 day / 3 hour forecast endpoint:
- Temperature high/low/average and trend over the day
- Dominant condition plus morning/afternoon/evening conditions
- Precipitation, snowfall and wind totals

API Documentation: https://openweathermap.org/forecast5

Failure classification:
- ProviderFetchFailed: timeouts, connection errors, 429, 5xx
- ProviderFetchInvalid: 400/401/404, unusable payloads, date outside the window
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Location
from app.models import DailyForecast, TemperatureTrend, WeatherCondition
from providers.base import ProviderFetchFailed, ProviderFetchInvalid

logger = logging.getLogger("openweathermap")

# API Configuration
BASE_URL = "https://api.openweathermap.org/data/2.5"
TIMEOUT = 10.0

# Retry Configuration
RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 1  # seconds
RETRY_WAIT_MAX = 10  # seconds
RETRY_STATUS_CODES = {502, 503, 504}
TRANSIENT_STATUS_CODES = RETRY_STATUS_CODES | {429, 500}

TREND_THRESHOLD_C = 2.0
SLOTS_PER_DAY = 8  # 3-hour steps

# Local hour ranges [start, end)
DAY_PERIODS = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 24),
}


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if exception is retryable."""
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRY_STATUS_CODES
    if isinstance(exception, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return False


def map_condition(condition: str, description: str) -> WeatherCondition:
    """
    Map OpenWeatherMap condition/description text to a WeatherCondition.

    Description keywords win over the coarse condition group, so
    "Snow / heavy snow" maps to HEAVY_SNOW and not LIGHT_SNOW.
    """
    condition_lower = condition.lower()
    description_lower = description.lower()

    if "freezing" in description_lower:
        return WeatherCondition.FREEZING_RAIN
    if "sleet" in description_lower:
        return WeatherCondition.SLEET
    if "heavy snow" in description_lower or "blizzard" in description_lower:
        return WeatherCondition.HEAVY_SNOW
    if "light snow" in description_lower or "snow shower" in description_lower:
        return WeatherCondition.LIGHT_SNOW
    if "drifting" in description_lower or "blowing snow" in description_lower:
        return WeatherCondition.DRIFTING_SNOW
    if "snow" in condition_lower:
        return WeatherCondition.LIGHT_SNOW
    if "rain" in condition_lower or "drizzle" in condition_lower:
        return WeatherCondition.RAIN
    return WeatherCondition.CLEAR


def calculate_trend(temperatures: List[float]) -> TemperatureTrend:
    """Compare first and last temperature of the day."""
    if len(temperatures) < 2:
        return TemperatureTrend.STEADY
    difference = temperatures[-1] - temperatures[0]
    if difference > TREND_THRESHOLD_C:
        return TemperatureTrend.UP
    if difference < -TREND_THRESHOLD_C:
        return TemperatureTrend.DOWN
    return TemperatureTrend.STEADY


def _dominant(conditions: Iterable[WeatherCondition]) -> Optional[WeatherCondition]:
    counts = Counter(conditions)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


class OpenWeatherMapProvider:
    """
    OpenWeatherMap provider producing DailyForecast payloads.

    The HTTP client can be injected (e.g. with an httpx.MockTransport);
    otherwise one is created with the configured timeout.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = TIMEOUT,
        base_url: str = BASE_URL,
        client: Optional[httpx.Client] = None,
        retry_attempts: int = RETRY_ATTEMPTS,
    ) -> None:
        """
        Initialize provider with HTTP client.

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("OpenWeatherMap API key not configured")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
            retry=retry_if_exception(_is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "openweathermap"

    def close(self) -> None:
        self._client.close()

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self._client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    def _request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Make HTTP request to OpenWeatherMap with retry logic.

        Retries on:
        - HTTP 502, 503, 504 (transient server errors)
        - Connection errors
        - Timeouts

        Raises:
            ProviderFetchFailed: On transient errors after max retries
            ProviderFetchInvalid: On client errors or non-JSON responses
        """
        url = f"{self._base_url}{endpoint}"
        try:
            return self._retrying.copy()(self._get, url, {**params, "appid": self._api_key})
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in TRANSIENT_STATUS_CODES or status >= 500:
                raise ProviderFetchFailed(self.name, f"API error: {status}") from e
            raise ProviderFetchInvalid(self.name, f"API error: {status}") from e
        except httpx.TimeoutException as e:
            raise ProviderFetchFailed(self.name, f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderFetchFailed(self.name, f"Request failed: {e}") from e
        except ValueError as e:
            raise ProviderFetchInvalid(self.name, f"Response is not JSON: {e}") from e

    def _location_params(self, location: Union[str, Location]) -> Dict[str, Any]:
        if isinstance(location, Location):
            return {"lat": location.latitude, "lon": location.longitude}
        return {"q": location}

    def fetch_forecast(
        self,
        location: Union[str, Location],
        target_date: date,
    ) -> Dict[str, Any]:
        """
        Fetch daily forecast for a location.

        Args:
            location: City name ("denver,us") or Location with coordinates
            target_date: Local date of the requested forecast day

        Returns:
            DailyForecast payload dict

        Raises:
            ProviderFetchFailed: On transient API failures
            ProviderFetchInvalid: On invalid location or unusable data
        """
        params = {**self._location_params(location), "units": "metric"}
        logger.info("Fetching OpenWeatherMap forecast for %s on %s", location, target_date)

        data = self._request("/forecast", params)
        forecast = self._parse_daily(data, target_date)
        return forecast.to_payload()

    def _parse_daily(self, data: Dict[str, Any], target_date: date) -> DailyForecast:
        """
        Summarise the 3-hour slots falling on target_date (local time).

        Raises:
            ProviderFetchInvalid: If the response is malformed or has no slots
        """
        try:
            city = data.get("city") or {}
            offset = timedelta(seconds=int(city.get("timezone", 0)))

            slots = []
            for item in data["list"]:
                local = datetime.fromtimestamp(item["dt"], tz=timezone.utc) + offset
                if local.date() != target_date:
                    continue
                weather = (item.get("weather") or [{}])[0]
                slots.append({
                    "hour": local.hour,
                    "temp": float(item["main"]["temp"]),
                    "temp_min": float(item["main"].get("temp_min", item["main"]["temp"])),
                    "temp_max": float(item["main"].get("temp_max", item["main"]["temp"])),
                    "condition": map_condition(
                        weather.get("main", ""), weather.get("description", "")
                    ),
                    "rain": float((item.get("rain") or {}).get("3h", 0.0)),
                    "snow": float((item.get("snow") or {}).get("3h", 0.0)),
                    "wind": float((item.get("wind") or {}).get("speed", 0.0)),
                    "has_weather": bool(item.get("weather")),
                })
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProviderFetchInvalid(self.name, f"Failed to parse response: {e}") from e

        if not slots:
            raise ProviderFetchInvalid(
                self.name, f"No forecast data for {target_date.isoformat()}"
            )

        temps = [slot["temp"] for slot in slots]
        winds = [slot["wind"] for slot in slots]
        snow_mm = sum(slot["snow"] for slot in slots)

        periods = {}
        for period, (start, end) in DAY_PERIODS.items():
            periods[period] = _dominant(
                slot["condition"] for slot in slots if start <= slot["hour"] < end
            )

        confidence = 0.9
        if len(slots) < SLOTS_PER_DAY:
            confidence -= 0.1
        if len(slots) < SLOTS_PER_DAY // 2:
            confidence -= 0.2
        if not all(slot["has_weather"] for slot in slots):
            confidence -= 0.2

        forecast_id = None
        if city.get("id") is not None:
            forecast_id = f"{city['id']}-{target_date.isoformat()}"

        return DailyForecast(
            forecast_date=target_date.isoformat(),
            temperature_high=round(max(slot["temp_max"] for slot in slots), 2),
            temperature_low=round(min(slot["temp_min"] for slot in slots), 2),
            temperature_avg=round(sum(temps) / len(temps), 2),
            conditions=_dominant(slot["condition"] for slot in slots),
            precipitation_total=round(sum(slot["rain"] for slot in slots) + snow_mm, 2),
            snowfall_total=round(snow_mm / 10.0, 2),  # mm -> cm
            wind_speed_max=round(max(winds), 2),
            wind_speed_avg=round(sum(winds) / len(winds), 2),
            temperature_trend=calculate_trend(temps),
            conditions_morning=periods["morning"],
            conditions_afternoon=periods["afternoon"],
            conditions_evening=periods["evening"],
            forecast_confidence=round(max(0.1, confidence), 2),
            forecast_id=forecast_id,
            api_source=self.name,
        )
