# ensures the 'src' directory is on sys.path for imports like 'from app import ...'
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

root = Path(__file__).resolve().parents[1]
src = root / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from providers.base import ProviderFetchFailed, ProviderFetchInvalid  # noqa: E402
from stores.base import StoreUnavailable  # noqa: E402
from stores.memory import MemoryForecastStore  # noqa: E402
from stores.sqlite import SqliteForecastStore  # noqa: E402

T0 = datetime(2024, 1, 10, 6, 0, tzinfo=timezone.utc)
TTL = timedelta(hours=6)


class FixedClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProvider:
    """
    Scripted weather provider.

    Returns a numbered payload per call unless `fail_with` is set.
    Records every (location, date) it was asked for.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[object, date]] = []
        self.fail_with: Exception | None = None
        self.payload_override: object | None = None

    @property
    def name(self) -> str:
        return "fake"

    def fetch_forecast(self, location, target_date):
        self.calls.append((location, target_date))
        if self.fail_with is not None:
            raise self.fail_with
        if self.payload_override is not None:
            return self.payload_override
        return {
            "forecast_date": target_date.isoformat(),
            "temperature_high": -1.0,
            "temperature_low": -8.0,
            "conditions": "lightSnow",
            "call": len(self.calls),
        }

    def go_down(self) -> None:
        self.fail_with = ProviderFetchFailed("fake", "API error: 503")

    def reject(self) -> None:
        self.fail_with = ProviderFetchInvalid("fake", "API error: 404")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteForecastStore(tmp_path / "cache.db", ttl=TTL)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Every ForecastStore implementation with a 6h TTL."""
    if request.param == "memory":
        yield MemoryForecastStore(ttl=TTL)
        return
    store = SqliteForecastStore(tmp_path / "cache.db", ttl=TTL)
    yield store
    store.close()


class FailingStore:
    """Store whose every operation fails."""

    name = "broken"
    ttl = TTL
    max_entries = None

    def _fail(self, *args, **kwargs):
        raise StoreUnavailable("broken", "disk on fire")

    get = get_many = put = delete = delete_expired = scan_stats = count = _fail
