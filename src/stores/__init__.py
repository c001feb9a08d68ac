"""
Forecast stores.

Provides cache backends (SQLite, in-memory) implementing a common
ForecastStore protocol.
"""
from stores.base import ForecastStore, StoreError, StoreUnavailable
from stores.memory import MemoryForecastStore
from stores.sqlite import SqliteForecastStore

__all__ = [
    "ForecastStore",
    "StoreError",
    "StoreUnavailable",
    "MemoryForecastStore",
    "SqliteForecastStore",
]
