"""Historical weather cache package.

Usage:
    from suncast.cache import HistoricalCache, RecordStore

    cache = HistoricalCache(RecordStore(db_path))
    missing = cache.get_missing_dates(40.71, -74.01, "2025-01-01", "2025-01-31")
    if missing.to_fetch:
        days = fetch(missing.to_fetch.start, missing.to_fetch.end)
        cache.merge_cached_data(40.71, -74.01, "New York", days)
"""

from suncast.cache.engine import HistoricalCache
from suncast.cache.keys import resolve_key
from suncast.cache.models import (
    CacheStats,
    Catalog,
    DailyRecord,
    DateSpan,
    LocationInfo,
    LocationRecord,
    LocationSummary,
    MergeResult,
    MissingDates,
)
from suncast.cache.store import CacheWriteError, RecordStore

__all__ = [
    "CacheStats",
    "CacheWriteError",
    "Catalog",
    "DailyRecord",
    "DateSpan",
    "HistoricalCache",
    "LocationInfo",
    "LocationRecord",
    "LocationSummary",
    "MergeResult",
    "MissingDates",
    "RecordStore",
    "resolve_key",
]
