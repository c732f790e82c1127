"""Serve historical weather for a date range, fetching only what the cache lacks.

One call walks the reconciliation steps:

1. Ask the cache which span of the range is missing.
2. If nothing is missing, serve the cached days.
3. Otherwise fetch exactly that span from the archive and merge it.
4. Serve the requested range from the merged record.

When the archive fails, whatever the cache already holds for the range is
served with ``fallback=True``. Only a failure with nothing cached propagates.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from suncast.cache.engine import HistoricalCache
from suncast.cache.keys import resolve_key
from suncast.cache.models import DailyRecord
from suncast.integrations.open_meteo import ArchiveFetchError, fetch_archive_days
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

ArchiveFetcher = Callable[[float, float, str, str], list[DailyRecord]]


@dataclass
class HistoricalResult:
    """Days served for one request plus how they were obtained."""

    name: str
    latitude: float
    longitude: float
    cache_key: str
    days: list[DailyRecord] = field(default_factory=list)
    from_cache: bool = True
    new_days_fetched: int = 0
    persisted: bool = True
    fallback: bool = False

    @property
    def total_days(self) -> int:
        return len(self.days)

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "location": {
                "name": self.name,
                "latitude": self.latitude,
                "longitude": self.longitude,
            },
            "days": self.days,
            "metadata": {
                "cacheKey": self.cache_key,
                "fromCache": self.from_cache,
                "newDaysFetched": self.new_days_fetched,
                "totalDays": self.total_days,
                "persisted": self.persisted,
                "fallback": self.fallback,
            },
        }


def get_historical_days(
    cache: HistoricalCache,
    latitude: float,
    longitude: float,
    start_date: str,
    end_date: str,
    name: str | None = None,
    fetcher: ArchiveFetcher | None = None,
) -> HistoricalResult:
    """Return the days in [start_date, end_date] for a location.

    Args:
        cache: Reconciliation engine
        latitude: Latitude coordinate
        longitude: Longitude coordinate
        start_date: First day (YYYY-MM-DD)
        end_date: Last day (YYYY-MM-DD), inclusive
        name: Human-readable location name (defaults to the cached name)
        fetcher: Archive fetch function (defaults to the Open-Meteo client)

    Raises:
        ValueError: If the date range is invalid
        ArchiveFetchError: If the archive failed and nothing is cached for the range
    """
    missing = cache.get_missing_dates(latitude, longitude, start_date, end_date)
    cache_key = resolve_key(latitude, longitude)
    cached_name = missing.cached.location.name if missing.cached else None
    location_name = name or cached_name or f"{latitude},{longitude}"
    result = HistoricalResult(
        name=location_name,
        latitude=latitude,
        longitude=longitude,
        cache_key=cache_key,
    )

    if missing.to_fetch is None:
        result.days = missing.served_days
        return result

    try:
        fetch = fetcher or fetch_archive_days
        fetched = fetch(latitude, longitude, missing.to_fetch.start, missing.to_fetch.end)
    except ArchiveFetchError as e:
        if not missing.served_days:
            raise
        logger.warning(
            "Archive unavailable, serving cached days",
            extra={
                "cache_key": cache_key,
                "served_days": len(missing.served_days),
                "missing_count": missing.missing_count,
                "error": str(e),
            },
        )
        result.days = missing.served_days
        result.fallback = True
        return result

    merge = cache.merge_cached_data(latitude, longitude, location_name, fetched)
    result.days = merge.record.days_between(start_date, end_date) if merge.record else []
    result.from_cache = False
    result.new_days_fetched = merge.added_days
    result.persisted = merge.persisted

    logger.info(
        "Historical range served",
        extra={
            "cache_key": cache_key,
            "total_days": result.total_days,
            "new_days_fetched": result.new_days_fetched,
            "persisted": result.persisted,
        },
    )
    return result
