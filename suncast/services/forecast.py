"""Seven-day sunset forecast with a short-lived in-memory cache.

Forecasts go stale within hours, so unlike historical days they are never
persisted. Each entry is kept for Config.FORECAST_CACHE_TTL_SECONDS and keyed
by the same rounded location key as the historical cache, so nearby
coordinates share one forecast.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from suncast.cache.keys import resolve_key
from suncast.config import Config
from suncast.integrations.open_meteo_forecast import fetch_forecast_days
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

ForecastFetcher = Callable[[float, float], list[dict[str, Any]]]


@dataclass
class ForecastEntry:
    """One cached forecast."""

    latitude: float
    longitude: float
    days: list[dict[str, Any]] = field(default_factory=list)
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    expires_at: float = 0.0

    def to_api_dict(self, cached: bool) -> dict[str, Any]:
        return {
            "location": f"Location {self.latitude}, {self.longitude}",
            "latitude": self.latitude,
            "longitude": self.longitude,
            "days": self.days,
            "lastUpdated": self.last_updated.isoformat(),
            "cached": cached,
        }


class ForecastCache:
    """Thread-safe TTL cache of forecasts by location key.

    Expired entries are dropped lazily when they are looked up.
    """

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl = Config.FORECAST_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._entries: dict[str, ForecastEntry] = {}
        self._lock = threading.Lock()

    def get(self, latitude: float, longitude: float) -> ForecastEntry | None:
        cache_key = resolve_key(latitude, longitude)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                return None
            if entry.expires_at <= time.monotonic():
                del self._entries[cache_key]
                logger.debug("Forecast cache entry expired", extra={"cache_key": cache_key})
                return None
            return entry

    def put(self, entry: ForecastEntry) -> None:
        cache_key = resolve_key(entry.latitude, entry.longitude)
        entry.expires_at = time.monotonic() + self._ttl
        with self._lock:
            self._entries[cache_key] = entry

    def clear(self, latitude: float, longitude: float) -> bool:
        """Drop one location's forecast. Returns True if one was cached."""
        with self._lock:
            return self._entries.pop(resolve_key(latitude, longitude), None) is not None

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_forecast(
    cache: ForecastCache,
    latitude: float,
    longitude: float,
    fetcher: ForecastFetcher | None = None,
) -> tuple[ForecastEntry, bool]:
    """Return the forecast for a location, fetching it on a miss.

    Args:
        cache: Forecast cache to serve from and fill
        latitude: Latitude coordinate
        longitude: Longitude coordinate
        fetcher: Forecast fetcher. Uses the Open-Meteo client if not provided.

    Returns:
        Tuple of (forecast, served_from_cache)

    Raises:
        ForecastFetchError: If the forecast is not cached and cannot be fetched
    """
    entry = cache.get(latitude, longitude)
    if entry is not None:
        logger.debug("Forecast served from cache", extra={"lat": latitude, "lon": longitude})
        return entry, True

    fetch = fetcher or fetch_forecast_days
    entry = ForecastEntry(latitude=latitude, longitude=longitude, days=fetch(latitude, longitude))
    cache.put(entry)
    return entry, False
