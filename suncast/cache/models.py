"""Historical cache dataclasses.

A ``DailyRecord`` is kept as a plain dict: the cache only relies on its
``date`` key and passes every other weather field through unchanged.

Persisted JSON uses snake_case keys; ``to_api_dict()`` methods produce the
camelCase shape the dashboard frontend consumes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from suncast.utils.dates import in_range

DailyRecord = dict[str, Any]

CATALOG_VERSION = "1.0"


@dataclass
class LocationInfo:
    """Where a cached series was fetched for."""

    name: str
    latitude: float
    longitude: float
    cache_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "cache_key": self.cache_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocationInfo":
        return cls(
            name=data["name"],
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            cache_key=data["cache_key"],
        )


@dataclass
class LocationRecord:
    """The persisted daily series for one cache key.

    ``days`` is sorted ascending by date with no duplicate dates.
    """

    location: LocationInfo
    days: list[DailyRecord] = field(default_factory=list)
    cached_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def cache_key(self) -> str:
        return self.location.cache_key

    @property
    def total_days(self) -> int:
        return len(self.days)

    @property
    def start_date(self) -> str | None:
        return self.days[0]["date"] if self.days else None

    @property
    def end_date(self) -> str | None:
        return self.days[-1]["date"] if self.days else None

    def dates(self) -> set[str]:
        """The set of dates covered by this record."""
        return {day["date"] for day in self.days}

    def days_between(self, start: str, end: str) -> list[DailyRecord]:
        """Days within [start, end], both inclusive, in ascending order."""
        return [day for day in self.days if in_range(day["date"], start, end)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.to_dict(),
            "cached_at": self.cached_at.isoformat(),
            "days": self.days,
            "metadata": {
                "total_days": self.total_days,
                "date_range": {"start": self.start_date, "end": self.end_date},
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocationRecord":
        # metadata is derived from days, so it is not read back
        return cls(
            location=LocationInfo.from_dict(data["location"]),
            days=list(data.get("days") or []),
            cached_at=datetime.fromisoformat(data["cached_at"]),
        )

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "location": {
                "name": self.location.name,
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "cacheKey": self.location.cache_key,
            },
            "cachedAt": self.cached_at.isoformat(),
            "days": self.days,
            "metadata": {
                "totalDays": self.total_days,
                "dateRange": {"start": self.start_date, "end": self.end_date},
            },
        }


@dataclass
class LocationSummary:
    """Catalog entry summarizing one stored LocationRecord."""

    cache_key: str
    name: str
    latitude: float
    longitude: float
    total_days: int
    last_updated: datetime

    @classmethod
    def for_record(cls, record: LocationRecord) -> "LocationSummary":
        return cls(
            cache_key=record.cache_key,
            name=record.location.name,
            latitude=record.location.latitude,
            longitude=record.location.longitude,
            total_days=record.total_days,
            last_updated=record.cached_at,
        )


@dataclass
class Catalog:
    """Index of every stored location plus aggregate statistics."""

    locations: dict[str, LocationSummary] = field(default_factory=dict)
    total_cached_days: int = 0
    last_updated: datetime | None = None
    version: str = CATALOG_VERSION

    @classmethod
    def from_summaries(
        cls, summaries: list[LocationSummary], last_updated: datetime | None = None
    ) -> "Catalog":
        """Build a catalog whose aggregate stats are computed from its entries."""
        return cls(
            locations={summary.cache_key: summary for summary in summaries},
            total_cached_days=sum(summary.total_days for summary in summaries),
            last_updated=last_updated,
        )


@dataclass
class DateSpan:
    """Inclusive calendar date range as ISO strings."""

    start: str
    end: str


@dataclass
class MissingDates:
    """Outcome of checking the cache for a requested range.

    ``to_fetch`` is None when every requested day is cached. Otherwise it is
    the single span from the first to the last missing day, which may include
    cached days in between.
    """

    requested: DateSpan
    to_fetch: DateSpan | None
    missing_count: int
    cached: LocationRecord | None = None
    served_days: list[DailyRecord] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.to_fetch is None


@dataclass
class MergeResult:
    """Outcome of merging fetched days into a location's record.

    When ``persisted`` is False the merged ``record`` is still valid for the
    current request; the next request will find the gap again and re-fetch.
    """

    persisted: bool
    record: LocationRecord | None
    added_days: int = 0
    error: str | None = None


@dataclass
class CacheStats:
    """Aggregate view of the cache for monitoring."""

    total_locations: int
    total_cached_days: int
    total_files: int
    last_updated: datetime | None
    locations: list[LocationSummary] = field(default_factory=list)

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "totalLocations": self.total_locations,
            "totalCachedDays": self.total_cached_days,
            "totalFiles": self.total_files,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "locations": [
                {
                    "cacheKey": summary.cache_key,
                    "name": summary.name,
                    "totalDays": summary.total_days,
                    "lastUpdated": summary.last_updated.isoformat(),
                }
                for summary in self.locations
            ],
        }
