"""Reconciliation of requested date ranges against the historical cache.

The engine answers two questions for the API layer:

1. Which part of a requested range still has to come from the archive?
   (``get_missing_dates``)
2. How do freshly fetched days join what is already stored?
   (``merge_cached_data``)

It never calls the archive itself. The caller fetches the returned span and
hands the complete result back, so an abandoned or failed fetch leaves the
cache untouched.

Missing days are fetched as one contiguous span from the first to the last
missing date. If cached days sit between two gaps they are requested again;
the archive is queried by a single start/end pair, so one slightly wider call
beats several narrow ones. Merging keeps the stored copy of any date that is
already cached, which makes re-fetched days harmless and merges idempotent.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from suncast.cache.keys import resolve_key
from suncast.cache.locks import KeyedLocks
from suncast.cache.models import (
    CacheStats,
    Catalog,
    DailyRecord,
    DateSpan,
    LocationInfo,
    LocationRecord,
    MergeResult,
    MissingDates,
)
from suncast.cache.store import CacheWriteError, RecordStore
from suncast.utils.dates import days_between, is_iso_date, iter_dates, parse_iso_date
from suncast.utils.logging import get_logger

logger = get_logger(__name__)


def _validate_range(start_date: str, end_date: str) -> None:
    """Raise ValueError unless start_date <= end_date are both valid ISO dates."""
    start = parse_iso_date(start_date)
    end = parse_iso_date(end_date)
    if start > end:
        raise ValueError(f"Start date {start_date} is after end date {end_date}")


class HistoricalCache:
    """Reconciliation engine over a RecordStore.

    The engine is the only writer of location records and the catalog.
    Writes for one location key are serialized; reads take no lock.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._locks = KeyedLocks()

    @property
    def store(self) -> RecordStore:
        return self._store

    def get_missing_dates(
        self, latitude: float, longitude: float, start_date: str, end_date: str
    ) -> MissingDates:
        """Work out which days of [start_date, end_date] still need fetching.

        Raises:
            ValueError: If either date is malformed or start_date > end_date
        """
        _validate_range(start_date, end_date)
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
        requested = DateSpan(start_date, end_date)
        cache_key = resolve_key(latitude, longitude)

        cached = self._store.read(cache_key)
        if not cached or not cached.days:
            missing_count = days_between(start, end)
            logger.info(
                "Cache miss",
                extra={"cache_key": cache_key, "missing_count": missing_count},
            )
            return MissingDates(
                requested=requested,
                to_fetch=DateSpan(start_date, end_date),
                missing_count=missing_count,
            )

        cached_dates = cached.dates()
        missing = [
            day.isoformat() for day in iter_dates(start, end) if day.isoformat() not in cached_dates
        ]
        served_days = cached.days_between(start_date, end_date)

        if not missing:
            logger.info(
                "All requested dates cached",
                extra={"cache_key": cache_key, "served_days": len(served_days)},
            )
            return MissingDates(
                requested=requested,
                to_fetch=None,
                missing_count=0,
                cached=cached,
                served_days=served_days,
            )

        to_fetch = DateSpan(missing[0], missing[-1])
        logger.info(
            "Missing dates found",
            extra={
                "cache_key": cache_key,
                "missing_count": len(missing),
                "fetch_start": to_fetch.start,
                "fetch_end": to_fetch.end,
            },
        )
        return MissingDates(
            requested=requested,
            to_fetch=to_fetch,
            missing_count=len(missing),
            cached=cached,
            served_days=served_days,
        )

    def merge_cached_data(
        self,
        latitude: float,
        longitude: float,
        name: str,
        new_days: Iterable[DailyRecord],
    ) -> MergeResult:
        """Merge fetched days into the location's record.

        Days whose date is already stored are ignored, as are repeats within
        the batch after their first occurrence. Entries without a valid
        ``date`` are skipped. A batch that adds nothing is a successful no-op.

        A failed write does not raise: the merged record is returned with
        ``persisted=False`` so the caller can still serve it.
        """
        cache_key = resolve_key(latitude, longitude)

        with self._locks.hold(cache_key):
            existing = self._store.read(cache_key)
            existing_days = existing.days if existing else []
            seen = {day["date"] for day in existing_days}

            additions: list[DailyRecord] = []
            skipped = 0
            for day in new_days:
                day_date = day.get("date") if isinstance(day, dict) else None
                if not is_iso_date(day_date):
                    skipped += 1
                    continue
                if day_date in seen:
                    continue
                seen.add(day_date)
                additions.append(dict(day))

            if skipped:
                logger.warning(
                    "Skipped fetched days without a valid date",
                    extra={"cache_key": cache_key, "skipped": skipped},
                )

            if not additions:
                logger.debug("Nothing new to merge", extra={"cache_key": cache_key})
                return MergeResult(persisted=True, record=existing)

            location_name = name or (existing.location.name if existing else "")
            record = LocationRecord(
                location=LocationInfo(
                    name=location_name or f"{latitude},{longitude}",
                    latitude=latitude,
                    longitude=longitude,
                    cache_key=cache_key,
                ),
                days=sorted(existing_days + additions, key=lambda day: day["date"]),
            )

            try:
                self._store.write(record)
            except CacheWriteError as e:
                logger.error(
                    "Merged data could not be persisted",
                    extra={"cache_key": cache_key, "added_days": len(additions), "error": str(e)},
                )
                return MergeResult(
                    persisted=False, record=record, added_days=len(additions), error=str(e)
                )

        logger.info(
            "Merged new days into cache",
            extra={
                "cache_key": cache_key,
                "location": record.location.name,
                "added_days": len(additions),
                "previous_days": len(existing_days),
                "total_days": record.total_days,
            },
        )
        return MergeResult(persisted=True, record=record, added_days=len(additions))

    def get_cached_data(self, latitude: float, longitude: float) -> LocationRecord | None:
        """Return the full cached record for a location, or None on a miss."""
        return self._store.read(resolve_key(latitude, longitude))

    def get_days(
        self, latitude: float, longitude: float, start_date: str, end_date: str
    ) -> list[DailyRecord]:
        """Return cached days within [start_date, end_date], ascending.

        Raises:
            ValueError: If either date is malformed or start_date > end_date
        """
        _validate_range(start_date, end_date)
        record = self.get_cached_data(latitude, longitude)
        if not record:
            return []
        return record.days_between(start_date, end_date)

    def get_cache_stats(self) -> CacheStats:
        """Summarize the cache from its catalog."""
        catalog = self._store.read_catalog()
        return CacheStats(
            total_locations=len(catalog.locations),
            total_cached_days=catalog.total_cached_days,
            total_files=self._store.count_records(),
            last_updated=catalog.last_updated,
            locations=list(catalog.locations.values()),
        )

    def clear_location_cache(self, latitude: float, longitude: float) -> bool:
        """Delete one location's record and catalog entry.

        The row is removed even if it no longer decodes, so a corrupt record
        can always be cleared.

        Returns:
            True if a record was deleted, False if nothing was cached

        Raises:
            CacheWriteError: If the deletion could not be committed
        """
        cache_key = resolve_key(latitude, longitude)
        with self._locks.hold(cache_key):
            try:
                deleted = self._store.delete(cache_key)
            except CacheWriteError as e:
                logger.error(
                    "Failed to clear location cache",
                    extra={"cache_key": cache_key, "error": str(e)},
                )
                raise

        if deleted:
            logger.info("Cleared location cache", extra={"cache_key": cache_key})
        return deleted

    def clear_all_cache(self) -> bool:
        """Delete every record and reset the catalog."""
        try:
            count = self._store.delete_all()
        except CacheWriteError as e:
            logger.error("Failed to clear all cache", extra={"error": str(e)})
            return False

        logger.info("Cleared all cache", extra={"records": count})
        return True

    def rebuild_catalog(self) -> Catalog:
        """Regenerate the catalog from the stored records.

        Records that can no longer be decoded are deleted, since every read
        already treats them as misses.

        Raises:
            CacheWriteError: If the rebuilt catalog could not be written
        """
        catalog, dropped = self._store.rebuild_catalog(datetime.now(UTC))
        logger.info(
            "Cache catalog rebuilt",
            extra={
                "locations": len(catalog.locations),
                "total_cached_days": catalog.total_cached_days,
                "dropped": len(dropped),
            },
        )
        return catalog
