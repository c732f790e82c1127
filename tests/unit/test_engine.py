"""Unit tests for the HistoricalCache reconciliation engine."""

import sqlite3
import threading
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from suncast.cache.engine import HistoricalCache
from suncast.cache.models import Catalog
from suncast.cache.store import CacheWriteError, RecordStore
from tests.fixtures.weather import make_day, make_days

NYC = (40.7128, -74.0060)
ATHENS = (37.9838, 23.7275)


def cached_dates(cache: HistoricalCache, lat: float, lon: float) -> list[str]:
    record = cache.get_cached_data(lat, lon)
    return [day["date"] for day in record.days] if record else []


class TestGetMissingDates:
    """Tests for gap detection."""

    def test_empty_cache_whole_range_missing(self, cache: HistoricalCache) -> None:
        missing = cache.get_missing_dates(*NYC, "2025-01-01", "2025-01-10")

        assert missing.to_fetch is not None
        assert (missing.to_fetch.start, missing.to_fetch.end) == ("2025-01-01", "2025-01-10")
        assert missing.missing_count == 10
        assert missing.cached is None
        assert missing.served_days == []

    def test_partial_overlap_fetches_tail(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))

        missing = cache.get_missing_dates(*NYC, "2025-01-05", "2025-01-20")

        assert missing.to_fetch is not None
        assert (missing.to_fetch.start, missing.to_fetch.end) == ("2025-01-11", "2025-01-20")
        assert missing.missing_count == 10
        assert missing.cached is not None
        assert [d["date"] for d in missing.served_days] == [
            f"2025-01-{n:02d}" for n in range(5, 11)
        ]

    def test_fully_cached_range(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-12-31"))

        missing = cache.get_missing_dates(*NYC, "2025-03-01", "2025-03-31")

        assert missing.to_fetch is None
        assert missing.is_complete
        assert missing.missing_count == 0
        assert len(missing.served_days) == 31
        assert missing.served_days[0]["date"] == "2025-03-01"
        assert missing.served_days[-1]["date"] == "2025-03-31"

    def test_interior_gap_spans_first_to_last_missing(self, cache: HistoricalCache) -> None:
        """Non-contiguous gaps collapse into one span that re-covers cached days."""
        days = make_days("2025-01-01", "2025-01-10")
        kept = [d for d in days if d["date"] not in {"2025-01-03", "2025-01-08"}]
        cache.merge_cached_data(*NYC, "New York", kept)

        missing = cache.get_missing_dates(*NYC, "2025-01-01", "2025-01-10")

        assert missing.to_fetch is not None
        assert (missing.to_fetch.start, missing.to_fetch.end) == ("2025-01-03", "2025-01-08")
        assert missing.missing_count == 2

    def test_single_day_range(self, cache: HistoricalCache) -> None:
        missing = cache.get_missing_dates(*NYC, "2025-06-15", "2025-06-15")

        assert missing.to_fetch is not None
        assert missing.missing_count == 1

    def test_nearby_coordinates_share_cache(self, cache: HistoricalCache) -> None:
        days = make_days("2025-01-01", "2025-01-05")
        cache.merge_cached_data(40.7128, -74.0060, "New York", days)

        missing = cache.get_missing_dates(40.7149, -74.0051, "2025-01-01", "2025-01-05")

        assert missing.to_fetch is None

    def test_reversed_range_raises(self, cache: HistoricalCache) -> None:
        with pytest.raises(ValueError):
            cache.get_missing_dates(*NYC, "2025-01-10", "2025-01-01")

    def test_malformed_date_raises(self, cache: HistoricalCache) -> None:
        with pytest.raises(ValueError):
            cache.get_missing_dates(*NYC, "2025-1-1", "2025-01-10")

    def test_corrupt_record_is_full_miss(self, cache: HistoricalCache, store: RecordStore) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))

        with patch.object(store, "read", return_value=None):
            missing = cache.get_missing_dates(*NYC, "2025-01-01", "2025-01-10")

        assert missing.missing_count == 10

    def test_api_dict_shape(self, cache: HistoricalCache) -> None:
        data = cache.get_missing_dates(*NYC, "2025-01-01", "2025-01-02").to_api_dict()

        assert data["toFetch"] == {"start": "2025-01-01", "end": "2025-01-02"}
        assert data["missingCount"] == 2
        assert data["cached"] is None


class TestMergeCachedData:
    """Tests for merging fetched days."""

    def test_first_merge_creates_record(self, cache: HistoricalCache) -> None:
        result = cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))

        assert result.persisted is True
        assert result.added_days == 10
        assert result.error is None
        assert cached_dates(cache, *NYC) == [f"2025-01-{n:02d}" for n in range(1, 11)]

        record = cache.get_cached_data(*NYC)
        assert record is not None
        assert record.location.name == "New York"
        assert record.cache_key == "40.71_-74.01"

    def test_merge_is_union_of_dates(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        result = cache.merge_cached_data(*NYC, "New York", make_days("2025-01-05", "2025-01-20"))

        assert result.added_days == 10
        assert cached_dates(cache, *NYC) == [f"2025-01-{n:02d}" for n in range(1, 21)]

    def test_merge_is_idempotent(self, cache: HistoricalCache) -> None:
        batch = make_days("2025-01-01", "2025-01-10")
        first = cache.merge_cached_data(*NYC, "New York", batch)
        second = cache.merge_cached_data(*NYC, "New York", batch)

        assert second.persisted is True
        assert second.added_days == 0
        assert first.record is not None and second.record is not None
        assert second.record.days == first.record.days

    def test_existing_days_are_never_overwritten(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", [make_day("2025-01-01", sunset_score=40)])
        cache.merge_cached_data(*NYC, "New York", [make_day("2025-01-01", sunset_score=95)])

        record = cache.get_cached_data(*NYC)
        assert record is not None
        assert record.days[0]["sunset_score"] == 40

    def test_first_occurrence_wins_within_batch(self, cache: HistoricalCache) -> None:
        batch = [make_day("2025-01-02", sunset_score=10), make_day("2025-01-02", sunset_score=90)]

        result = cache.merge_cached_data(*NYC, "New York", batch)

        assert result.added_days == 1
        assert result.record is not None
        assert result.record.days[0]["sunset_score"] == 10

    def test_days_are_sorted(self, cache: HistoricalCache) -> None:
        batch = [make_day("2025-01-03"), make_day("2025-01-01"), make_day("2025-01-02")]

        cache.merge_cached_data(*NYC, "New York", batch)

        assert cached_dates(cache, *NYC) == ["2025-01-01", "2025-01-02", "2025-01-03"]

    def test_entries_without_valid_date_are_skipped(self, cache: HistoricalCache) -> None:
        batch = [
            make_day("2025-01-01"),
            {"sunset_score": 50},
            make_day("01/02/2025"),
            make_day("2025-02-30"),
            "not a record",
        ]

        result = cache.merge_cached_data(*NYC, "New York", batch)  # type: ignore[arg-type]

        assert result.added_days == 1
        assert cached_dates(cache, *NYC) == ["2025-01-01"]

    def test_extra_fields_pass_through(self, cache: HistoricalCache) -> None:
        day = make_day("2025-01-01", uv_index=3.2, custom={"nested": [1, 2]})

        cache.merge_cached_data(*NYC, "New York", [day])

        record = cache.get_cached_data(*NYC)
        assert record is not None
        assert record.days[0] == day

    def test_empty_batch_on_empty_cache_is_noop(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        result = cache.merge_cached_data(*NYC, "New York", [])

        assert result.persisted is True
        assert result.added_days == 0
        assert result.record is None
        assert store.count_records() == 0

    def test_empty_batch_does_not_write(self, cache: HistoricalCache, store: RecordStore) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-03"))

        with patch.object(store, "write") as mock_write:
            result = cache.merge_cached_data(*NYC, "New York", [])

        mock_write.assert_not_called()
        assert result.persisted is True
        assert result.record is not None
        assert result.record.total_days == 3

    def test_write_failure_returns_merged_record(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-05"))

        with patch.object(store, "write", side_effect=CacheWriteError("disk full")):
            batch = make_days("2025-01-06", "2025-01-10")
            result = cache.merge_cached_data(*NYC, "New York", batch)

        assert result.persisted is False
        assert result.error == "disk full"
        assert result.added_days == 5
        assert result.record is not None
        assert result.record.total_days == 10
        # Stored data is untouched; the next request sees the gap again
        assert len(cached_dates(cache, *NYC)) == 5
        missing = cache.get_missing_dates(*NYC, "2025-01-01", "2025-01-10")
        assert missing.missing_count == 5

    def test_does_not_mutate_caller_batch(self, cache: HistoricalCache) -> None:
        batch = make_days("2025-01-01", "2025-01-02")
        snapshot = [dict(day) for day in batch]

        result = cache.merge_cached_data(*NYC, "New York", batch)
        assert result.record is not None
        result.record.days[0]["sunset_score"] = 0

        assert batch == snapshot

    def test_catalog_matches_record_after_merge(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.merge_cached_data(*NYC, "New York", make_days("2025-02-01", "2025-02-03"))
        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-31"))

        catalog = store.read_catalog()
        for key in store.list_keys():
            record = store.read(key)
            assert record is not None
            assert catalog.locations[key].total_days == record.total_days
        assert set(catalog.locations) == set(store.list_keys())
        assert catalog.total_cached_days == 13 + 31

    def test_name_falls_back_to_existing(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-01"))
        cache.merge_cached_data(*NYC, "", make_days("2025-01-02", "2025-01-02"))

        record = cache.get_cached_data(*NYC)
        assert record is not None
        assert record.location.name == "New York"

    def test_name_falls_back_to_coordinates(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "", make_days("2025-01-01", "2025-01-01"))

        record = cache.get_cached_data(*NYC)
        assert record is not None
        assert record.location.name == "40.7128,-74.006"


class TestConcurrentMerges:
    """Per-key serialization of read-merge-write."""

    def test_disjoint_batches_for_same_location(self, cache: HistoricalCache) -> None:
        batches = [
            make_days(f"2025-{month:02d}-01", f"2025-{month:02d}-28") for month in range(1, 9)
        ]
        barrier = threading.Barrier(len(batches))
        results = []

        def worker(batch: list) -> None:
            barrier.wait()
            results.append(cache.merge_cached_data(*NYC, "New York", batch))

        threads = [threading.Thread(target=worker, args=(batch,)) for batch in batches]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(result.persisted for result in results)
        assert len(cached_dates(cache, *NYC)) == 8 * 28

    def test_different_locations_in_parallel(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cities = [(10.0 + i, 20.0 + i) for i in range(6)]
        barrier = threading.Barrier(len(cities))

        def worker(lat: float, lon: float) -> None:
            barrier.wait()
            cache.merge_cached_data(lat, lon, f"City {lat}", make_days("2025-01-01", "2025-01-31"))

        threads = [threading.Thread(target=worker, args=city) for city in cities]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = cache.get_cache_stats()
        assert stats.total_locations == 6
        assert stats.total_cached_days == 6 * 31
        assert store.count_records() == 6

    def test_locks_released_after_merges(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-02"))
        assert cache._locks.active_keys() == 0


class TestGetDays:
    def test_filters_to_range(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-31"))

        days = cache.get_days(*NYC, "2025-01-10", "2025-01-12")

        assert [d["date"] for d in days] == ["2025-01-10", "2025-01-11", "2025-01-12"]

    def test_miss_returns_empty(self, cache: HistoricalCache) -> None:
        assert cache.get_days(*NYC, "2025-01-01", "2025-01-31") == []

    def test_invalid_range_raises(self, cache: HistoricalCache) -> None:
        with pytest.raises(ValueError):
            cache.get_days(*NYC, "2025-02-01", "2025-01-01")


class TestStatsAndClearing:
    def test_stats_on_empty_cache(self, cache: HistoricalCache) -> None:
        stats = cache.get_cache_stats()

        assert stats.total_locations == 0
        assert stats.total_cached_days == 0
        assert stats.total_files == 0
        assert stats.locations == []

    def test_stats_summarize_locations(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-05"))

        stats = cache.get_cache_stats()

        assert stats.total_locations == 2
        assert stats.total_cached_days == 15
        assert stats.total_files == 2
        assert stats.last_updated is not None
        by_key = {summary.cache_key: summary for summary in stats.locations}
        assert by_key["40.71_-74.01"].name == "New York"
        assert by_key["37.98_23.73"].total_days == 5

    def test_stats_api_dict(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-02"))

        data = cache.get_cache_stats().to_api_dict()

        assert data["totalLocations"] == 1
        assert data["totalCachedDays"] == 2
        assert data["totalFiles"] == 1
        assert data["locations"][0]["cacheKey"] == "40.71_-74.01"
        assert data["locations"][0]["totalDays"] == 2

    def test_clear_location(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-05"))

        assert cache.clear_location_cache(*NYC) is True

        assert cache.get_cached_data(*NYC) is None
        stats = cache.get_cache_stats()
        assert stats.total_locations == 1
        assert stats.total_cached_days == 5

    def test_clear_missing_location(self, cache: HistoricalCache) -> None:
        assert cache.clear_location_cache(*NYC) is False

    def test_clear_corrupt_location(self, cache: HistoricalCache, store: RecordStore) -> None:
        conn = sqlite3.connect(store.db_path)
        conn.execute(
            "INSERT INTO location_records (cache_key, record_data, cached_at) VALUES (?, ?, ?)",
            ("40.71_-74.01", "garbage", datetime.now(UTC).isoformat()),
        )
        conn.commit()
        conn.close()
        assert cache.get_cached_data(*NYC) is None

        assert cache.clear_location_cache(*NYC) is True

        assert store.list_keys() == []

    def test_clear_location_failure(self, cache: HistoricalCache, store: RecordStore) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))

        with patch.object(store, "delete", side_effect=CacheWriteError("read-only")):
            with pytest.raises(CacheWriteError):
                cache.clear_location_cache(*NYC)

        assert cache.get_cached_data(*NYC) is not None

    def test_clear_all(self, cache: HistoricalCache) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-05"))

        assert cache.clear_all_cache() is True

        stats = cache.get_cache_stats()
        assert stats.total_locations == 0
        assert stats.total_cached_days == 0
        assert stats.total_files == 0

    def test_clear_all_failure(self, cache: HistoricalCache, store: RecordStore) -> None:
        with patch.object(store, "delete_all", side_effect=CacheWriteError("read-only")):
            assert cache.clear_all_cache() is False


class TestRebuildCatalog:
    def test_rebuild_restores_catalog(self, cache: HistoricalCache, store: RecordStore) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-05"))
        store.write_catalog(Catalog())

        catalog = cache.rebuild_catalog()

        assert set(catalog.locations) == {"40.71_-74.01", "37.98_23.73"}
        assert catalog.total_cached_days == 15
        assert store.read_catalog().total_cached_days == 15

    def test_rebuild_drops_unreadable_records(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        conn = sqlite3.connect(store.db_path)
        conn.execute(
            "INSERT INTO location_records (cache_key, record_data, cached_at) VALUES (?, ?, ?)",
            ("1_1", "garbage", datetime.now(UTC).isoformat()),
        )
        conn.commit()
        conn.close()

        catalog = cache.rebuild_catalog()

        assert set(catalog.locations) == {"40.71_-74.01"}
        assert store.list_keys() == ["40.71_-74.01"]

    def test_merge_during_rebuild_keeps_catalog_in_step(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cache.merge_cached_data(10, 10, "Ten", make_days("2025-01-01", "2025-01-05"))
        rebuild = store.rebuild_catalog
        started = threading.Event()
        merger: list[threading.Thread] = []

        def merge_other_location() -> None:
            started.set()
            cache.merge_cached_data(20, 20, "Twenty", make_days("2025-01-01", "2025-01-03"))

        def rebuild_with_concurrent_merge(
            *args: object, **kwargs: object
        ) -> tuple[Catalog, list[str]]:
            thread = threading.Thread(target=merge_other_location)
            merger.append(thread)
            thread.start()
            started.wait(timeout=5)
            return rebuild(*args, **kwargs)

        with patch.object(store, "rebuild_catalog", side_effect=rebuild_with_concurrent_merge):
            cache.rebuild_catalog()
        merger[0].join(timeout=10)

        catalog = store.read_catalog()
        assert set(store.list_keys()) == {"10_10", "20_20"}
        assert set(catalog.locations) == {"10_10", "20_20"}
        assert catalog.total_cached_days == 8

    def test_merge_after_rebuild_is_cataloged(
        self, cache: HistoricalCache, store: RecordStore
    ) -> None:
        cache.merge_cached_data(*NYC, "New York", make_days("2025-01-01", "2025-01-10"))
        cache.rebuild_catalog()

        cache.merge_cached_data(*ATHENS, "Athens", make_days("2025-01-01", "2025-01-05"))

        catalog = store.read_catalog()
        assert set(catalog.locations) == set(store.list_keys())
        assert catalog.total_cached_days == 15

    def test_rebuild_failure_raises(self, cache: HistoricalCache, store: RecordStore) -> None:
        with patch.object(store, "_transaction", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(CacheWriteError):
                cache.rebuild_catalog()
