#!/usr/bin/env python3
"""Pre-warm the historical cache for popular cities.

Reconciles every city from January 1 of the given year up to yesterday (or
December 31 for past years), so the first dashboard visit for these cities
is served from the cache. Days already cached are not fetched again, which
makes the script cheap to re-run daily.

Usage:
    python scripts/warm_cache.py
    python scripts/warm_cache.py --year 2024
    python scripts/warm_cache.py --dry-run

This script is designed to be run via systemd timer (daily) or manually as needed.
"""

import argparse
import sys
import time
import uuid
from datetime import UTC, date, datetime
from pathlib import Path

# Add parent directory to path so we can import from suncast
sys.path.insert(0, str(Path(__file__).parent.parent))

from suncast.cache.engine import HistoricalCache
from suncast.cache.store import RecordStore
from suncast.integrations.open_meteo import ArchiveFetchError
from suncast.services.historical import get_historical_days
from suncast.utils.dates import ONE_DAY
from suncast.utils.logging import get_logger, set_request_id, setup_logging

logger = get_logger(__name__)

# (name, latitude, longitude)
POPULAR_CITIES = [
    ("New York", 40.7128, -74.0060),
    ("London", 51.5074, -0.1278),
    ("Paris", 48.8566, 2.3522),
    ("Tokyo", 35.6762, 139.6503),
    ("Sydney", -33.8688, 151.2093),
    ("Athens", 37.9838, 23.7275),
    ("Los Angeles", 34.0522, -118.2437),
    ("Rome", 41.9028, 12.4964),
    ("Moscow", 55.7558, 37.6173),
    ("Dubai", 25.2048, 55.2708),
]

# Pause between archive calls to stay well under the upstream rate limit
REQUEST_DELAY_SECONDS = 1.0


def warm_range(year: int, today: date) -> tuple[str, str] | None:
    """The [start, end] range to warm for a year, or None if it has no past days."""
    start = date(year, 1, 1)
    end = min(date(year, 12, 31), today - ONE_DAY)
    if start > end:
        return None
    return start.isoformat(), end.isoformat()


def warm_city(
    cache: HistoricalCache,
    name: str,
    latitude: float,
    longitude: float,
    start_date: str,
    end_date: str,
) -> bool:
    """Reconcile one city.

    Returns:
        True if the range is fully cached afterwards, False otherwise
    """
    try:
        result = get_historical_days(cache, latitude, longitude, start_date, end_date, name=name)
    except (ArchiveFetchError, ValueError) as e:
        logger.error(
            f"Failed to warm cache for {name}",
            extra={"lat": latitude, "lon": longitude, "error": str(e)},
        )
        return False

    if result.fallback or not result.persisted:
        logger.error(
            f"Cache for {name} is incomplete",
            extra={"fallback": result.fallback, "persisted": result.persisted},
        )
        return False

    missing = cache.get_missing_dates(latitude, longitude, start_date, end_date)
    if not missing.is_complete:
        logger.error(
            f"Archive returned a short range for {name}",
            extra={"cache_key": result.cache_key, "missing_count": missing.missing_count},
        )
        return False

    logger.info(
        f"Cache warmed for {name}",
        extra={
            "cache_key": result.cache_key,
            "new_days_fetched": result.new_days_fetched,
            "total_days": result.total_days,
        },
    )
    return True


def main() -> int:
    """Warm the cache for all popular cities.

    Returns:
        0 if every city was warmed, 1 if any failed
    """
    parser = argparse.ArgumentParser(description="Pre-warm the Suncast historical cache")
    parser.add_argument(
        "--year",
        type=int,
        default=datetime.now(UTC).year,
        help="Year to warm (default: current year)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which days would be fetched without calling the archive",
    )
    args = parser.parse_args()

    setup_logging()
    set_request_id(f"warm-cache-{uuid.uuid4()}")

    date_range = warm_range(args.year, datetime.now(UTC).date())
    if date_range is None:
        logger.info("No past days to warm", extra={"year": args.year})
        return 0
    start_date, end_date = date_range

    logger.info(
        "Starting cache warm-up",
        extra={
            "start": start_date,
            "end": end_date,
            "cities": len(POPULAR_CITIES),
            "dry_run": args.dry_run,
        },
    )

    store = RecordStore()
    cache = HistoricalCache(store)
    failed: list[str] = []

    try:
        for index, (name, latitude, longitude) in enumerate(POPULAR_CITIES):
            if args.dry_run:
                missing = cache.get_missing_dates(latitude, longitude, start_date, end_date)
                span = (
                    f"{missing.to_fetch.start} .. {missing.to_fetch.end}"
                    if missing.to_fetch
                    else "nothing"
                )
                print(f"{name}: {missing.missing_count} missing days, would fetch {span}")
                continue

            if index > 0:
                time.sleep(REQUEST_DELAY_SECONDS)
            if not warm_city(cache, name, latitude, longitude, start_date, end_date):
                failed.append(name)
    finally:
        store.close()

    if failed:
        logger.error("Cache warm-up completed with errors", extra={"failed": failed})
        return 1

    logger.info("Cache warm-up completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
