#!/usr/bin/env python3
"""Import a legacy file-per-location historical cache into the cache database.

The legacy cache is a directory with one ``<cacheKey>.json`` file per
location (``location``, ``cachedAt``, ``days``, ``metadata``) plus an
``index.json`` catalog. Each file's days are merged into the database, so
the import can be re-run safely and never overwrites days already cached.
The catalog is rebuilt from the stored records afterwards.

Usage:
    python scripts/import_legacy_cache.py backend/cache/historical
"""

import argparse
import json
import sqlite3
import sys
from pathlib import Path
from typing import Any

# Add parent directory to path so we can import from suncast
sys.path.insert(0, str(Path(__file__).parent.parent))

from suncast.cache.engine import HistoricalCache
from suncast.cache.keys import resolve_key
from suncast.cache.store import CacheWriteError, RecordStore
from suncast.utils.logging import get_logger, set_request_id, setup_logging

logger = get_logger(__name__)

INDEX_FILE = "index.json"


def load_legacy_index(directory: Path) -> dict[str, Any]:
    """Load the legacy index's location entries (empty if missing or unreadable)."""
    index_path = directory / INDEX_FILE
    if not index_path.exists():
        return {}
    try:
        with open(index_path) as f:
            index = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "Legacy index unreadable, continuing without it",
            extra={"path": str(index_path), "error": str(e)},
        )
        return {}
    locations = index.get("locations") if isinstance(index, dict) else None
    return locations if isinstance(locations, dict) else {}


def import_file(cache: HistoricalCache, path: Path, index: dict[str, Any]) -> bool:
    """Merge one legacy location file.

    Returns:
        True if the file was imported (or had nothing new), False on failure
    """
    try:
        with open(path) as f:
            data = json.load(f)
        location = data["location"]
        latitude = float(location["latitude"])
        longitude = float(location["longitude"])
        days = data.get("days") or []
    except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
        logger.error("Skipping unreadable legacy file", extra={"path": str(path), "error": str(e)})
        return False

    legacy_key = location.get("cacheKey") or path.stem
    index_entry = index.get(legacy_key)
    indexed_name = index_entry.get("name") if isinstance(index_entry, dict) else None
    name = location.get("name") or indexed_name or ""

    cache_key = resolve_key(latitude, longitude)
    if cache_key != legacy_key:
        logger.info(
            "Legacy key differs from resolved key",
            extra={"legacy_key": legacy_key, "cache_key": cache_key},
        )

    result = cache.merge_cached_data(latitude, longitude, name, days)
    if not result.persisted:
        logger.error(
            "Failed to persist legacy location",
            extra={"path": str(path), "cache_key": cache_key, "error": result.error},
        )
        return False

    logger.info(
        "Legacy location imported",
        extra={
            "path": path.name,
            "cache_key": cache_key,
            "added_days": result.added_days,
            "legacy_days": len(days),
        },
    )
    return True


def main() -> int:
    """Import every legacy location file in a directory.

    Returns:
        0 if all files were imported, 1 if any failed
    """
    parser = argparse.ArgumentParser(description="Import a legacy Suncast JSON cache directory")
    parser.add_argument("directory", type=Path, help="Legacy cache directory")
    args = parser.parse_args()

    setup_logging()
    set_request_id("import-legacy-cache")

    directory: Path = args.directory
    if not directory.is_dir():
        logger.error("Legacy cache directory not found", extra={"path": str(directory)})
        return 1

    index = load_legacy_index(directory)
    files = sorted(p for p in directory.glob("*.json") if p.name != INDEX_FILE)
    logger.info(
        "Starting legacy cache import",
        extra={"path": str(directory), "files": len(files), "indexed": len(index)},
    )

    store = RecordStore()
    cache = HistoricalCache(store)
    failed = 0

    try:
        for path in files:
            if not import_file(cache, path, index):
                failed += 1

        try:
            catalog = cache.rebuild_catalog()
        except (CacheWriteError, sqlite3.Error) as e:
            logger.error("Failed to rebuild cache catalog", extra={"error": str(e)}, exc_info=True)
            return 1
    finally:
        store.close()

    logger.info(
        "Legacy cache import finished",
        extra={
            "imported": len(files) - failed,
            "failed": failed,
            "locations": len(catalog.locations),
            "total_cached_days": catalog.total_cached_days,
        },
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
