"""
Initial schema for the historical weather cache.

Two tiers: one row per rounded location holding its full daily series as JSON,
and a catalog summarizing every stored location. cache_stats holds a single
row with the aggregate day count across the catalog.
"""

from yoyo import step

steps = [
    step(
        """
        CREATE TABLE IF NOT EXISTS location_records (
            cache_key TEXT PRIMARY KEY,
            record_data TEXT NOT NULL,
            cached_at TEXT NOT NULL
        )
        """,
        "DROP TABLE IF EXISTS location_records",
    ),
    step(
        """
        CREATE TABLE IF NOT EXISTS cache_catalog (
            cache_key TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            total_days INTEGER NOT NULL,
            last_updated TEXT NOT NULL
        )
        """,
        "DROP TABLE IF EXISTS cache_catalog",
    ),
    step(
        """
        CREATE TABLE IF NOT EXISTS cache_stats (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version TEXT NOT NULL,
            total_cached_days INTEGER NOT NULL DEFAULT 0,
            last_updated TEXT
        )
        """,
        "DROP TABLE IF EXISTS cache_stats",
    ),
]
