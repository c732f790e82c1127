"""SQLite-backed store for per-location records and the cache catalog.

Each rounded location is one row in ``location_records`` holding the full
daily series as JSON. ``cache_catalog`` summarizes every stored record and
``cache_stats`` carries the aggregate day count.

Every mutation runs in a single ``BEGIN IMMEDIATE`` transaction that touches
the record, its catalog entry and the stats row together. A failed write is
rolled back, so readers never see a half-written record or a catalog that
disagrees with the records it summarizes.

Failure semantics:
- Reads degrade: a missing, undecodable or unreadable record is a cache miss.
- Writes raise ``CacheWriteError``: data fetched from the archive would
  otherwise be silently lost.
"""

import json
import os
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from yoyo import get_backend, read_migrations

from suncast.cache.models import (
    CATALOG_VERSION,
    Catalog,
    LocationRecord,
    LocationSummary,
)
from suncast.config import Config
from suncast.utils.connection_pool import ConnectionPool
from suncast.utils.db_helpers import execute_with_timing, init_query_logging
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"


class CacheWriteError(OSError):
    """Persisting to the cache database failed."""


class RecordStore:
    """Durable storage of one daily series per location key plus the catalog."""

    def __init__(self, db_path: Path | None = None) -> None:
        """Open (and if needed create) the cache database.

        Args:
            db_path: Path to the SQLite file. Uses Config.CACHE_DATABASE_PATH if not provided.
        """
        self.db_path = db_path or Config.CACHE_DATABASE_PATH
        self._should_log_queries, self._slow_query_threshold_ms = init_query_logging()
        self._pool = ConnectionPool(self.db_path)
        self.initialize()

    def close(self) -> None:
        """Close all pooled connections. Call this on application shutdown."""
        self._pool.close_all()

    def _execute(
        self,
        conn: sqlite3.Connection,
        query: str,
        params: tuple[Any, ...] = (),
    ) -> sqlite3.Cursor:
        return execute_with_timing(
            conn,
            query,
            params,
            should_log=self._should_log_queries,
            slow_query_threshold_ms=self._slow_query_threshold_ms,
        )

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection]:
        """Run a block inside one write transaction.

        IMMEDIATE takes the write lock up front, so two writers never both
        read stale stats and then race to commit.
        """
        with self._pool.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")

    def initialize(self) -> None:
        """Ensure the database directory, schema and stats row exist.

        Idempotent; safe to call on every process start.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Initializing cache store", extra={"db_path": str(self.db_path)})

        backend = get_backend(f"sqlite:///{self.db_path}")
        migrations = read_migrations(str(MIGRATIONS_DIR))
        try:
            with backend.lock():
                migrations_to_apply = backend.to_apply(migrations)
                if migrations_to_apply:
                    logger.info(
                        "Applying cache migrations", extra={"count": len(migrations_to_apply)}
                    )
                backend.apply_migrations(migrations_to_apply)
        finally:
            backend.connection.close()

        with self._pool.get_connection() as conn:
            self._execute(
                conn,
                """
                INSERT OR IGNORE INTO cache_stats (id, version, total_cached_days, last_updated)
                VALUES (1, ?, 0, ?)
                """,
                (CATALOG_VERSION, _now().isoformat()),
            )

    # ============================================================================
    # Location records
    # ============================================================================

    def read(self, cache_key: str) -> LocationRecord | None:
        """Load the stored record for a key.

        Returns:
            The LocationRecord, or None on a miss (including unreadable rows)
        """
        try:
            with self._pool.get_connection() as conn:
                row = self._execute(
                    conn,
                    "SELECT record_data FROM location_records WHERE cache_key = ?",
                    (cache_key,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(
                "Failed to read cached record",
                extra={"cache_key": cache_key, "error": str(e)},
            )
            return None

        if not row:
            return None

        record = _decode_record(row["record_data"])
        if record is None:
            logger.warning(
                "Corrupt cached record treated as a miss", extra={"cache_key": cache_key}
            )
        return record

    def write(self, record: LocationRecord) -> None:
        """Replace a record and its catalog entry atomically.

        Raises:
            CacheWriteError: If the record could not be persisted
        """
        summary = LocationSummary.for_record(record)
        try:
            record_json = json.dumps(record.to_dict())
        except (TypeError, ValueError) as e:
            raise CacheWriteError(f"Record for {record.cache_key} is not serializable: {e}") from e

        try:
            with self._transaction() as conn:
                self._execute(
                    conn,
                    """
                    INSERT INTO location_records (cache_key, record_data, cached_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(cache_key) DO UPDATE SET
                        record_data = excluded.record_data,
                        cached_at = excluded.cached_at
                    """,
                    (record.cache_key, record_json, record.cached_at.isoformat()),
                )
                self._upsert_summary(conn, summary)
                self._refresh_stats(conn, summary.last_updated)
        except sqlite3.Error as e:
            logger.error(
                "Failed to write cached record",
                extra={"cache_key": record.cache_key, "error": str(e)},
            )
            raise CacheWriteError(f"Failed to write record for {record.cache_key}: {e}") from e

        logger.debug(
            "Cached record written",
            extra={"cache_key": record.cache_key, "total_days": record.total_days},
        )

    def delete(self, cache_key: str) -> bool:
        """Delete a record together with its catalog entry.

        Returns:
            True if a record was deleted, False if none existed

        Raises:
            CacheWriteError: If the deletion could not be committed
        """
        try:
            with self._transaction() as conn:
                cursor = self._execute(
                    conn, "DELETE FROM location_records WHERE cache_key = ?", (cache_key,)
                )
                deleted = cursor.rowcount > 0
                self._execute(conn, "DELETE FROM cache_catalog WHERE cache_key = ?", (cache_key,))
                self._refresh_stats(conn, _now())
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to delete record for {cache_key}: {e}") from e

        if deleted:
            logger.debug("Cached record deleted", extra={"cache_key": cache_key})
        return deleted

    def delete_all(self) -> int:
        """Delete every record and reset the catalog.

        Returns:
            Number of records removed

        Raises:
            CacheWriteError: If the reset could not be committed
        """
        try:
            with self._transaction() as conn:
                cursor = self._execute(conn, "DELETE FROM location_records")
                count = cursor.rowcount
                self._execute(conn, "DELETE FROM cache_catalog")
                self._refresh_stats(conn, _now())
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to clear the cache: {e}") from e

        logger.debug("All cached records deleted", extra={"count": count})
        return count

    def count_records(self) -> int:
        """Number of stored location records (0 if the database is unreadable)."""
        try:
            with self._pool.get_connection() as conn:
                row = self._execute(
                    conn, "SELECT COUNT(*) AS cnt FROM location_records"
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to count cached records", extra={"error": str(e)})
            return 0
        return row["cnt"] if row else 0

    def list_keys(self) -> list[str]:
        """Keys of every stored record, sorted."""
        with self._pool.get_connection() as conn:
            rows = self._execute(
                conn, "SELECT cache_key FROM location_records ORDER BY cache_key"
            ).fetchall()
        return [row["cache_key"] for row in rows]

    # ============================================================================
    # Catalog
    # ============================================================================

    def read_catalog(self) -> Catalog:
        """Load the catalog. Returns an empty catalog if it cannot be read."""
        try:
            with self._pool.get_connection() as conn:
                rows = self._execute(
                    conn,
                    """
                    SELECT cache_key, name, latitude, longitude, total_days, last_updated
                    FROM cache_catalog
                    ORDER BY cache_key
                    """,
                ).fetchall()
                stats = self._execute(
                    conn,
                    "SELECT version, total_cached_days, last_updated FROM cache_stats WHERE id = 1",
                ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to read cache catalog", extra={"error": str(e)})
            return Catalog()

        summaries = {
            row["cache_key"]: LocationSummary(
                cache_key=row["cache_key"],
                name=row["name"],
                latitude=row["latitude"],
                longitude=row["longitude"],
                total_days=row["total_days"],
                last_updated=datetime.fromisoformat(row["last_updated"]),
            )
            for row in rows
        }

        if not stats:
            return Catalog(locations=summaries)

        return Catalog(
            locations=summaries,
            total_cached_days=stats["total_cached_days"],
            last_updated=(
                datetime.fromisoformat(stats["last_updated"]) if stats["last_updated"] else None
            ),
            version=stats["version"],
        )

    def write_catalog(self, catalog: Catalog) -> None:
        """Replace the whole catalog and its stats atomically.

        Raises:
            CacheWriteError: If the catalog could not be persisted
        """
        last_updated = catalog.last_updated or _now()
        try:
            with self._transaction() as conn:
                self._execute(conn, "DELETE FROM cache_catalog")
                for summary in catalog.locations.values():
                    self._upsert_summary(conn, summary)
                self._refresh_stats(conn, last_updated)
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to write cache catalog: {e}") from e

        logger.debug("Cache catalog written", extra={"locations": len(catalog.locations)})

    def rebuild_catalog(self, last_updated: datetime | None = None) -> tuple[Catalog, list[str]]:
        """Regenerate the catalog from the stored records in one transaction.

        Records are reread under the write lock, so a merge either commits
        before the rebuild (and is summarized) or waits for it to finish (and
        upserts its own entry afterwards). Rows that no longer decode are
        deleted, since every read already treats them as misses.

        Returns:
            Tuple of (rebuilt catalog, keys of the dropped rows)

        Raises:
            CacheWriteError: If the rebuild could not be committed
        """
        last_updated = last_updated or _now()
        summaries: list[LocationSummary] = []
        dropped: list[str] = []
        try:
            with self._transaction() as conn:
                rows = self._execute(
                    conn,
                    "SELECT cache_key, record_data FROM location_records ORDER BY cache_key",
                ).fetchall()
                for row in rows:
                    record = _decode_record(row["record_data"])
                    if record is None:
                        dropped.append(row["cache_key"])
                        continue
                    summaries.append(LocationSummary.for_record(record))

                for cache_key in dropped:
                    self._execute(
                        conn, "DELETE FROM location_records WHERE cache_key = ?", (cache_key,)
                    )
                self._execute(conn, "DELETE FROM cache_catalog")
                for summary in summaries:
                    self._upsert_summary(conn, summary)
                self._refresh_stats(conn, last_updated)
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to rebuild cache catalog: {e}") from e

        for cache_key in dropped:
            logger.warning(
                "Dropped unreadable record during catalog rebuild", extra={"cache_key": cache_key}
            )
        return Catalog.from_summaries(summaries, last_updated=last_updated), dropped

    def check_connectivity(self) -> tuple[bool, str | None]:
        """Check that the cache database can be read and its directory written.

        Returns:
            Tuple of (success, error_message)
        """
        parent_dir = self.db_path.parent
        if not os.access(parent_dir, os.W_OK):
            return False, f"Cache directory is not writable: {parent_dir}"

        try:
            with self._pool.get_connection() as conn:
                conn.execute("SELECT 1 FROM cache_stats LIMIT 1").fetchone()
        except sqlite3.Error as e:
            return False, f"Cache database query failed: {e}"

        return True, None

    def _upsert_summary(self, conn: sqlite3.Connection, summary: LocationSummary) -> None:
        self._execute(
            conn,
            """
            INSERT INTO cache_catalog
                (cache_key, name, latitude, longitude, total_days, last_updated)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
                name = excluded.name,
                latitude = excluded.latitude,
                longitude = excluded.longitude,
                total_days = excluded.total_days,
                last_updated = excluded.last_updated
            """,
            (
                summary.cache_key,
                summary.name,
                summary.latitude,
                summary.longitude,
                summary.total_days,
                summary.last_updated.isoformat(),
            ),
        )

    def _refresh_stats(self, conn: sqlite3.Connection, last_updated: datetime) -> None:
        """Recompute the aggregate day count from the catalog rows."""
        self._execute(
            conn,
            """
            UPDATE cache_stats
            SET total_cached_days = (SELECT COALESCE(SUM(total_days), 0) FROM cache_catalog),
                last_updated = ?
            WHERE id = 1
            """,
            (last_updated.isoformat(),),
        )


def _now() -> datetime:
    return datetime.now(UTC)


def _decode_record(raw: str) -> LocationRecord | None:
    """Parse a stored ``record_data`` value, or None if it is corrupt."""
    try:
        return LocationRecord.from_dict(json.loads(raw))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
        return None
