"""Thread-local SQLite connection management for the cache database.

Each request-handling thread gets one connection that is reused for every
cache read and write it performs. Connections run in autocommit mode so the
record store can open explicit ``BEGIN IMMEDIATE`` transactions that span a
record and its catalog entry.

Usage:
    pool = ConnectionPool("/path/to/historical.db")

    with pool.get_connection() as conn:
        conn.execute("SELECT cache_key FROM location_records")

    # On shutdown
    pool.close_all()
"""

import sqlite3
import threading
import weakref
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from suncast.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionPool:
    """Thread-local SQLite connection pool.

    SQLite serializes writers at the file level, so a pool of shared
    connections buys nothing; one connection per thread avoids both the
    open/close overhead and cross-thread use of a connection.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0) -> None:
        """Initialize the connection pool.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout: Seconds to wait for another writer's lock
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        logger.debug("Connection pool created", extra={"db_path": str(self.db_path)})

    @staticmethod
    def _release_connection(
        lock: threading.Lock,
        connections: dict[int, sqlite3.Connection],
        thread_id: int,
    ) -> None:
        """Close a connection once its owning Thread object is garbage-collected.

        Registered through weakref.finalize, so it must not reference the pool.
        """
        with lock:
            conn = connections.pop(thread_id, None)
        if conn is not None:
            try:
                conn.close()
            except sqlite3.Error:
                logger.debug("Ignoring error while closing released connection")

    def _reap_dead_threads(self) -> None:
        """Close connections owned by threads that have exited.

        Must be called with self._lock held.
        """
        alive_thread_ids = {t.ident for t in threading.enumerate()}
        dead_thread_ids = [tid for tid in self._connections if tid not in alive_thread_ids]
        for tid in dead_thread_ids:
            conn = self._connections.pop(tid)
            try:
                conn.close()
            except sqlite3.Error:
                logger.debug("Ignoring error while closing reaped connection")
        if dead_thread_ids:
            logger.debug(
                "Reaped dead thread connections",
                extra={"dead_count": len(dead_thread_ids), "remaining": len(self._connections)},
            )

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new autocommit connection with WAL journaling."""
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=self.busy_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        # WAL lets readers proceed while a merge is being written
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _get_thread_connection(self) -> sqlite3.Connection:
        """Get or create the connection for the current thread."""
        thread_id = threading.get_ident()
        conn: sqlite3.Connection | None = getattr(self._local, "connection", None)

        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except sqlite3.Error:
                logger.warning(
                    "Thread connection was broken, creating new one",
                    extra={"thread_id": thread_id, "db_path": str(self.db_path)},
                )
                with self._lock:
                    self._connections.pop(thread_id, None)

        conn = self._create_connection()
        self._local.connection = conn

        with self._lock:
            self._reap_dead_threads()
            self._connections[thread_id] = conn

        weakref.finalize(
            threading.current_thread(),
            ConnectionPool._release_connection,
            self._lock,
            self._connections,
            thread_id,
        )

        logger.debug(
            "Created new thread connection",
            extra={
                "thread_id": thread_id,
                "db_path": str(self.db_path),
                "total_connections": len(self._connections),
            },
        )
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection]:
        """Yield the current thread's connection.

        The connection stays open for reuse. If the block raises while a
        transaction is open, the transaction is rolled back before re-raising.
        """
        conn = self._get_thread_connection()
        try:
            yield conn
        except Exception:
            if conn.in_transaction:
                try:
                    conn.rollback()
                except sqlite3.Error:
                    logger.warning(
                        "Rollback failed", extra={"db_path": str(self.db_path)}, exc_info=True
                    )
            raise

    def close_all(self) -> None:
        """Close all connections in the pool. Call this on application shutdown."""
        with self._lock:
            for conn in self._connections.values():
                try:
                    conn.close()
                except sqlite3.Error:
                    logger.debug("Ignoring error while closing pooled connection")
            self._connections.clear()

        if hasattr(self._local, "connection"):
            self._local.connection = None

        logger.info("All pool connections closed", extra={"db_path": str(self.db_path)})

    def connection_count(self) -> int:
        """Return the number of open connections in the pool."""
        with self._lock:
            return len(self._connections)
