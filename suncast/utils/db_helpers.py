"""Query timing for the cache database.

Record rows hold a whole location's daily series as JSON, so a slow query
usually means an oversized record or a writer holding the lock. Timing is
only switched on in development or at DEBUG level.
"""

import sqlite3
import time
from typing import Any

from suncast.config import Config
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

# A record_data parameter can be megabytes of JSON
QUERY_SNIPPET_MAX_LENGTH = 200
PARAMS_SNIPPET_MAX_LENGTH = 100


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def execute_with_timing(
    conn: sqlite3.Connection,
    query: str,
    params: tuple[Any, ...] = (),
    *,
    should_log: bool,
    slow_query_threshold_ms: float,
) -> sqlite3.Cursor:
    """Run ``query`` and, when ``should_log`` is set, report how long it took.

    Queries at or over ``slow_query_threshold_ms`` are logged as warnings with
    a shortened copy of the SQL and its parameters. Faster ones are logged
    at DEBUG level only.
    """
    if not should_log:
        return conn.execute(query, params)

    started = time.perf_counter()
    cursor = conn.execute(query, params)
    elapsed_ms = (time.perf_counter() - started) * 1000

    query_snippet = _truncate(" ".join(query.split()), QUERY_SNIPPET_MAX_LENGTH)

    if elapsed_ms >= slow_query_threshold_ms:
        logger.warning(
            "Slow cache query detected",
            extra={
                "query_snippet": query_snippet,
                "params_snippet": _truncate(str(params), PARAMS_SNIPPET_MAX_LENGTH),
                "elapsed_ms": round(elapsed_ms, 2),
                "threshold_ms": slow_query_threshold_ms,
            },
        )
    elif Config.LOG_LEVEL == "DEBUG":
        logger.debug(
            "Cache query executed",
            extra={"query_snippet": query_snippet, "elapsed_ms": round(elapsed_ms, 2)},
        )

    return cursor


def init_query_logging() -> tuple[bool, float]:
    """Return (timing enabled, slow query threshold in ms) for a new store."""
    should_log = Config.LOG_LEVEL == "DEBUG" or Config.is_development()
    return should_log, Config.SLOW_QUERY_THRESHOLD_MS
