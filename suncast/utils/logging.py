"""One-line JSON log records for the Suncast backend.

Callers attach context through ``extra={...}``; each key lands at the top
level of the emitted object next to ``timestamp``, ``level``, ``logger`` and
``message``. A ``request_id`` is added whenever one is known, which ties the
route, the reconciliation engine and the archive client lines of a single
request together. Scripts set their own ID so a warm-up run can be grepped
as a unit.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from typing import Any, cast

from flask import g, has_request_context

# Request ID outside a Flask request (scripts, worker threads)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# LogRecord attributes that belong to logging itself, never to ``extra``
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)


def get_request_id() -> str | None:
    """Request ID of the current request or script run, if any."""
    if has_request_context() and hasattr(g, "request_id"):
        return cast(str | None, g.request_id)
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Tag every following log line in this context with ``request_id``."""
    request_id_var.set(request_id)
    if has_request_context():
        g.request_id = request_id


class JSONFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        return json.dumps(entry, default=str)


def setup_logging() -> None:
    """Install the JSON formatter on the root logger at Config.LOG_LEVEL."""
    from suncast.config import Config

    level = getattr(logging, Config.LOG_LEVEL, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    # HTTP client, dev server and migration chatter
    for noisy in ("urllib3", "werkzeug", "yoyo"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_payload_snippet(
    logger: logging.Logger, payload: dict[str, Any], max_length: int = 500
) -> None:
    """Debug-log the head of an Open-Meteo response body.

    Archive responses for a long range run to hundreds of kilobytes, so only
    the first ``max_length`` characters are kept.
    """
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        logger.debug("Open-Meteo payload could not be serialized for logging")
        return

    if len(text) > max_length:
        text = text[:max_length] + "..."
    logger.debug("Open-Meteo payload", extra={"payload_snippet": text})
