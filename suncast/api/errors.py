"""Error bodies returned by the Suncast API.

The dashboard reads ``error.retryable`` to decide between retrying a request
and serving whatever history it already holds locally. Every failure uses
this envelope:

    {"error": {"code": "...", "message": "...", "retryable": bool, "details": {...}}}

``details`` is present only when there is something to add, such as the
offending query parameter.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"  # bad coordinate or date parameter
    MISSING_FIELD = "MISSING_FIELD"
    NOT_FOUND = "NOT_FOUND"  # nothing cached for the location
    SERVER_ERROR = "SERVER_ERROR"  # cache database could not be written
    RATE_LIMITED = "RATE_LIMITED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"  # Open-Meteo failed


# Archive outages and locked databases tend to clear up on their own
RETRYABLE_ERRORS = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.SERVER_ERROR,
    ErrorCode.EXTERNAL_SERVICE_ERROR,
}


def is_retryable(code: ErrorCode) -> bool:
    return code in RETRYABLE_ERRORS


def create_error_response(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Wrap a code and user-facing message in the error envelope."""
    body: dict[str, Any] = {
        "code": code.value,
        "message": message,
        "retryable": is_retryable(code),
    }
    if details:
        body["details"] = details
    return {"error": body}


def validation_error(message: str, field: str | None = None) -> tuple[dict[str, Any], int]:
    """400 for a query parameter that failed validation."""
    details = {"field": field} if field else None
    return create_error_response(ErrorCode.VALIDATION_ERROR, message, details), 400


def missing_field_error(field: str) -> tuple[dict[str, Any], int]:
    """400 for a required query parameter that was not sent."""
    return create_error_response(
        ErrorCode.MISSING_FIELD,
        f"Missing required field: {field}",
        {"field": field},
    ), 400


def not_found_error(resource: str = "Resource") -> tuple[dict[str, Any], int]:
    return create_error_response(ErrorCode.NOT_FOUND, f"{resource} not found"), 404


def server_error(
    message: str = "An unexpected error occurred. Please try again.",
) -> tuple[dict[str, Any], int]:
    """500 with a generic message.

    SQLite errors carry file paths, so the cause goes to the log only.
    """
    return create_error_response(ErrorCode.SERVER_ERROR, message), 500


def rate_limited_error(
    message: str = "Too many requests. Please slow down.",
    retry_after: int | None = None,
) -> tuple[dict[str, Any], int]:
    details = {"retry_after": retry_after} if retry_after else None
    return create_error_response(ErrorCode.RATE_LIMITED, message, details), 429


def external_service_error(
    message: str = "External service error. Please try again.",
    service: str | None = None,
) -> tuple[dict[str, Any], int]:
    """502 when Open-Meteo could not supply days that are not cached."""
    details = {"service": service} if service else None
    return create_error_response(ErrorCode.EXTERNAL_SERVICE_ERROR, message, details), 502
