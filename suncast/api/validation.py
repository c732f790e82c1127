"""Request validation utilities using Pydantic.

This module provides a decorator for validating query strings and URL
parameters against Pydantic schemas, converting validation errors to the
standardized error format used throughout the API.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from flask import request
from pydantic import BaseModel, ValidationError

from suncast.api.errors import missing_field_error, validation_error
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def pydantic_to_error_response(
    error: ValidationError,
) -> tuple[dict[str, Any], int]:
    """Convert Pydantic ValidationError to standardized API error response.

    Only the first error is reported. Missing parameters get MISSING_FIELD so
    the dashboard can tell an incomplete request from a malformed one.
    """
    # Get first error (most relevant)
    first_error = error.errors()[0]

    # Extract field name from location tuple
    loc = first_error.get("loc", ())
    field = ".".join(str(x) for x in loc) if loc else None

    if first_error.get("type") == "missing" and field:
        return missing_field_error(field)

    message = first_error.get("msg", "Invalid input")

    # If the message starts with "Value error, " (from custom validators), clean it
    if message.startswith("Value error, "):
        message = message[13:]  # Remove "Value error, " prefix

    logger.debug(
        "Pydantic validation failed",
        extra={
            "field": field,
            "message": message,
            "error_count": len(error.errors()),
        },
    )

    return validation_error(message, field=field)


def validate_query(
    schema_class: type[T],
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that validates query parameters and URL variables against a schema.

    Usage:
        @api.route("/cache/<latitude>/<longitude>", methods=["GET"])
        @validate_query(Coordinates)
        def get_location_cache(params: Coordinates) -> ...:
            ...

    URL variables take precedence over query parameters of the same name and
    are consumed by the decorator: the view only receives the validated model.
    On failure the standardized 400 error response is returned.
    """

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            data: dict[str, Any] = request.args.to_dict()
            data.update(kwargs)

            try:
                validated = schema_class.model_validate(data)
            except ValidationError as e:
                return pydantic_to_error_response(e)

            return f(validated, *args)

        return wrapper

    return decorator
