"""Rate limiting for API endpoints.

Uses Flask-Limiter with a configurable storage backend (memory, Redis,
Memcached). Clients are keyed by remote address. The historical and forecast
endpoints get stricter limits because a cache miss turns into an Open-Meteo
call, and Open-Meteo is rate-limited upstream.

The limiter is created at import time so route decorators can register their
limits before the app exists; ``init_rate_limiting`` binds it to the app.
"""

import re
from collections.abc import Callable
from typing import Any

from flask import Flask, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from suncast.api.errors import rate_limited_error
from suncast.config import Config
from suncast.utils.logging import get_logger

logger = get_logger(__name__)


def get_rate_limit_key() -> str:
    """Get the rate limit key for the current request."""
    return f"ip:{get_remote_address()}"


limiter = Limiter(
    key_func=get_rate_limit_key,
    # Default limits apply to all endpoints not explicitly decorated
    default_limits=[lambda: Config.RATE_LIMIT_DEFAULT],
    storage_uri=Config.RATE_LIMIT_STORAGE_URI,
    # Include rate limit headers in responses
    headers_enabled=True,
    strategy="fixed-window",
)


def init_rate_limiting(app: Flask) -> Limiter | None:
    """Initialize rate limiting for the Flask app.

    Args:
        app: Flask application instance

    Returns:
        Limiter instance if enabled, None if disabled
    """
    app.config["RATELIMIT_ENABLED"] = Config.RATE_LIMITING_ENABLED
    limiter.init_app(app)

    if not Config.RATE_LIMITING_ENABLED:
        logger.info("Rate limiting is disabled")
        return None

    @app.errorhandler(429)
    def rate_limit_handler(e: Exception) -> tuple[dict[str, Any], int, dict[str, str]]:
        """Handle rate limit exceeded errors with our standard error format."""
        retry_after = None
        description = str(getattr(e, "description", ""))
        match = re.search(r"(\d+)\s*second", description)
        if match:
            retry_after = int(match.group(1))

        logger.warning(
            "Rate limit exceeded",
            extra={
                "key": get_rate_limit_key(),
                "path": request.path,
                "method": request.method,
                "retry_after": retry_after,
            },
        )

        error_body, status = rate_limited_error(retry_after=retry_after)
        headers = {"Retry-After": str(retry_after)} if retry_after else {}
        return error_body, status, headers

    logger.info(
        "Rate limiting initialized",
        extra={
            "storage_uri": Config.RATE_LIMIT_STORAGE_URI,
            "default_limit": Config.RATE_LIMIT_DEFAULT,
            "historical_limit": Config.RATE_LIMIT_HISTORICAL,
            "forecast_limit": Config.RATE_LIMIT_FORECAST,
        },
    )

    return limiter


def rate_limit_forecast(f: Callable[..., Any]) -> Callable[..., Any]:
    """Apply the forecast endpoint rate limit.

    Use for: /api/forecast/<latitude>/<longitude>
    """
    return limiter.limit(lambda: Config.RATE_LIMIT_FORECAST)(f)


def rate_limit_historical(f: Callable[..., Any]) -> Callable[..., Any]:
    """Apply the historical endpoint rate limit (stricter).

    Use for: /api/historical
    """
    return limiter.limit(lambda: Config.RATE_LIMIT_HISTORICAL)(f)


def exempt_from_rate_limit(f: Callable[..., Any]) -> Callable[..., Any]:
    """Exempt an endpoint from rate limiting.

    Use sparingly for endpoints that must always be available:
    - Health checks (/api/health, /api/ready)
    """
    return limiter.exempt(f)
