from typing import Any

from flask import Blueprint, current_app

from suncast.api.errors import external_service_error, not_found_error, server_error
from suncast.api.rate_limiting import (
    exempt_from_rate_limit,
    rate_limit_forecast,
    rate_limit_historical,
)
from suncast.api.schemas import Coordinates, HistoricalQuery
from suncast.api.validation import validate_query
from suncast.cache.engine import HistoricalCache
from suncast.cache.store import CacheWriteError
from suncast.integrations.open_meteo import ArchiveFetchError
from suncast.integrations.open_meteo_forecast import ForecastFetchError
from suncast.services.forecast import ForecastCache, get_forecast
from suncast.services.historical import get_historical_days
from suncast.utils.logging import get_logger

logger = get_logger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def get_cache() -> HistoricalCache:
    """The HistoricalCache bound to the current app by create_app()."""
    cache: HistoricalCache = current_app.extensions["historical_cache"]
    return cache


def get_forecast_cache() -> ForecastCache:
    cache: ForecastCache = current_app.extensions["forecast_cache"]
    return cache


# ============================================================================
# Historical Routes
# ============================================================================


@api.route("/historical", methods=["GET"])
@rate_limit_historical
@validate_query(HistoricalQuery)
def get_historical(params: HistoricalQuery) -> tuple[dict[str, Any], int]:
    """Serve daily history for a location, fetching only the days not yet cached."""
    logger.debug(
        "Historical data requested",
        extra={
            "lat": params.latitude,
            "lon": params.longitude,
            "start": params.start_date,
            "end": params.end_date,
        },
    )

    try:
        result = get_historical_days(
            get_cache(),
            params.latitude,
            params.longitude,
            params.start_date,
            params.end_date,
            name=params.location,
        )
    except ArchiveFetchError as e:
        logger.error(
            "Historical data unavailable",
            extra={
                "lat": params.latitude,
                "lon": params.longitude,
                "status_code": e.status_code,
                "error": str(e),
            },
        )
        return external_service_error(
            "Historical weather data is temporarily unavailable. Please try again later.",
            service="open-meteo",
        )

    return result.to_api_dict(), 200


# ============================================================================
# Forecast Routes
# ============================================================================


@api.route("/forecast/<latitude>/<longitude>", methods=["GET"])
@rate_limit_forecast
@validate_query(Coordinates)
def get_forecast_for_location(params: Coordinates) -> tuple[dict[str, Any], int]:
    """Serve the scored 7-day forecast, cached in memory for a couple of hours."""
    try:
        entry, cached = get_forecast(get_forecast_cache(), params.latitude, params.longitude)
    except ForecastFetchError as e:
        logger.error(
            "Forecast unavailable",
            extra={
                "lat": params.latitude,
                "lon": params.longitude,
                "status_code": e.status_code,
                "error": str(e),
            },
        )
        return external_service_error(
            "Forecast data is temporarily unavailable. Please try again later.",
            service="open-meteo",
        )

    return entry.to_api_dict(cached=cached), 200


# ============================================================================
# Cache Routes
# ============================================================================


@api.route("/cache/stats", methods=["GET"])
def get_cache_stats() -> tuple[dict[str, Any], int]:
    return get_cache().get_cache_stats().to_api_dict(), 200


@api.route("/cache/all", methods=["DELETE"])
def clear_all_cache() -> tuple[dict[str, Any], int]:
    get_forecast_cache().clear_all()
    if not get_cache().clear_all_cache():
        return server_error("Failed to clear the cache. Please try again.")

    logger.info("All cache cleared via API")
    return {"status": "cleared", "message": "All cache cleared"}, 200


@api.route("/cache/<latitude>/<longitude>", methods=["GET"])
@validate_query(Coordinates)
def get_location_cache(params: Coordinates) -> tuple[dict[str, Any], int]:
    record = get_cache().get_cached_data(params.latitude, params.longitude)
    if not record:
        return not_found_error("Cached data for location")
    return record.to_api_dict(), 200


@api.route("/cache/<latitude>/<longitude>", methods=["DELETE"])
@validate_query(Coordinates)
def clear_location_cache(params: Coordinates) -> tuple[dict[str, Any], int]:
    try:
        deleted = get_cache().clear_location_cache(params.latitude, params.longitude)
    except CacheWriteError:
        return server_error("Failed to clear the location cache. Please try again.")

    if not deleted:
        return not_found_error("Cached data for location")

    logger.info(
        "Location cache cleared via API",
        extra={"lat": params.latitude, "lon": params.longitude},
    )
    return {"status": "cleared", "message": "Location cache cleared"}, 200


@api.route("/cache/forecast/<latitude>/<longitude>", methods=["DELETE"])
@validate_query(Coordinates)
def clear_forecast_cache(params: Coordinates) -> tuple[dict[str, Any], int]:
    if get_forecast_cache().clear(params.latitude, params.longitude):
        logger.info(
            "Forecast cache cleared via API",
            extra={"lat": params.latitude, "lon": params.longitude},
        )
    return {"status": "cleared", "message": "Forecast cache cleared"}, 200


# ============================================================================
# Health Check Routes
# ============================================================================


@api.route("/health", methods=["GET"])
@exempt_from_rate_limit
def health_check() -> tuple[dict[str, Any], int]:
    """Liveness probe - checks if the application process is running.

    This endpoint should NOT check the cache database.
    Use /api/ready for readiness checks that verify dependencies.
    """
    return {
        "status": "ok",
        "version": current_app.config.get("APP_VERSION"),
    }, 200


@api.route("/ready", methods=["GET"])
@exempt_from_rate_limit
def readiness_check() -> tuple[dict[str, Any], int]:
    """Readiness probe - checks if the cache database is usable.

    Returns:
        200: Application is ready to serve traffic
        503: Application is not ready (cache store failure)
    """
    checks: dict[str, dict[str, Any]] = {}

    store_ok, store_error = get_cache().store.check_connectivity()
    checks["cache"] = {
        "status": "ok" if store_ok else "error",
        "message": "Connected" if store_ok else store_error,
    }

    response = {
        "status": "ready" if store_ok else "not_ready",
        "checks": checks,
        "version": current_app.config.get("APP_VERSION"),
    }

    if store_ok:
        logger.debug("Readiness check passed")
        return response, 200

    logger.warning("Readiness check failed", extra={"checks": checks})
    return response, 503
