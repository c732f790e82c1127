"""Client for the Open-Meteo 7-day forecast and air quality APIs.

API Documentation:
- https://open-meteo.com/en/docs
- https://open-meteo.com/en/docs/air-quality-api

Unlike the archive, the forecast API reports a precipitation probability and
visibility per hour, and the air quality API adds the US AQI. Each forecast
day is described by the sky at the local sunset sample hour and scored with
the same weights as historical days.

Air quality is optional: when that API fails the days are scored with a
neutral AQI instead of failing the whole forecast.
"""

from datetime import date
from typing import Any

import requests

from suncast.config import Config
from suncast.integrations.open_meteo import SUNSET_SAMPLE_HOUR
from suncast.utils.logging import get_logger, log_payload_snippet
from suncast.utils.scoring import get_cloud_type, score

logger = get_logger(__name__)

FORECAST_DAYS = 7

FORECAST_HOURLY_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation_probability",
    "weather_code",
    "cloud_cover",
    "visibility",
    "wind_speed_10m",
]

FORECAST_DAILY_FIELDS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "sunset",
    "sunrise",
]

# Used when an hourly value is absent
DEFAULT_SUNSET_TIME = "18:30"
DEFAULT_CLOUD_COVER = 50
DEFAULT_TEMPERATURE = 20
DEFAULT_HUMIDITY = 50
DEFAULT_WIND_SPEED = 10
DEFAULT_VISIBILITY = 10000
DEFAULT_AQI = 50


class ForecastFetchError(Exception):
    """The forecast API could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _headers() -> dict[str, str]:
    return {"User-Agent": f"Suncast/{Config.APP_VERSION} (contact: {Config.CONTACT_EMAIL})"}


def _value_at(block: dict[str, Any], name: str, index: int, default: Any) -> Any:
    values = block.get(name) or []
    if index < len(values) and values[index] is not None:
        return values[index]
    return default


def _clock(raw: Any, default: str | None) -> str | None:
    """HH:MM from "2025-10-23T18:36", or ``default`` when the value is missing."""
    if not isinstance(raw, str) or not raw:
        return default
    if "T" in raw:
        return raw.split("T", 1)[1][:5] or default
    return raw


def build_forecast_days(
    weather: dict[str, Any], air_quality: dict[str, Any] | None
) -> list[dict[str, Any]]:
    """Turn forecast and air quality responses into one scored entry per day.

    Raises:
        ForecastFetchError: If the forecast has no daily dates or hourly times
    """
    daily = weather.get("daily")
    hourly = weather.get("hourly")
    if not isinstance(daily, dict) or not isinstance(daily.get("time"), list):
        log_payload_snippet(logger, weather)
        raise ForecastFetchError("Forecast response has no daily data")
    if not isinstance(hourly, dict) or not hourly.get("time"):
        log_payload_snippet(logger, weather)
        raise ForecastFetchError("Forecast response has no hourly data")

    aqi_hourly: dict[str, Any] = {}
    if air_quality and isinstance(air_quality.get("hourly"), dict):
        aqi_hourly = air_quality["hourly"]

    last_hour = len(hourly["time"]) - 1
    days: list[dict[str, Any]] = []
    for day_index, day_date in enumerate(daily["time"][:FORECAST_DAYS]):
        hour = min(day_index * 24 + SUNSET_SAMPLE_HOUR, last_hour)

        weather_code = _value_at(hourly, "weather_code", hour, 0)
        cloud_cover = _value_at(hourly, "cloud_cover", hour, DEFAULT_CLOUD_COVER)
        temperature = _value_at(
            hourly,
            "temperature_2m",
            hour,
            _value_at(daily, "temperature_2m_max", day_index, DEFAULT_TEMPERATURE),
        )
        humidity = _value_at(hourly, "relative_humidity_2m", hour, DEFAULT_HUMIDITY)
        wind_speed = _value_at(hourly, "wind_speed_10m", hour, DEFAULT_WIND_SPEED)
        precipitation_chance = _value_at(hourly, "precipitation_probability", hour, 0)
        visibility = _value_at(hourly, "visibility", hour, DEFAULT_VISIBILITY)
        aqi = round(_value_at(aqi_hourly, "us_aqi", hour, DEFAULT_AQI))

        cloud = get_cloud_type(weather_code)
        temperature_stable = weather_code <= 3
        result = score(
            {
                "cloud_type": cloud.name,
                "cloud_height_km": cloud.height_km,
                "cloud_coverage": cloud_cover,
                "precipitation_chance": precipitation_chance,
                "air_quality_index": aqi,
                "humidity": humidity,
                "visibility": visibility,
                "wind_speed": round(wind_speed),
            }
        )

        days.append(
            {
                "date": day_date,
                "day_of_week": date.fromisoformat(day_date).strftime("%A"),
                "temperature": round(temperature),
                "cloud_coverage": cloud_cover,
                "cloud_type": cloud.name,
                "cloud_height_km": cloud.height_km,
                "precipitation_chance": precipitation_chance,
                "humidity": humidity,
                "wind_speed": round(wind_speed),
                "visibility": visibility,
                "air_quality_index": aqi,
                "temperature_stable": temperature_stable,
                "sunrise_time": _clock(_value_at(daily, "sunrise", day_index, None), None),
                "sunset_time": _clock(
                    _value_at(daily, "sunset", day_index, None), DEFAULT_SUNSET_TIME
                ),
                "conditions": cloud.name,
                "weather_code": weather_code,
                "sunset_score": result["score"],
                "sunset_label": result["label"],
            }
        )
    return days


def _fetch_air_quality(latitude: float, longitude: float) -> dict[str, Any] | None:
    """Hourly US AQI for the forecast window, or None if it is unavailable."""
    params: dict[str, str | float | int] = {
        "latitude": latitude,
        "longitude": longitude,
        "hourly": "us_aqi",
        "timezone": "auto",
        "forecast_days": FORECAST_DAYS,
    }
    try:
        response = requests.get(
            Config.AIR_QUALITY_API_URL,
            headers=_headers(),
            params=params,
            timeout=Config.FORECAST_API_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(
            "Open-Meteo air quality request failed",
            extra={"lat": latitude, "lon": longitude, "error": str(e)},
        )
        return None

    if response.status_code >= 400:
        logger.warning(
            "Open-Meteo air quality API error", extra={"status_code": response.status_code}
        )
        return None

    try:
        data = response.json()
    except ValueError:
        logger.warning("Open-Meteo air quality response is not valid JSON")
        return None
    return data if isinstance(data, dict) else None


def fetch_forecast_days(latitude: float, longitude: float) -> list[dict[str, Any]]:
    """Fetch and score the next FORECAST_DAYS days for a location.

    Raises:
        ForecastFetchError: On network errors, HTTP errors or malformed responses
            from the forecast API (air quality failures are tolerated)
    """
    logger.debug("Fetching forecast from Open-Meteo", extra={"lat": latitude, "lon": longitude})

    params: dict[str, str | float | int] = {
        "latitude": latitude,
        "longitude": longitude,
        "hourly": ",".join(FORECAST_HOURLY_FIELDS),
        "daily": ",".join(FORECAST_DAILY_FIELDS),
        "timezone": "auto",
        "forecast_days": FORECAST_DAYS,
    }

    try:
        response = requests.get(
            Config.FORECAST_API_URL,
            headers=_headers(),
            params=params,
            timeout=Config.FORECAST_API_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(
            "Open-Meteo forecast request failed",
            extra={"lat": latitude, "lon": longitude, "error": str(e)},
        )
        raise ForecastFetchError(f"Forecast request failed: {e}") from e

    if response.status_code >= 400:
        logger.warning(
            "Open-Meteo forecast API error",
            extra={"status_code": response.status_code, "error": response.text[:500]},
        )
        raise ForecastFetchError(
            f"Forecast API error ({response.status_code})", status_code=response.status_code
        )

    try:
        weather = response.json()
    except ValueError as e:
        raise ForecastFetchError("Forecast response is not valid JSON") from e
    if not isinstance(weather, dict):
        raise ForecastFetchError("Forecast response is not a JSON object")

    days = build_forecast_days(weather, _fetch_air_quality(latitude, longitude))
    logger.info(
        "Forecast fetched", extra={"lat": latitude, "lon": longitude, "days": len(days)}
    )
    return days
