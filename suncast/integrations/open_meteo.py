"""Client for the Open-Meteo historical weather archive.

API Documentation: https://open-meteo.com/en/docs/historical-weather-api

The archive returns column-oriented data: ``daily.time`` lists the dates and
every other ``daily`` key is a list aligned with it. Hourly columns work the
same way and are sampled at the local sunset hour to describe the sky at
sunset. Each day is converted into a flat DailyRecord and scored.
"""

from typing import Any

import requests

from suncast.cache.models import DailyRecord
from suncast.config import Config
from suncast.utils.logging import get_logger, log_payload_snippet
from suncast.utils.scoring import score_day

logger = get_logger(__name__)

DAILY_FIELDS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "sunrise",
    "sunset",
]

HOURLY_FIELDS = ["cloud_cover", "relative_humidity_2m", "wind_speed_10m"]

# Hour of the local day sampled from the hourly columns
SUNSET_SAMPLE_HOUR = 18


class ArchiveFetchError(Exception):
    """The archive could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _clock_time(value: Any) -> str | None:
    """Extract HH:MM from an ISO local datetime ("2024-06-01T21:14" -> "21:14")."""
    if not isinstance(value, str) or not value:
        return None
    if "T" in value:
        return value.split("T", 1)[1][:5]
    return value


def _column(block: dict[str, Any], name: str, index: int) -> Any:
    values = block.get(name) or []
    return values[index] if index < len(values) else None


def _hourly_samples(hourly: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Index the sunset-hour hourly values by date."""
    times = hourly.get("time") or []
    suffix = f"T{SUNSET_SAMPLE_HOUR:02d}:00"
    samples: dict[str, dict[str, Any]] = {}
    for index, timestamp in enumerate(times):
        if not isinstance(timestamp, str) or not timestamp.endswith(suffix):
            continue
        samples[timestamp.split("T", 1)[0]] = {
            "cloud_coverage": _column(hourly, "cloud_cover", index),
            "humidity": _column(hourly, "relative_humidity_2m", index),
            "wind_speed": _column(hourly, "wind_speed_10m", index),
        }
    return samples


def parse_archive_payload(data: Any) -> list[DailyRecord]:
    """Convert an archive response body into scored DailyRecords.

    Raises:
        ArchiveFetchError: If the payload has no usable daily data
    """
    if not isinstance(data, dict):
        raise ArchiveFetchError("Archive response is not a JSON object")

    daily = data.get("daily")
    if not isinstance(daily, dict) or not isinstance(daily.get("time"), list):
        log_payload_snippet(logger, data)
        raise ArchiveFetchError("Archive response has no daily data")

    hourly = data.get("hourly")
    samples = _hourly_samples(hourly) if isinstance(hourly, dict) else {}

    days: list[DailyRecord] = []
    for index, day_date in enumerate(daily["time"]):
        day: DailyRecord = {
            "date": day_date,
            "sunrise": _clock_time(_column(daily, "sunrise", index)),
            "sunset": _clock_time(_column(daily, "sunset", index)),
            "weather_code": _column(daily, "weather_code", index),
            "temperature_max": _column(daily, "temperature_2m_max", index),
            "temperature_min": _column(daily, "temperature_2m_min", index),
            "precipitation": _column(daily, "precipitation_sum", index),
        }
        day.update(samples.get(day_date, {}))
        days.append(score_day(day))
    return days


def fetch_archive_days(
    latitude: float,
    longitude: float,
    start_date: str,
    end_date: str,
) -> list[DailyRecord]:
    """Fetch daily historical weather for [start_date, end_date].

    Args:
        latitude: Latitude coordinate
        longitude: Longitude coordinate
        start_date: First day (YYYY-MM-DD)
        end_date: Last day (YYYY-MM-DD), inclusive

    Returns:
        One scored DailyRecord per day returned by the archive

    Raises:
        ArchiveFetchError: On network errors, HTTP errors or malformed responses
    """
    logger.debug(
        "Fetching archive data from Open-Meteo",
        extra={"lat": latitude, "lon": longitude, "start": start_date, "end": end_date},
    )

    headers = {
        "User-Agent": f"Suncast/{Config.APP_VERSION} (contact: {Config.CONTACT_EMAIL})",
    }
    params: dict[str, str | float] = {
        "latitude": latitude,
        "longitude": longitude,
        "start_date": start_date,
        "end_date": end_date,
        "daily": ",".join(DAILY_FIELDS),
        "hourly": ",".join(HOURLY_FIELDS),
        "timezone": "auto",
    }

    try:
        response = requests.get(
            Config.ARCHIVE_API_URL,
            headers=headers,
            params=params,
            timeout=Config.ARCHIVE_API_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(
            "Open-Meteo archive request failed",
            extra={"lat": latitude, "lon": longitude, "error": str(e)},
        )
        raise ArchiveFetchError(f"Archive request failed: {e}") from e

    if response.status_code >= 400:
        logger.warning(
            "Open-Meteo archive API error",
            extra={"status_code": response.status_code, "error": response.text[:500]},
        )
        raise ArchiveFetchError(
            f"Archive API error ({response.status_code})", status_code=response.status_code
        )

    try:
        data = response.json()
    except ValueError as e:
        raise ArchiveFetchError("Archive response is not valid JSON") from e

    days = parse_archive_payload(data)
    logger.info(
        "Archive data fetched",
        extra={
            "lat": latitude,
            "lon": longitude,
            "start": start_date,
            "end": end_date,
            "days": len(days),
        },
    )
    return days
