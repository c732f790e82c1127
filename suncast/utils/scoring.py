"""Sunset quality scoring.

``score()`` is a pure function from one weather sample to a 0-100 score and
a label. The weights are heuristic: high and mid-level clouds at moderate
coverage help, while rain, fog and low overcast hurt.

Sample keys (all optional, with neutral defaults):
    cloud_type, cloud_height_km, cloud_coverage, precipitation_chance,
    humidity, air_quality_index, visibility, wind_speed
"""

from dataclasses import dataclass
from typing import Any

from suncast.cache.models import DailyRecord


@dataclass(frozen=True)
class CloudType:
    """Cloud description inferred from a WMO weather code."""

    name: str
    height_km: float


# WMO weather interpretation codes
CLOUD_TYPES: dict[int, CloudType] = {
    0: CloudType("Clear", 0),
    1: CloudType("Mainly Clear", 8),
    2: CloudType("Partly Cloudy", 7),
    3: CloudType("Overcast", 3),
    45: CloudType("Fog", 0.5),
    48: CloudType("Fog", 0.5),
    51: CloudType("Drizzle", 2),
    53: CloudType("Drizzle", 2),
    55: CloudType("Drizzle", 2),
    61: CloudType("Rain", 2),
    63: CloudType("Rain", 2),
    65: CloudType("Rain", 2),
    71: CloudType("Snow", 3),
    73: CloudType("Snow", 3),
    75: CloudType("Snow", 3),
    80: CloudType("Rain Showers", 4),
    81: CloudType("Rain Showers", 4),
    82: CloudType("Rain Showers", 4),
    95: CloudType("Thunderstorm", 8),
    96: CloudType("Thunderstorm with Hail", 10),
    99: CloudType("Thunderstorm with Hail", 10),
}

DEFAULT_CLOUD_TYPE = CloudType("Partly Cloudy", 5)

# (minimum score, label), checked top-down
SCORE_LABELS: list[tuple[int, str]] = [
    (70, "Excellent"),
    (55, "Good"),
    (35, "Fair"),
    (0, "Poor"),
]


def get_cloud_type(weather_code: int | None) -> CloudType:
    """Map a WMO weather code to a cloud type. Unknown codes get a neutral default."""
    if weather_code is None:
        return DEFAULT_CLOUD_TYPE
    return CLOUD_TYPES.get(int(weather_code), DEFAULT_CLOUD_TYPE)


def label_for(score_value: int) -> str:
    for minimum, label in SCORE_LABELS:
        if score_value >= minimum:
            return label
    return SCORE_LABELS[-1][1]


def _cloud_points(cloud_type: str, height: float) -> int:
    if height > 12:
        return 35
    if height >= 6:
        if "cirrus" in cloud_type or "cirrostratus" in cloud_type:
            return 30
        if "altocumulus" in cloud_type or "altostratus" in cloud_type:
            return 22
        return 18
    if height >= 2:
        if "altocumulus" in cloud_type or "altostratus" in cloud_type:
            return 18
        if "cumulus" in cloud_type:
            return 14
        return 10
    if "stratus" in cloud_type or "fog" in cloud_type:
        return -20
    if "cumulus" in cloud_type:
        return 8
    return 5


def _coverage_points(coverage: float) -> int:
    if 25 <= coverage <= 40:
        return 20
    if 40 < coverage <= 55:
        return 16
    if 15 <= coverage < 25:
        return 12
    if 5 <= coverage < 15:
        return 8
    if coverage == 0:
        return 5
    if coverage > 80:
        return -15
    if coverage > 60:
        return 3
    return 0


def _precipitation_points(chance: float) -> int:
    if chance >= 70:
        return -25
    if chance >= 50:
        return -15
    if chance >= 30:
        return -8
    if chance >= 15:
        return -3
    if chance < 5:
        return 12
    if chance < 10:
        return 8
    return 4


def _air_quality_points(aqi: float) -> int:
    if aqi <= 20:
        return 12
    if aqi <= 40:
        return 10
    if aqi <= 60:
        return 7
    if aqi <= 100:
        return 4
    if aqi <= 150:
        return 1
    return -8


def _humidity_points(humidity: float) -> int:
    if humidity <= 25:
        return 8
    if humidity <= 45:
        return 6
    if humidity <= 65:
        return 3
    if humidity >= 85:
        return -5
    return 1


def _visibility_points(visibility: float) -> int:
    if visibility >= 15000:
        return 8
    if visibility >= 10000:
        return 6
    if visibility >= 7000:
        return 4
    if visibility >= 4000:
        return 2
    return -5


def _wind_points(wind_speed: float) -> int:
    if 5 <= wind_speed <= 12:
        return 7
    if 3 <= wind_speed < 5:
        return 5
    if 12 < wind_speed <= 20:
        return 3
    if wind_speed > 30:
        return -5
    if wind_speed > 20:
        return -2
    return 2


def score(sample: dict[str, Any]) -> dict[str, Any]:
    """Score a sunset weather sample.

    Args:
        sample: Weather sample (see module docstring for keys)

    Returns:
        Dict with ``score`` (int, 0-100) and ``label``
    """
    cloud_type = str(sample.get("cloud_type") or "").lower()
    height = float(sample.get("cloud_height_km") or 0)
    coverage = float(sample.get("cloud_coverage") or 0)
    precipitation_chance = float(sample.get("precipitation_chance") or 0)
    humidity = float(sample.get("humidity") or 50)
    aqi = float(sample.get("air_quality_index") or 50)
    visibility = float(sample.get("visibility") or 10000)
    wind_speed = float(sample.get("wind_speed") or 10)

    total = (
        _cloud_points(cloud_type, height)
        + _coverage_points(coverage)
        + _precipitation_points(precipitation_chance)
        + _air_quality_points(aqi)
        + _humidity_points(humidity)
        + _visibility_points(visibility)
        + _wind_points(wind_speed)
    )

    if "thunderstorm" in cloud_type or "rain" in cloud_type:
        total -= 20
    if "fog" in cloud_type or "mist" in cloud_type:
        total -= 15

    if height >= 6 and 25 <= coverage <= 45 and aqi <= 40 and precipitation_chance < 5:
        total += 10

    value = max(0, min(100, round(total)))
    return {"score": value, "label": label_for(value)}


def precipitation_chance_from_sum(precipitation_mm: float | None) -> float:
    """Approximate a precipitation chance (%) from a daily precipitation total.

    The archive only reports what fell, not a probability.
    """
    if not precipitation_mm:
        return 0
    if precipitation_mm >= 10:
        return 80
    if precipitation_mm >= 2:
        return 50
    if precipitation_mm >= 0.5:
        return 25
    return 10


def score_day(day: DailyRecord) -> DailyRecord:
    """Return a copy of ``day`` with cloud, score and label fields attached."""
    cloud = get_cloud_type(day.get("weather_code"))
    sample = {
        "cloud_type": cloud.name,
        "cloud_height_km": cloud.height_km,
        "cloud_coverage": day.get("cloud_coverage"),
        "precipitation_chance": precipitation_chance_from_sum(day.get("precipitation")),
        "humidity": day.get("humidity"),
        "wind_speed": day.get("wind_speed"),
    }
    result = score(sample)
    return {
        **day,
        "conditions": cloud.name,
        "cloud_type": cloud.name,
        "cloud_height_km": cloud.height_km,
        "sunset_score": result["score"],
        "sunset_label": result["label"],
    }
