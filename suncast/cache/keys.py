"""Location key resolution.

Coordinates are rounded to two decimal places (roughly a 1.1 km grid cell)
so that nearby requests for the same city share one cache entry.
"""

import math
from decimal import ROUND_HALF_UP, Decimal

KEY_PRECISION = Decimal("0.01")


def round_coordinate(value: float) -> float:
    """Round a coordinate to two decimals, halves away from zero.

    Rounding goes through the shortest decimal representation of the float,
    so ``1.005`` becomes ``1.01`` rather than falling victim to its binary
    approximation.

    Raises:
        ValueError: If the value is NaN or infinite, which has no grid cell
    """
    if not math.isfinite(value):
        raise ValueError(f"Coordinate must be finite, got {value!r}")
    quantized = Decimal(repr(float(value))).quantize(KEY_PRECISION, rounding=ROUND_HALF_UP)
    # Normalize -0.0 so that e.g. -0.001 and 0.001 share a key
    return float(quantized) + 0.0


def _format_coordinate(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return repr(value)


def resolve_key(latitude: float, longitude: float) -> str:
    """Resolve a coordinate pair to its cache key, e.g. ``"40.71_-74.01"``.

    Raises:
        ValueError: If either coordinate is NaN or infinite
    """
    lat = round_coordinate(latitude)
    lon = round_coordinate(longitude)
    return f"{_format_coordinate(lat)}_{_format_coordinate(lon)}"
