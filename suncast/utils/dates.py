"""Calendar-date helpers for the historical cache.

Cached days are keyed by fixed-width ``YYYY-MM-DD`` strings. Everything that
walks or compares dates goes through ``datetime.date`` so day increments never
involve time zones or DST transitions.
"""

import re
from collections.abc import Iterator
from datetime import date, timedelta

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ONE_DAY = timedelta(days=1)


def parse_iso_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string.

    ``date.fromisoformat`` also accepts compact forms like ``20250101``; those
    would produce keys that never match stored days, so they are rejected.

    Raises:
        ValueError: If the value is not a valid zero-padded calendar date
    """
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    return date.fromisoformat(value)


def is_iso_date(value: object) -> bool:
    """Check whether a value is a valid ``YYYY-MM-DD`` date string."""
    if not isinstance(value, str):
        return False
    try:
        parse_iso_date(value)
    except ValueError:
        return False
    return True


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += ONE_DAY


def days_between(start: date, end: date) -> int:
    """Number of days in the inclusive range [start, end] (0 if end < start)."""
    return max((end - start).days + 1, 0)


def in_range(day: str, start: str, end: str) -> bool:
    """Inclusive range check on ISO date strings (lexicographic order is date order)."""
    return start <= day <= end
