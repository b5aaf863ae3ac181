"""
Time-of-day arithmetic for schedules, exceptions and appointments.

Time-of-day values are ``datetime.time`` at second precision. Ranges are
half-open ``[start, end)``: two ranges that only touch at a boundary do not
overlap. Functions here are pure; inputs are assumed already validated.
"""

from datetime import date, time as time_type
from typing import TypeVar

from core.constants import MINUTES_PER_DAY, SECONDS_PER_MINUTE

T = TypeVar("T", time_type, int)

SECONDS_PER_DAY = MINUTES_PER_DAY * SECONDS_PER_MINUTE


def check_time_overlap(start1: T, end1: T, start2: T, end2: T) -> bool:
    """
    Check if two half-open intervals overlap.

    Works on ``time`` values or on integer offsets (seconds or minutes since
    midnight), as long as all four arguments use the same unit.
    """
    return start1 < end2 and start2 < end1


def normalize_time(value: time_type) -> time_type:
    """Drop sub-second precision and tzinfo from a time-of-day."""
    return value.replace(microsecond=0, tzinfo=None)


def format_time(value: time_type) -> str:
    """Format a time-of-day as ``HH:MM:SS``."""
    return value.strftime('%H:%M:%S')


def time_to_seconds(value: time_type) -> int:
    """Seconds since midnight."""
    return value.hour * 3600 + value.minute * 60 + value.second


def seconds_to_time(total_seconds: int) -> time_type:
    """Inverse of ``time_to_seconds``, wrapping past midnight."""
    total_seconds %= SECONDS_PER_DAY
    return time_type(total_seconds // 3600, (total_seconds % 3600) // 60, total_seconds % 60)


def add_minutes(value: time_type, minutes: int) -> time_type:
    """
    Add minutes to a wall-clock time, wrapping around midnight.

    ``add_minutes(time(23, 45), 30) == time(0, 15)``. Seconds are kept.
    """
    return seconds_to_time(time_to_seconds(value) + minutes * SECONDS_PER_MINUTE)


def floor_to_minute(value: time_type) -> time_type:
    """Round a time down to the start of its minute."""
    return time_type(value.hour, value.minute)


def day_of_week(value: date) -> int:
    """
    Day-of-week number used by doctor schedules: 0=Sunday ... 6=Saturday.

    Python's ``date.weekday()`` counts from Monday, so it is shifted by one.
    """
    return (value.weekday() + 1) % 7
