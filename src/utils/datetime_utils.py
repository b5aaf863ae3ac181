"""
Datetime utilities and the clock used by the scheduling services.

All schedule times are doctor-local wall-clock values. Services that depend
on "now" (past-date checks, today's slot truncation) take a ``clock``
argument so tests can pin the current time.
"""

import logging
from datetime import datetime, timezone, date, timedelta
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
"""Zero-argument callable returning the current wall-clock datetime."""


def clinic_now() -> datetime:
    """
    Get the current clinic wall-clock datetime.

    Returns:
        Naive datetime in the server's local time
    """
    return datetime.now()


def utc_now() -> datetime:
    """Get the current timezone-aware UTC datetime (for audit timestamps)."""
    return datetime.now(timezone.utc)


def fixed_clock(now: datetime) -> Clock:
    """
    Build a clock that always returns ``now``.

    Example:
        ```python
        clock = fixed_clock(datetime(2026, 3, 2, 14, 32))
        AvailabilityService.get_available_slots(db, 1, day, clock=clock)
        ```
    """
    def _clock() -> datetime:
        return now
    return _clock


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every calendar day in [start_date, end_date] inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)
