"""
Shared types for availability-related functionality.

These are derived views recomputed on every query. They are frozen so a
result handed to one caller can never be altered by another.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, Optional, Tuple

from utils.time_utils import format_time


@dataclass(frozen=True)
class TimeSlot:
    """
    One candidate booking slot inside a working window.

    ``reason`` is set only when the slot is unavailable.
    """
    time: time
    duration_minutes: int
    available: bool = True
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        result: Dict[str, Any] = {
            "time": format_time(self.time),
            "duration_minutes": self.duration_minutes,
            "available": self.available,
        }
        if self.reason is not None:
            result["reason"] = self.reason
        return result


@dataclass(frozen=True)
class DayAvailability:
    """Availability of one calendar day for one doctor."""
    date: date
    day_of_week: int  # 0=Sunday ... 6=Saturday
    day_name: str
    is_working_day: bool
    has_exception: bool
    slots: Tuple[TimeSlot, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "day_name": self.day_name,
            "is_working_day": self.is_working_day,
            "has_exception": self.has_exception,
            "slots": [slot.to_dict() for slot in self.slots],
        }


@dataclass(frozen=True)
class AvailableSlotRef:
    """A bookable (date, time) pair returned by forward searches."""
    date: date
    time: time


@dataclass(frozen=True)
class SlotCheckResult:
    """Outcome of checking a single requested booking time."""
    available: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class DaySummary:
    """Count-only rollup of one day."""
    date: date
    available: bool
    slots_count: int


@dataclass(frozen=True)
class AvailabilityStats:
    """Aggregate availability over a date range."""
    doctor_id: int
    start_date: date
    end_date: date
    total_days: int
    available_days: int
    unavailable_days: int
    total_available_slots: int
    average_slots_per_day: float
