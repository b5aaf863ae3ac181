"""
Aggregate result types returned by the schedule, exception and appointment
services.
"""

from dataclasses import dataclass, field
from datetime import time
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class WorkingHoursRange:
    """Earliest start and latest end across a day's active windows."""
    start: time
    end: time


@dataclass(frozen=True)
class BlockedTimeRange:
    """A partial exception projected to its blocked range."""
    start_time: time
    end_time: time
    reason: str


@dataclass
class ScheduleStats:
    """Summary of a doctor's active weekly schedule."""
    doctor_id: int
    total_schedules: int
    working_days: List[int]
    total_working_days: int
    total_weekly_hours: float
    schedules_by_day: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


@dataclass
class ExceptionStats:
    """Counts of a doctor's schedule exceptions."""
    doctor_id: int
    total: int
    future: int
    expired: int
    full_day: int
    partial: int
    next_exception: Optional[Dict[str, Any]] = None


@dataclass
class AppointmentStatistics:
    """Status breakdown of appointments with outcome rates."""
    total: int
    by_status: Dict[str, int]
    completion_rate: str
    cancellation_rate: str
    no_show_rate: str
