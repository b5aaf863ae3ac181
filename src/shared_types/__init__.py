"""
Shared type definitions for the scheduling backend.

This module contains dataclasses and request models that are used across
multiple services.
"""

from shared_types.availability import (
    AvailabilityStats, AvailableSlotRef, DayAvailability, DaySummary, SlotCheckResult, TimeSlot
)
from shared_types.reports import (
    AppointmentStatistics, BlockedTimeRange, ExceptionStats, ScheduleStats, WorkingHoursRange
)
from shared_types.requests import (
    AppointmentQuery, CreateScheduleRequest, UpdateAppointmentRequest, UpdateScheduleRequest
)

__all__ = [
    "AvailabilityStats",
    "AvailableSlotRef",
    "DayAvailability",
    "DaySummary",
    "SlotCheckResult",
    "TimeSlot",
    "AppointmentStatistics",
    "BlockedTimeRange",
    "ExceptionStats",
    "ScheduleStats",
    "WorkingHoursRange",
    "AppointmentQuery",
    "CreateScheduleRequest",
    "UpdateAppointmentRequest",
    "UpdateScheduleRequest",
]
