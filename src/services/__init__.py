"""
Services package for scheduling business logic.

This package contains service classes that own the weekly schedules,
schedule exceptions, appointments and the availability derived from them.
"""

from .doctor_schedule_service import DoctorScheduleService
from .schedule_exception_service import ScheduleExceptionService
from .appointment_service import AppointmentService
from .availability_service import AvailabilityService

__all__ = [
    "DoctorScheduleService",
    "ScheduleExceptionService",
    "AppointmentService",
    "AvailabilityService",
]
