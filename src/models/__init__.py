# Package initialization
# Import all models to ensure relationships are properly established
from .doctor_schedule import DoctorSchedule
from .schedule_exception import ScheduleException
from .appointment import Appointment, AppointmentStatus
from .appointment_history import AppointmentHistory

__all__ = [
    "DoctorSchedule",
    "ScheduleException",
    "Appointment",
    "AppointmentStatus",
    "AppointmentHistory",
]
