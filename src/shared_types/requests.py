"""
Request models accepted by the scheduling services.

These only check shape (types, ranges of single fields). Rules that involve
several fields or stored state, such as an inverted time range or an
overlap, are enforced by the services and raise core.exceptions errors.
"""

from datetime import date, time
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from core.config import DEFAULT_PAGE_SIZE, MIN_APPOINTMENT_DURATION_MINUTES
from models.appointment import AppointmentStatus
from utils.time_utils import normalize_time


def _normalize_optional_time(value: Optional[time]) -> Optional[time]:
    return normalize_time(value) if value is not None else None


class CreateScheduleRequest(BaseModel):
    """One weekly availability window to create."""
    doctor_id: int
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday ... 6=Saturday
    start_time: time
    end_time: time
    is_active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_sub_seconds(cls, v: time) -> time:
        return normalize_time(v)


class UpdateScheduleRequest(BaseModel):
    """Partial update of a weekly window. Unset fields are left unchanged."""
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_active: Optional[bool] = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_sub_seconds(cls, v: Optional[time]) -> Optional[time]:
        return _normalize_optional_time(v)


class UpdateAppointmentRequest(BaseModel):
    """Partial update of an appointment. Unset fields are left unchanged."""
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=MIN_APPOINTMENT_DURATION_MINUTES)
    service_id: Optional[int] = None
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator('appointment_time')
    @classmethod
    def strip_sub_seconds(cls, v: Optional[time]) -> Optional[time]:
        return _normalize_optional_time(v)


class AppointmentQuery(BaseModel):
    """Filters, ordering and pagination for listing appointments."""
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: Optional[Literal['appointment_date', 'appointment_time', 'created_at', 'status']] = None
    order: Literal['ASC', 'DESC'] = 'ASC'
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=100)
