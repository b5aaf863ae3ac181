"""
Appointment model representing booked time on a doctor's calendar.

Only the fields needed for scheduling and auditing live here; patient and
service details are referenced by id.
"""

from datetime import date as date_type, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String, Text, Time, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.config import DEFAULT_APPOINTMENT_DURATION_MINUTES
from core.constants import MAX_STATUS_LENGTH, SECONDS_PER_MINUTE
from core.database import Base
from utils.time_utils import add_minutes, format_time, time_to_seconds


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


# Appointments in these states no longer hold their time slot
SLOT_RELEASING_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value)


class Appointment(Base):
    """
    Appointment entity occupying ``[appointment_time, appointment_time + duration)``.

    Non-cancelled appointments of the same doctor and date never overlap;
    AppointmentService.check_conflict is the gate every time-changing write
    goes through. Cancelled and no-show rows stay stored for auditing.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    doctor_id: Mapped[int] = mapped_column(index=True)
    """Doctor whose calendar this appointment occupies."""

    patient_id: Mapped[int] = mapped_column(index=True)
    """Patient who booked the appointment."""

    service_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Optional clinic service (consultation type) being booked."""

    appointment_date: Mapped[date_type] = mapped_column(Date)
    appointment_time: Mapped[time] = mapped_column(Time)

    duration_minutes: Mapped[int] = mapped_column(default=DEFAULT_APPOINTMENT_DURATION_MINUTES, nullable=False)

    status: Mapped[str] = mapped_column(String(MAX_STATUS_LENGTH), default=AppointmentStatus.SCHEDULED.value, nullable=False)
    """Current status. Valid values are the AppointmentStatus members."""

    reason_for_visit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    history = relationship(
        "AppointmentHistory",
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint('duration_minutes > 0', name='check_appointment_duration'),
        CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'CANCELLED', 'COMPLETED', 'NO_SHOW', 'RESCHEDULED')",
            name='check_appointment_status'
        ),
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date'),
        Index('idx_appointments_doctor_date_status', 'doctor_id', 'appointment_date', 'status'),
        Index('idx_appointments_patient_date', 'patient_id', 'appointment_date'),
    )

    @property
    def holds_slot(self) -> bool:
        """Whether this appointment still blocks its time range."""
        return self.status not in SLOT_RELEASING_STATUSES

    @property
    def start_seconds(self) -> int:
        """Start as seconds since midnight."""
        return time_to_seconds(self.appointment_time)

    @property
    def end_seconds(self) -> int:
        """End as seconds since midnight (may exceed one day)."""
        return self.start_seconds + self.duration_minutes * SECONDS_PER_MINUTE

    @property
    def end_time(self) -> time:
        """Wall-clock end time."""
        return add_minutes(self.appointment_time, self.duration_minutes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "service_id": self.service_id,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": format_time(self.appointment_time),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "reason_for_visit": self.reason_for_visit,
            "notes": self.notes,
            "price": str(self.price) if self.price is not None else None,
        }

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, date={self.appointment_date}, time={self.appointment_time}, duration={self.duration_minutes}, status={self.status})>"
