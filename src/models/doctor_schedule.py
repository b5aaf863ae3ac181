"""
Doctor schedule model for recurring weekly availability windows.

Each record is one working period on one day of the week. Doctors can have
several periods per day (e.g. 09:00-13:00 and 15:00-19:00) as long as the
active ones do not overlap. Inactive windows are kept for history and can be
reactivated later.
"""

from datetime import time, datetime
from typing import Any, Dict, Optional
from sqlalchemy import Boolean, CheckConstraint, Index, Time, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import DAY_NAMES
from core.database import Base
from utils.time_utils import format_time, time_to_seconds


class DoctorSchedule(Base):
    """
    Recurring weekly availability window for a doctor.

    The non-overlap rule among active windows of the same doctor and day is
    enforced by DoctorScheduleService at write time; the table only enforces
    row-local invariants (valid day, start before end).
    """

    __tablename__ = "doctor_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the schedule window."""

    doctor_id: Mapped[int] = mapped_column(index=True)
    """Doctor owning this window."""

    day_of_week: Mapped[int] = mapped_column()
    """Day of the week (0=Sunday, 1=Monday, ..., 6=Saturday)."""

    start_time: Mapped[time] = mapped_column(Time)
    """Start of the working period (inclusive)."""

    end_time: Mapped[time] = mapped_column(Time)
    """End of the working period (exclusive)."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Inactive windows are ignored by availability and overlap checks."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_schedule_day_of_week'),
        CheckConstraint('start_time < end_time', name='check_schedule_time_range'),
        Index('idx_doctor_schedules_doctor_day_active', 'doctor_id', 'day_of_week', 'is_active'),
        Index('idx_doctor_schedules_doctor_day_time', 'doctor_id', 'day_of_week', 'start_time'),
    )

    @property
    def day_name(self) -> str:
        """Get the day name for display."""
        return DAY_NAMES[self.day_of_week]

    @property
    def duration_minutes(self) -> int:
        """Length of this window in whole minutes."""
        return (time_to_seconds(self.end_time) - time_to_seconds(self.start_time)) // 60

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "day_of_week": self.day_of_week,
            "day_name": self.day_name,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<DoctorSchedule(id={self.id}, doctor_id={self.doctor_id}, day={self.day_name}, {self.start_time}-{self.end_time}, active={self.is_active})>"
