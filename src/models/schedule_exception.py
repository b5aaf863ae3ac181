"""
Schedule exception model representing date-specific unavailability.

An exception without a time range blocks the doctor's whole day regardless of
the recurring schedule (vacation, conference). An exception with a time range
blocks only that part of the day (meeting, errand).
"""

from datetime import date as date_type, datetime, time
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Date, Index, String, Time, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_STRING_LENGTH
from core.database import Base
from utils.time_utils import format_time


class ScheduleException(Base):
    """
    Date-specific override of a doctor's recurring schedule.

    For one doctor and date there is either a single full-day exception or any
    number of pairwise non-overlapping partial exceptions. That rule is
    enforced by ScheduleExceptionService; the table only checks that the time
    pair is complete and ordered.
    """

    __tablename__ = "schedule_exceptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the exception."""

    doctor_id: Mapped[int] = mapped_column(index=True)
    """Doctor this exception applies to."""

    exception_date: Mapped[date_type] = mapped_column(Date)
    """Calendar date being overridden."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Start of the blocked range. Null for full-day exceptions."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """End of the blocked range (exclusive). Null for full-day exceptions."""

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """Optional reason shown on blocked slots."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR "
            "(start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time)",
            name='check_exception_time_range'
        ),
        Index('idx_schedule_exceptions_doctor_date', 'doctor_id', 'exception_date'),
    )

    @property
    def is_full_day(self) -> bool:
        """Check if this exception blocks the whole day."""
        return self.start_time is None and self.end_time is None

    def to_dict(self) -> Dict[str, Any]:
        """Response shape for an exception."""
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "exception_date": self.exception_date.isoformat(),
            "is_full_day": self.is_full_day,
            "start_time": format_time(self.start_time) if self.start_time else None,
            "end_time": format_time(self.end_time) if self.end_time else None,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ScheduleException(id={self.id}, doctor_id={self.doctor_id}, date={self.exception_date}, time={self.start_time}-{self.end_time})>"
