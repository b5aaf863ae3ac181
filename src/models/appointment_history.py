"""
Appointment history model recording every status and time change.
"""

from datetime import date as date_type, datetime, time
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, String, Text, Time, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_STATUS_LENGTH
from core.database import Base


class AppointmentHistory(Base):
    """
    Audit row for one change to an appointment.

    ``previous_*`` columns are null for the creation entry.
    """

    __tablename__ = "appointment_history"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"))

    previous_date: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)
    previous_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    new_date: Mapped[date_type] = mapped_column(Date)
    new_time: Mapped[time] = mapped_column(Time)

    previous_status: Mapped[Optional[str]] = mapped_column(String(MAX_STATUS_LENGTH), nullable=True)
    new_status: Mapped[str] = mapped_column(String(MAX_STATUS_LENGTH))

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    changed_by_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """User who made the change, when known."""

    changed_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    appointment = relationship("Appointment", back_populates="history")

    __table_args__ = (
        Index('idx_appointment_history_appointment', 'appointment_id', 'changed_at'),
    )

    def __repr__(self) -> str:
        return f"<AppointmentHistory(appointment_id={self.appointment_id}, {self.previous_status}->{self.new_status}, at={self.changed_at})>"
