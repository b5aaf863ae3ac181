"""
Test configuration and shared fixtures for the scheduling test suite.

Uses an in-memory SQLite database with a fresh schema per test. The clock is
pinned to Monday 2026-03-02 14:32 so "today" and "past" are deterministic.
"""

from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Generator, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models import Appointment, AppointmentStatus, DoctorSchedule, ScheduleException
from utils.datetime_utils import Clock, fixed_clock


NOW = datetime(2026, 3, 2, 14, 32)
"""Pinned "now": a Monday afternoon."""

TODAY = NOW.date()
NEXT_MONDAY = date(2026, 3, 9)
NEXT_TUESDAY = date(2026, 3, 10)
YESTERDAY = date(2026, 3, 1)

MONDAY = 1  # day_of_week numbering: 0=Sunday


def make_sqlite_engine() -> Engine:
    """
    Create an in-memory SQLite engine with the full schema.

    StaticPool keeps the single in-memory connection alive for the engine's
    lifetime; foreign keys are switched on so ON DELETE CASCADE applies.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine


@contextmanager
def sqlite_session() -> Generator[Session, None, None]:
    """
    Standalone session on a brand-new database.

    For Hypothesis tests, which run many examples per test function and so
    cannot share a function-scoped fixture.
    """
    engine = make_sqlite_engine()
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    engine = make_sqlite_engine()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session on a fresh schema.

    Services commit freely; isolation comes from the per-test engine.
    """
    session = sessionmaker(bind=db_engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def clock() -> Clock:
    """Clock pinned to NOW."""
    return fixed_clock(NOW)


# Helper functions for creating rows directly, bypassing service validation
def create_schedule(
    db_session: Session,
    doctor_id: int = 1,
    day_of_week: int = MONDAY,
    start_time: time = time(9, 0),
    end_time: time = time(13, 0),
    is_active: bool = True
) -> DoctorSchedule:
    """Insert a weekly window."""
    schedule = DoctorSchedule(
        doctor_id=doctor_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        is_active=is_active
    )
    db_session.add(schedule)
    db_session.commit()
    return schedule


def create_exception(
    db_session: Session,
    exception_date: date,
    doctor_id: int = 1,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    reason: Optional[str] = None
) -> ScheduleException:
    """Insert a schedule exception (full day when no times are given)."""
    exception = ScheduleException(
        doctor_id=doctor_id,
        exception_date=exception_date,
        start_time=start_time,
        end_time=end_time,
        reason=reason
    )
    db_session.add(exception)
    db_session.commit()
    return exception


def create_appointment(
    db_session: Session,
    appointment_date: date,
    appointment_time: time,
    doctor_id: int = 1,
    patient_id: int = 100,
    duration_minutes: int = 30,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
) -> Appointment:
    """Insert an appointment without running the conflict check."""
    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        duration_minutes=duration_minutes,
        status=status.value
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment
