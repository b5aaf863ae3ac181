# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and the commit helper shared by the scheduling services.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, DB_ISOLATION_LEVEL
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import ConflictError, SchedulingError

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine with optimized settings
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before use
    pool_recycle=DB_POOL_RECYCLE_SECONDS,
    isolation_level=DB_ISOLATION_LEVEL,
    echo=False,
    future=True,
)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    now = utc_now()
    for column_name in ("created_at", "updated_at"):
        if hasattr(mapper, "columns") and column_name in mapper.columns:  # type: ignore
            if getattr(target, column_name, None) is None:
                setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import utc_now
    if hasattr(mapper, "columns") and "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())


def commit_or_conflict(db: Session, conflict_detail: str) -> None:
    """
    Commit the current unit of work, reporting store-level races as conflicts.

    The overlap checks in the services read and write inside one transaction.
    When a concurrent transaction commits an overlapping row first, the store
    rejects ours with a serialization failure, lock timeout or constraint
    violation. Those are surfaced as ConflictError after rolling back.

    Args:
        db: Database session holding the pending write
        conflict_detail: Message for the ConflictError

    Raises:
        ConflictError: If the store rejected the commit
    """
    try:
        db.commit()
    except (IntegrityError, OperationalError) as e:
        db.rollback()
        logger.warning(f"Commit rejected by database: {e}")
        raise ConflictError(conflict_detail) from e


@contextmanager
def write_transaction(db: Session, operation: str) -> Generator[Session, None, None]:
    """
    Roll back the session if a service write fails part way.

    Scheduling errors are expected outcomes and re-raised untouched; database
    errors are logged before being re-raised.

    Example:
        ```python
        with write_transaction(db, "create schedule"):
            ...
            commit_or_conflict(db, "overlap")
        ```
    """
    try:
        yield db
    except SchedulingError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Failed to {operation}: {e}")
        db.rollback()
        raise


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Yields:
        Session: SQLAlchemy database session

    Example:
        ```python
        with get_db_context() as db:
            slots = AvailabilityService.get_available_slots(db, doctor_id, day)
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except SchedulingError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()


def create_tables() -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    Note:
        In production, prefer using Alembic migrations instead of this function.
    """
    # Import models so they are registered on Base.metadata
    import models  # noqa: F401
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise


def drop_tables() -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    WARNING: This will permanently delete all data in the tables!
    """
    import models  # noqa: F401
    try:
        Base.metadata.drop_all(bind=engine)
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
