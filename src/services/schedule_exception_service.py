"""
Schedule exception service for date-specific blocks on a doctor's calendar.

For one doctor and date the service keeps either a single full-day exception
or any number of partial exceptions that do not overlap each other. Past
dates cannot be blocked.
"""

import calendar
import logging
from datetime import date as date_type, time
from typing import List, Optional

from sqlalchemy.orm import Session

from core.config import DEFAULT_UPCOMING_EXCEPTIONS_LIMIT
from core.constants import BLOCKED_SLOT_REASON
from core.database import commit_or_conflict, write_transaction
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import ScheduleException
from shared_types.reports import BlockedTimeRange, ExceptionStats
from utils.datetime_utils import Clock, clinic_now, iter_dates
from utils.time_utils import check_time_overlap, normalize_time

logger = logging.getLogger(__name__)


class ScheduleExceptionService:
    """
    Service class for schedule exception operations.

    Contains business logic for creating, querying and cleaning up
    date-specific exceptions.
    """

    @staticmethod
    def _validate_time_pair(start_time: Optional[time], end_time: Optional[time]) -> None:
        if (start_time is None) != (end_time is None):
            raise ValidationError("Both start_time and end_time must be provided for a partial exception")
        if start_time is not None and end_time is not None and start_time >= end_time:
            raise ValidationError("Start time must be before end time")

    @staticmethod
    def _validate_not_past(exception_date: date_type, today: date_type) -> None:
        if exception_date < today:
            raise ValidationError("Cannot create an exception for a past date")

    @staticmethod
    def _check_conflicts(
        existing: List[ScheduleException],
        start_time: Optional[time],
        end_time: Optional[time]
    ) -> None:
        """
        Reject a new exception that clashes with the rows already on its date.

        Raises:
            ConflictError: On a full-day clash or an overlapping partial range
        """
        if any(e.is_full_day for e in existing):
            raise ConflictError("A full-day exception already exists for this date")

        is_full_day = start_time is None
        if is_full_day:
            if existing:
                raise ConflictError(
                    "Cannot create a full-day exception while partial exceptions exist for this date"
                )
            return

        for other in existing:
            if check_time_overlap(start_time, end_time, other.start_time, other.end_time):
                raise ConflictError("The exception overlaps an existing exception for this date")

    @staticmethod
    def create_exception(
        db: Session,
        doctor_id: int,
        exception_date: date_type,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        reason: Optional[str] = None,
        clock: Clock = clinic_now
    ) -> ScheduleException:
        """
        Create a full-day (no times) or partial exception.

        Args:
            db: Database session
            doctor_id: Doctor ID
            exception_date: Date to block, today or later
            start_time: Start of a partial block, or None for full day
            end_time: End of a partial block, or None for full day
            reason: Optional reason shown on blocked slots
            clock: Source of "today"

        Returns:
            The persisted ScheduleException

        Raises:
            ValidationError: Past date, half a time pair, or inverted range
            ConflictError: Clash with an exception already on that date
        """
        if start_time is not None:
            start_time = normalize_time(start_time)
        if end_time is not None:
            end_time = normalize_time(end_time)

        with write_transaction(db, "create schedule exception"):
            ScheduleExceptionService._validate_not_past(exception_date, clock().date())
            ScheduleExceptionService._validate_time_pair(start_time, end_time)

            existing = db.query(ScheduleException).filter(
                ScheduleException.doctor_id == doctor_id,
                ScheduleException.exception_date == exception_date
            ).with_for_update().all()
            ScheduleExceptionService._check_conflicts(existing, start_time, end_time)

            exception = ScheduleException(
                doctor_id=doctor_id,
                exception_date=exception_date,
                start_time=start_time,
                end_time=end_time,
                reason=reason
            )
            db.add(exception)
            commit_or_conflict(db, "The exception conflicts with an existing exception for this date")

        kind = "full-day" if exception.is_full_day else f"{start_time}-{end_time}"
        logger.info(f"Created {kind} exception {exception.id} for doctor {doctor_id} on {exception_date}")
        return exception

    @staticmethod
    def create_multiple_days(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type,
        reason: Optional[str] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        clock: Clock = clinic_now
    ) -> List[ScheduleException]:
        """
        Create the same exception on every day of [start_date, end_date].

        Input is validated once up front. Each day is then its own
        transaction, and a day that conflicts is logged and skipped.

        Returns:
            The exceptions created, in date order

        Raises:
            ValidationError: Inverted date range, past start date, or bad time pair
        """
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")
        ScheduleExceptionService._validate_not_past(start_date, clock().date())
        ScheduleExceptionService._validate_time_pair(start_time, end_time)

        created: List[ScheduleException] = []
        for current_date in iter_dates(start_date, end_date):
            try:
                created.append(ScheduleExceptionService.create_exception(
                    db, doctor_id, current_date,
                    start_time=start_time, end_time=end_time, reason=reason, clock=clock
                ))
            except ConflictError as e:
                logger.warning(f"Skipped exception for doctor {doctor_id} on {current_date}: {e.detail}")

        logger.info(
            f"Created {len(created)} exceptions for doctor {doctor_id} from {start_date} to {end_date}"
        )
        return created

    @staticmethod
    def list_exceptions(
        db: Session,
        doctor_id: Optional[int] = None,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> List[ScheduleException]:
        """List exceptions with optional filters, ordered by date then start time."""
        query = db.query(ScheduleException)
        if doctor_id is not None:
            query = query.filter(ScheduleException.doctor_id == doctor_id)
        if start_date is not None:
            query = query.filter(ScheduleException.exception_date >= start_date)
        if end_date is not None:
            query = query.filter(ScheduleException.exception_date <= end_date)

        return query.order_by(ScheduleException.exception_date, ScheduleException.start_time).all()

    @staticmethod
    def get_exception(db: Session, exception_id: int) -> ScheduleException:
        """
        Get an exception by ID.

        Raises:
            NotFoundError: If no exception has that ID
        """
        exception = db.query(ScheduleException).filter(ScheduleException.id == exception_id).first()
        if not exception:
            raise NotFoundError(f"Schedule exception {exception_id} not found")
        return exception

    @staticmethod
    def find_by_doctor(
        db: Session,
        doctor_id: int,
        include_expired: bool = False,
        clock: Clock = clinic_now
    ) -> List[ScheduleException]:
        """A doctor's exceptions, from today onward unless include_expired is set."""
        start_date = None if include_expired else clock().date()
        return ScheduleExceptionService.list_exceptions(db, doctor_id=doctor_id, start_date=start_date)

    @staticmethod
    def find_by_doctor_and_date(db: Session, doctor_id: int, target_date: date_type) -> List[ScheduleException]:
        return ScheduleExceptionService.list_exceptions(
            db, doctor_id=doctor_id, start_date=target_date, end_date=target_date
        )

    @staticmethod
    def find_by_doctor_and_date_range(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type
    ) -> List[ScheduleException]:
        return ScheduleExceptionService.list_exceptions(
            db, doctor_id=doctor_id, start_date=start_date, end_date=end_date
        )

    @staticmethod
    def find_upcoming(
        db: Session,
        doctor_id: int,
        limit: int = DEFAULT_UPCOMING_EXCEPTIONS_LIMIT,
        clock: Clock = clinic_now
    ) -> List[ScheduleException]:
        """The next ``limit`` exceptions dated today or later."""
        return db.query(ScheduleException).filter(
            ScheduleException.doctor_id == doctor_id,
            ScheduleException.exception_date >= clock().date()
        ).order_by(
            ScheduleException.exception_date, ScheduleException.start_time
        ).limit(limit).all()

    @staticmethod
    def has_exception_on_date(
        db: Session,
        doctor_id: int,
        target_date: date_type,
        at_time: Optional[time] = None
    ) -> bool:
        """
        Check whether a date (or a time on it) is blocked.

        Without ``at_time``, any exception on the date counts. With it, only a
        full-day exception or a partial one whose [start, end) contains the
        time counts.
        """
        exceptions = ScheduleExceptionService.find_by_doctor_and_date(db, doctor_id, target_date)
        if at_time is None:
            return len(exceptions) > 0

        for exception in exceptions:
            if exception.is_full_day:
                return True
            if exception.start_time <= at_time < exception.end_time:
                return True
        return False

    @staticmethod
    def is_full_day_exception(db: Session, doctor_id: int, target_date: date_type) -> bool:
        exceptions = ScheduleExceptionService.find_by_doctor_and_date(db, doctor_id, target_date)
        return any(e.is_full_day for e in exceptions)

    @staticmethod
    def get_blocked_time_ranges(db: Session, doctor_id: int, target_date: date_type) -> List[BlockedTimeRange]:
        """Partial exceptions on a date as (start, end, reason) ranges."""
        exceptions = ScheduleExceptionService.find_by_doctor_and_date(db, doctor_id, target_date)
        return [
            BlockedTimeRange(
                start_time=e.start_time,
                end_time=e.end_time,
                reason=e.reason or BLOCKED_SLOT_REASON
            )
            for e in exceptions
            if not e.is_full_day
        ]

    @staticmethod
    def get_blocked_days_in_month(db: Session, doctor_id: int, year: int, month: int) -> List[date_type]:
        """
        Dates in a month that carry a full-day exception, ascending.

        Used to grey out whole days in a calendar view.
        """
        first_day = date_type(year, month, 1)
        last_day = date_type(year, month, calendar.monthrange(year, month)[1])

        exceptions = ScheduleExceptionService.find_by_doctor_and_date_range(
            db, doctor_id, first_day, last_day
        )
        return sorted({e.exception_date for e in exceptions if e.is_full_day})

    @staticmethod
    def count_by_doctor(
        db: Session,
        doctor_id: int,
        only_future: bool = True,
        clock: Clock = clinic_now
    ) -> int:
        query = db.query(ScheduleException).filter(ScheduleException.doctor_id == doctor_id)
        if only_future:
            query = query.filter(ScheduleException.exception_date >= clock().date())
        return query.count()

    @staticmethod
    def get_exception_stats(db: Session, doctor_id: int, clock: Clock = clinic_now) -> ExceptionStats:
        """Counts of a doctor's exceptions and the next upcoming one."""
        today = clock().date()
        exceptions = ScheduleExceptionService.find_by_doctor(
            db, doctor_id, include_expired=True, clock=clock
        )

        future = [e for e in exceptions if e.exception_date >= today]
        full_day_count = sum(1 for e in exceptions if e.is_full_day)

        return ExceptionStats(
            doctor_id=doctor_id,
            total=len(exceptions),
            future=len(future),
            expired=len(exceptions) - len(future),
            full_day=full_day_count,
            partial=len(exceptions) - full_day_count,
            next_exception=future[0].to_dict() if future else None
        )

    @staticmethod
    def delete_exception(db: Session, exception_id: int) -> None:
        with write_transaction(db, "delete schedule exception"):
            exception = ScheduleExceptionService.get_exception(db, exception_id)
            db.delete(exception)
            db.commit()

        logger.info(f"Deleted schedule exception {exception_id}")

    @staticmethod
    def delete_all_for_doctor(db: Session, doctor_id: int) -> int:
        """Delete every exception of a doctor. Returns the number removed."""
        with write_transaction(db, "delete doctor exceptions"):
            deleted = db.query(ScheduleException).filter(
                ScheduleException.doctor_id == doctor_id
            ).delete(synchronize_session=False)
            db.commit()

        logger.info(f"Deleted {deleted} schedule exceptions for doctor {doctor_id}")
        return deleted

    @staticmethod
    def delete_for_date(db: Session, doctor_id: int, target_date: date_type) -> int:
        """Delete every exception of a doctor on one date. Returns the number removed."""
        with write_transaction(db, "delete exceptions for date"):
            deleted = db.query(ScheduleException).filter(
                ScheduleException.doctor_id == doctor_id,
                ScheduleException.exception_date == target_date
            ).delete(synchronize_session=False)
            db.commit()

        logger.info(f"Deleted {deleted} schedule exceptions for doctor {doctor_id} on {target_date}")
        return deleted

    @staticmethod
    def delete_expired(db: Session, doctor_id: Optional[int] = None, clock: Clock = clinic_now) -> int:
        """
        Delete exceptions dated before today.

        Args:
            db: Database session
            doctor_id: Limit the cleanup to one doctor, or None for all
            clock: Source of "today"

        Returns:
            Number of exceptions removed
        """
        today = clock().date()

        with write_transaction(db, "delete expired exceptions"):
            query = db.query(ScheduleException).filter(ScheduleException.exception_date < today)
            if doctor_id is not None:
                query = query.filter(ScheduleException.doctor_id == doctor_id)
            deleted = query.delete(synchronize_session=False)
            db.commit()

        if deleted:
            logger.info(f"Deleted {deleted} expired schedule exceptions")
        return deleted
