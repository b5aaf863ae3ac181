"""
Doctor schedule service for recurring weekly availability windows.

Owns the rule that active windows of one doctor on one day of the week never
overlap. Every write that could break it (create, update, activate) checks
the other active windows inside the same transaction as the write.
"""

import logging
from datetime import date as date_type, time, timedelta
from typing import Dict, List, Optional, Any

from sqlalchemy.orm import Session

from core.config import NEXT_WORKING_DAY_MAX_DAYS
from core.constants import DAY_NAMES, UNKNOWN_DAY_NAME
from core.database import commit_or_conflict, write_transaction
from core.exceptions import ConflictError, NotFoundError, SchedulingError, ValidationError
from models import DoctorSchedule
from shared_types.reports import ScheduleStats, WorkingHoursRange
from shared_types.requests import CreateScheduleRequest, UpdateScheduleRequest
from utils.datetime_utils import Clock, clinic_now
from utils.time_utils import check_time_overlap, day_of_week, normalize_time

logger = logging.getLogger(__name__)

OVERLAP_DETAIL = "An active schedule already overlaps this time range for this day"


class DoctorScheduleService:
    """
    Service class for weekly schedule operations.

    Contains business logic for creating, updating and querying doctor
    schedule windows.
    """

    @staticmethod
    def _validate_day_of_week(day: int) -> None:
        if day < 0 or day > 6:
            raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")

    @staticmethod
    def _validate_time_range(start_time: time, end_time: time) -> None:
        if start_time >= end_time:
            raise ValidationError("Start time must be before end time")

    @staticmethod
    def _find_overlapping_window(
        db: Session,
        doctor_id: int,
        day: int,
        start_time: time,
        end_time: time,
        exclude_schedule_id: Optional[int] = None
    ) -> Optional[DoctorSchedule]:
        """
        Find an active window of the same doctor and day overlapping the range.

        The rows are read with FOR UPDATE so the check and the following
        write form one unit against the (doctor, day) key.

        Args:
            db: Database session
            doctor_id: Doctor ID
            day: Day of week (0=Sunday)
            start_time: Candidate start
            end_time: Candidate end
            exclude_schedule_id: Window being updated, skipped in the check

        Returns:
            The first overlapping window, or None
        """
        query = db.query(DoctorSchedule).filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.day_of_week == day,
            DoctorSchedule.is_active == True
        )
        if exclude_schedule_id is not None:
            query = query.filter(DoctorSchedule.id != exclude_schedule_id)

        for existing in query.with_for_update().all():
            if check_time_overlap(start_time, end_time, existing.start_time, existing.end_time):
                return existing
        return None

    @staticmethod
    def create_schedule(
        db: Session,
        doctor_id: int,
        day_of_week: int,
        start_time: time,
        end_time: time,
        is_active: bool = True
    ) -> DoctorSchedule:
        """
        Create a weekly availability window.

        Args:
            db: Database session
            doctor_id: Doctor ID
            day_of_week: Day of week (0=Sunday ... 6=Saturday)
            start_time: Window start
            end_time: Window end (exclusive)
            is_active: Whether the window takes part in availability

        Returns:
            The persisted DoctorSchedule

        Raises:
            ValidationError: If the day is out of range or start >= end
            ConflictError: If an active window of that day overlaps
        """
        start_time = normalize_time(start_time)
        end_time = normalize_time(end_time)

        with write_transaction(db, "create schedule"):
            DoctorScheduleService._validate_day_of_week(day_of_week)
            DoctorScheduleService._validate_time_range(start_time, end_time)

            overlapping = DoctorScheduleService._find_overlapping_window(
                db, doctor_id, day_of_week, start_time, end_time
            )
            if overlapping:
                raise ConflictError(OVERLAP_DETAIL)

            schedule = DoctorSchedule(
                doctor_id=doctor_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                is_active=is_active
            )
            db.add(schedule)
            commit_or_conflict(db, OVERLAP_DETAIL)

        logger.info(
            f"Created schedule {schedule.id} for doctor {doctor_id}: "
            f"{schedule.day_name} {start_time}-{end_time}"
        )
        return schedule

    @staticmethod
    def create_bulk(db: Session, requests: List[CreateScheduleRequest]) -> List[DoctorSchedule]:
        """
        Create several windows, skipping the ones that fail.

        Each window is its own transaction; an invalid or overlapping item is
        logged and left out of the result instead of aborting the batch.

        Returns:
            The windows that were created, in request order
        """
        created: List[DoctorSchedule] = []
        for request in requests:
            try:
                created.append(DoctorScheduleService.create_schedule(db, **request.model_dump()))
            except SchedulingError as e:
                logger.warning(
                    f"Skipped schedule for doctor {request.doctor_id} on day {request.day_of_week} "
                    f"{request.start_time}-{request.end_time}: {e.detail}"
                )
        return created

    @staticmethod
    def list_schedules(
        db: Session,
        doctor_id: Optional[int] = None,
        day_of_week: Optional[int] = None,
        only_active: bool = True
    ) -> List[DoctorSchedule]:
        """List windows with optional filters, ordered by day then start time."""
        query = db.query(DoctorSchedule)
        if doctor_id is not None:
            query = query.filter(DoctorSchedule.doctor_id == doctor_id)
        if day_of_week is not None:
            query = query.filter(DoctorSchedule.day_of_week == day_of_week)
        if only_active:
            query = query.filter(DoctorSchedule.is_active == True)

        return query.order_by(DoctorSchedule.day_of_week, DoctorSchedule.start_time).all()

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> DoctorSchedule:
        """
        Get a window by ID.

        Raises:
            NotFoundError: If no window has that ID
        """
        schedule = db.query(DoctorSchedule).filter(DoctorSchedule.id == schedule_id).first()
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    @staticmethod
    def find_by_doctor(db: Session, doctor_id: int, only_active: bool = True) -> List[DoctorSchedule]:
        return DoctorScheduleService.list_schedules(db, doctor_id=doctor_id, only_active=only_active)

    @staticmethod
    def find_by_doctor_and_day(
        db: Session,
        doctor_id: int,
        day_of_week: int,
        only_active: bool = True
    ) -> List[DoctorSchedule]:
        """
        Get a doctor's windows for one day of the week, ordered by start time.

        Raises:
            ValidationError: If day_of_week is outside 0-6
        """
        DoctorScheduleService._validate_day_of_week(day_of_week)
        return DoctorScheduleService.list_schedules(
            db, doctor_id=doctor_id, day_of_week=day_of_week, only_active=only_active
        )

    @staticmethod
    def find_by_doctor_and_date(db: Session, doctor_id: int, target_date: date_type) -> List[DoctorSchedule]:
        """Active windows that apply to a calendar date."""
        return DoctorScheduleService.find_by_doctor_and_day(db, doctor_id, day_of_week(target_date))

    @staticmethod
    def update_schedule(db: Session, schedule_id: int, request: UpdateScheduleRequest) -> DoctorSchedule:
        """
        Update a window, re-checking overlap against the doctor's other active windows.

        The check runs when the day or time range changes, and when the update
        turns an inactive window active.

        Raises:
            NotFoundError: If the window does not exist
            ValidationError: If the resulting range is inverted
            ConflictError: If the resulting window overlaps another active one
        """
        changes: Dict[str, Any] = request.model_dump(exclude_unset=True, exclude_none=True)

        with write_transaction(db, "update schedule"):
            schedule = DoctorScheduleService.get_schedule(db, schedule_id)

            new_day = changes.get('day_of_week', schedule.day_of_week)
            new_start = changes.get('start_time', schedule.start_time)
            new_end = changes.get('end_time', schedule.end_time)
            new_active = changes.get('is_active', schedule.is_active)

            timing_changed = any(key in changes for key in ('day_of_week', 'start_time', 'end_time'))
            becomes_active = new_active and not schedule.is_active

            if timing_changed:
                DoctorScheduleService._validate_time_range(new_start, new_end)

            if timing_changed or becomes_active:
                overlapping = DoctorScheduleService._find_overlapping_window(
                    db, schedule.doctor_id, new_day, new_start, new_end,
                    exclude_schedule_id=schedule.id
                )
                if overlapping:
                    raise ConflictError("The updated schedule overlaps an existing schedule for this day")

            for key, value in changes.items():
                setattr(schedule, key, value)
            commit_or_conflict(db, OVERLAP_DETAIL)

        logger.info(f"Updated schedule {schedule_id}: {changes}")
        return schedule

    @staticmethod
    def activate(db: Session, schedule_id: int) -> DoctorSchedule:
        """
        Reactivate a window.

        Raises:
            NotFoundError: If the window does not exist
            ConflictError: If it overlaps another active window of that day
        """
        with write_transaction(db, "activate schedule"):
            schedule = DoctorScheduleService.get_schedule(db, schedule_id)

            overlapping = DoctorScheduleService._find_overlapping_window(
                db, schedule.doctor_id, schedule.day_of_week,
                schedule.start_time, schedule.end_time,
                exclude_schedule_id=schedule.id
            )
            if overlapping:
                raise ConflictError("Cannot activate the schedule because it overlaps another active schedule")

            schedule.is_active = True
            commit_or_conflict(db, OVERLAP_DETAIL)

        logger.info(f"Activated schedule {schedule_id}")
        return schedule

    @staticmethod
    def deactivate(db: Session, schedule_id: int) -> DoctorSchedule:
        """Soft-delete a window. Never conflicts."""
        with write_transaction(db, "deactivate schedule"):
            schedule = DoctorScheduleService.get_schedule(db, schedule_id)
            schedule.is_active = False
            db.commit()

        logger.info(f"Deactivated schedule {schedule_id}")
        return schedule

    @staticmethod
    def delete_schedule(db: Session, schedule_id: int) -> None:
        """Permanently delete a window."""
        with write_transaction(db, "delete schedule"):
            schedule = DoctorScheduleService.get_schedule(db, schedule_id)
            db.delete(schedule)
            db.commit()

        logger.info(f"Deleted schedule {schedule_id}")

    @staticmethod
    def delete_all_for_doctor(db: Session, doctor_id: int) -> int:
        """
        Permanently delete every window of a doctor, active or not.

        Returns:
            Number of windows removed
        """
        with write_transaction(db, "delete doctor schedules"):
            deleted = db.query(DoctorSchedule).filter(
                DoctorSchedule.doctor_id == doctor_id
            ).delete(synchronize_session=False)
            db.commit()

        logger.info(f"Deleted {deleted} schedules for doctor {doctor_id}")
        return deleted

    @staticmethod
    def duplicate_to_day(
        db: Session,
        doctor_id: int,
        source_day_of_week: int,
        target_day_of_week: int
    ) -> List[DoctorSchedule]:
        """
        Copy a day's active windows to another day of the week.

        Each copy goes through create_schedule. A copy that overlaps a window
        already on the target day is skipped and logged.

        Returns:
            The windows created on the target day

        Raises:
            ValidationError: If either day is outside 0-6
            NotFoundError: If the source day has no active windows
        """
        DoctorScheduleService._validate_day_of_week(target_day_of_week)
        sources = DoctorScheduleService.find_by_doctor_and_day(db, doctor_id, source_day_of_week)

        if not sources:
            raise NotFoundError(f"No active schedules found for day {source_day_of_week}")

        duplicated: List[DoctorSchedule] = []
        for source in sources:
            try:
                duplicated.append(DoctorScheduleService.create_schedule(
                    db,
                    doctor_id=doctor_id,
                    day_of_week=target_day_of_week,
                    start_time=source.start_time,
                    end_time=source.end_time,
                    is_active=True
                ))
            except ConflictError as e:
                logger.warning(
                    f"Skipped duplicating schedule {source.id} to day {target_day_of_week}: {e.detail}"
                )
        return duplicated

    @staticmethod
    def has_schedules(db: Session, doctor_id: int) -> bool:
        """Whether the doctor has at least one active window."""
        count = db.query(DoctorSchedule).filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.is_active == True
        ).count()
        return count > 0

    @staticmethod
    def get_working_days(db: Session, doctor_id: int) -> List[int]:
        """Distinct days of the week with at least one active window, ascending."""
        rows = db.query(DoctorSchedule.day_of_week).filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.is_active == True
        ).distinct().order_by(DoctorSchedule.day_of_week).all()
        return [row[0] for row in rows]

    @staticmethod
    def is_working_on_date(db: Session, doctor_id: int, target_date: date_type) -> bool:
        return len(DoctorScheduleService.find_by_doctor_and_date(db, doctor_id, target_date)) > 0

    @staticmethod
    def get_working_hours_range(
        db: Session,
        doctor_id: int,
        target_date: date_type
    ) -> Optional[WorkingHoursRange]:
        """
        Earliest start and latest end of the active windows for a date.

        Returns:
            WorkingHoursRange, or None if the doctor does not work that day
        """
        schedules = DoctorScheduleService.find_by_doctor_and_date(db, doctor_id, target_date)
        if not schedules:
            return None

        return WorkingHoursRange(
            start=min(s.start_time for s in schedules),
            end=max(s.end_time for s in schedules)
        )

    @staticmethod
    def get_next_working_day(
        db: Session,
        doctor_id: int,
        from_date: Optional[date_type] = None,
        clock: Clock = clinic_now
    ) -> Optional[date_type]:
        """
        First date on or after ``from_date`` whose day of week has active windows.

        Only the weekly schedule is consulted; exceptions are not. The scan
        covers NEXT_WORKING_DAY_MAX_DAYS days.
        """
        working_days = set(DoctorScheduleService.get_working_days(db, doctor_id))
        if not working_days:
            return None

        check_date = from_date or clock().date()
        for _ in range(NEXT_WORKING_DAY_MAX_DAYS):
            if day_of_week(check_date) in working_days:
                return check_date
            check_date += timedelta(days=1)
        return None

    @staticmethod
    def get_schedule_stats(db: Session, doctor_id: int) -> ScheduleStats:
        """Summarize a doctor's active weekly schedule."""
        schedules = DoctorScheduleService.find_by_doctor(db, doctor_id, only_active=True)

        working_days = sorted({s.day_of_week for s in schedules})
        total_weekly_minutes = sum(s.duration_minutes for s in schedules)

        schedules_by_day: Dict[str, List[Dict[str, Any]]] = {}
        for schedule in schedules:
            schedules_by_day.setdefault(schedule.day_name, []).append({
                "id": schedule.id,
                "start_time": schedule.start_time,
                "end_time": schedule.end_time,
                "is_active": schedule.is_active,
            })

        return ScheduleStats(
            doctor_id=doctor_id,
            total_schedules=len(schedules),
            working_days=working_days,
            total_working_days=len(working_days),
            total_weekly_hours=round(total_weekly_minutes / 60, 2),
            schedules_by_day=schedules_by_day
        )

    @staticmethod
    def get_day_name(day: int) -> str:
        """Day name for a day-of-week number, "Unknown" when out of range."""
        if 0 <= day <= 6:
            return DAY_NAMES[day]
        return UNKNOWN_DAY_NAME
