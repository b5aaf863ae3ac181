"""
Availability service for computing a doctor's bookable time slots.

Slots are derived on every call from three sources: the doctor's active
weekly windows, the schedule exceptions on the date, and the appointments
that still hold their time range. Nothing is cached. The result is advisory;
AppointmentService.check_conflict remains the gate for actual bookings.
"""

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date as date_type, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from core.config import DEFAULT_NEXT_SLOTS_COUNT, DEFAULT_SLOT_DURATION_MINUTES, NEXT_AVAILABLE_MAX_DAYS
from core.constants import (
    BLOCKED_SLOT_REASON, BOOKED_SLOT_REASON, DAY_NAMES, NOT_ENOUGH_TIME_REASON,
    OUTSIDE_WORKING_HOURS_REASON, SECONDS_PER_MINUTE
)
from core.exceptions import ValidationError
from models import Appointment, DoctorSchedule, ScheduleException
from services.appointment_service import AppointmentService
from services.doctor_schedule_service import DoctorScheduleService
from services.schedule_exception_service import ScheduleExceptionService
from shared_types.availability import (
    AvailabilityStats, AvailableSlotRef, DayAvailability, DaySummary, SlotCheckResult, TimeSlot
)
from utils.datetime_utils import Clock, clinic_now, iter_dates
from utils.time_utils import (
    check_time_overlap, day_of_week, floor_to_minute, normalize_time, seconds_to_time, time_to_seconds
)

logger = logging.getLogger(__name__)


@dataclass
class _ResolvedDay:
    """Inputs and computed slots for one doctor and date."""
    windows: List[DoctorSchedule]
    exceptions: List[ScheduleException]
    slots: List[TimeSlot]

    @property
    def has_full_day_exception(self) -> bool:
        return any(e.is_full_day for e in self.exceptions)


class AvailabilityService:
    """
    Service class for availability calculations.

    All methods are read-only queries and never raise for an unavailable
    time; unavailability is reported through ``available`` and ``reason``.
    The only errors are for malformed arguments: a non-positive slot
    duration or a month outside 1-12 raises ValidationError.
    """

    @staticmethod
    def _generate_candidate_slots(windows: List[DoctorSchedule], slot_duration: int) -> List[TimeSlot]:
        """
        Generate candidate slots from windows sorted by start time.

        A slot is kept only if it ends on or before its window's end; a
        trailing remainder shorter than ``slot_duration`` is dropped.
        Arithmetic is done in seconds since midnight so the loop cannot wrap.
        """
        step = slot_duration * SECONDS_PER_MINUTE
        slots: List[TimeSlot] = []

        for window in windows:
            current = time_to_seconds(window.start_time)
            window_end = time_to_seconds(window.end_time)
            while current + step <= window_end:
                slots.append(TimeSlot(time=seconds_to_time(current), duration_minutes=slot_duration))
                current += step

        return slots

    @staticmethod
    def _mark_unavailable(slots: List[TimeSlot], start_seconds: int, end_seconds: int, reason: str) -> List[TimeSlot]:
        """Return slots with every one overlapping [start, end) marked unavailable with ``reason``."""
        marked: List[TimeSlot] = []
        for slot in slots:
            slot_start = time_to_seconds(slot.time)
            slot_end = slot_start + slot.duration_minutes * SECONDS_PER_MINUTE
            if check_time_overlap(slot_start, slot_end, start_seconds, end_seconds):
                slot = replace(slot, available=False, reason=reason)
            marked.append(slot)
        return marked

    @staticmethod
    def _drop_past_slots(slots: List[TimeSlot], target_date: date_type, now: datetime) -> List[TimeSlot]:
        """
        Drop slots already started today.

        The cutoff is the current time rounded down to the minute, so at
        14:32 a 14:30 slot is dropped and a 14:32 slot is kept. Other dates
        pass through unchanged.
        """
        if target_date != now.date():
            return slots

        cutoff = floor_to_minute(now.time())
        return [slot for slot in slots if slot.time >= cutoff]

    @staticmethod
    def _resolve_day(
        db: Session,
        doctor_id: int,
        target_date: date_type,
        slot_duration: int,
        clock: Clock
    ) -> _ResolvedDay:
        """
        Compute the slots for one doctor and date.

        Steps:
        1. Active windows for the date's day of week; none means no slots.
        2. Exceptions on the date; a full-day one means no slots.
        3. Generate slots over the windows.
        4. Mark slots overlapping partial exceptions with the exception's reason.
        5. Mark slots overlapping slot-holding appointments as booked; this
           pass overwrites reasons from step 4.
        6. If the date is today, drop slots that already started.
        """
        if slot_duration <= 0:
            raise ValidationError("Slot duration must be a positive number of minutes")

        windows = DoctorScheduleService.find_by_doctor_and_date(db, doctor_id, target_date)
        exceptions = ScheduleExceptionService.find_by_doctor_and_date(db, doctor_id, target_date)
        resolved = _ResolvedDay(windows=windows, exceptions=exceptions, slots=[])

        if not windows or resolved.has_full_day_exception:
            return resolved

        appointments: List[Appointment] = AppointmentService.find_slot_holding(db, doctor_id, target_date)

        slots = AvailabilityService._generate_candidate_slots(windows, slot_duration)

        for exception in exceptions:
            slots = AvailabilityService._mark_unavailable(
                slots,
                time_to_seconds(exception.start_time),
                time_to_seconds(exception.end_time),
                exception.reason or BLOCKED_SLOT_REASON
            )

        for appointment in appointments:
            slots = AvailabilityService._mark_unavailable(
                slots, appointment.start_seconds, appointment.end_seconds, BOOKED_SLOT_REASON
            )

        resolved.slots = AvailabilityService._drop_past_slots(slots, target_date, clock())
        return resolved

    @staticmethod
    def get_available_slots(
        db: Session,
        doctor_id: int,
        target_date: date_type,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> List[TimeSlot]:
        """
        Get every slot of a doctor's day, ordered by time.

        Args:
            db: Database session
            doctor_id: Doctor ID
            target_date: Date to compute
            slot_duration: Slot length in minutes
            clock: Source of "now" for today's truncation

        Returns:
            Slots with ``available`` and, when unavailable, ``reason``. Empty
            for non-working days and full-day exceptions.
        """
        return AvailabilityService._resolve_day(db, doctor_id, target_date, slot_duration, clock).slots

    @staticmethod
    def is_time_slot_available(
        db: Session,
        doctor_id: int,
        target_date: date_type,
        start_time: time,
        duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> SlotCheckResult:
        """
        Check whether a booking of ``duration_minutes`` can start at ``start_time``.

        The start must be a generated slot, and every slot needed to cover
        the duration must exist and be available.
        """
        start_time = normalize_time(start_time)
        slots = AvailabilityService.get_available_slots(db, doctor_id, target_date, slot_duration, clock)
        by_time: Dict[time, TimeSlot] = {slot.time: slot for slot in slots}

        slot = by_time.get(start_time)
        if slot is None:
            return SlotCheckResult(available=False, reason=OUTSIDE_WORKING_HOURS_REASON)
        if not slot.available:
            return SlotCheckResult(available=False, reason=slot.reason)

        step = slot_duration * SECONDS_PER_MINUTE
        current = time_to_seconds(start_time) + step
        end = time_to_seconds(start_time) + duration_minutes * SECONDS_PER_MINUTE
        while current < end:
            next_slot = by_time.get(seconds_to_time(current))
            if next_slot is None or not next_slot.available:
                return SlotCheckResult(available=False, reason=NOT_ENOUGH_TIME_REASON)
            current += step

        return SlotCheckResult(available=True)

    @staticmethod
    def get_next_available_slots(
        db: Session,
        doctor_id: int,
        from_date: Optional[date_type] = None,
        count: int = DEFAULT_NEXT_SLOTS_COUNT,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> List[AvailableSlotRef]:
        """
        Scan forward day by day for up to ``count`` available slots.

        The scan stops after NEXT_AVAILABLE_MAX_DAYS days even if fewer slots
        were found.
        """
        current_date = from_date or clock().date()
        found: List[AvailableSlotRef] = []

        for _ in range(NEXT_AVAILABLE_MAX_DAYS):
            if len(found) >= count:
                break
            for slot in AvailabilityService.get_available_slots(db, doctor_id, current_date, slot_duration, clock):
                if slot.available and len(found) < count:
                    found.append(AvailableSlotRef(date=current_date, time=slot.time))
            current_date += timedelta(days=1)

        return found

    @staticmethod
    def get_first_available_slot(
        db: Session,
        doctor_id: int,
        from_date: Optional[date_type] = None,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> Optional[AvailableSlotRef]:
        slots = AvailabilityService.get_next_available_slots(
            db, doctor_id, from_date, count=1, slot_duration=slot_duration, clock=clock
        )
        return slots[0] if slots else None

    @staticmethod
    def _day_availability(
        db: Session,
        doctor_id: int,
        target_date: date_type,
        slot_duration: int,
        clock: Clock
    ) -> DayAvailability:
        resolved = AvailabilityService._resolve_day(db, doctor_id, target_date, slot_duration, clock)
        dow = day_of_week(target_date)
        return DayAvailability(
            date=target_date,
            day_of_week=dow,
            day_name=DAY_NAMES[dow],
            is_working_day=bool(resolved.windows) and not resolved.has_full_day_exception,
            has_exception=bool(resolved.exceptions),
            slots=tuple(resolved.slots)
        )

    @staticmethod
    def get_week_availability(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> List[DayAvailability]:
        """Availability for the seven days starting at ``start_date``."""
        return [
            AvailabilityService._day_availability(
                db, doctor_id, start_date + timedelta(days=offset), slot_duration, clock
            )
            for offset in range(7)
        ]

    @staticmethod
    def get_month_availability(
        db: Session,
        doctor_id: int,
        year: int,
        month: int,
        slot_duration: int = DEFAULT_SLOT_DURATION_MINUTES,
        clock: Clock = clinic_now
    ) -> List[DayAvailability]:
        """
        Availability for every day of a calendar month.

        Raises:
            ValidationError: If month is not 1-12
        """
        if month < 1 or month > 12:
            raise ValidationError("Month must be between 1 and 12")

        first_day = date_type(year, month, 1)
        last_day = date_type(year, month, calendar.monthrange(year, month)[1])
        return [
            AvailabilityService._day_availability(db, doctor_id, current, slot_duration, clock)
            for current in iter_dates(first_day, last_day)
        ]

    @staticmethod
    def get_availability_summary(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type,
        clock: Clock = clinic_now
    ) -> List[DaySummary]:
        """Available-slot counts per day over [start_date, end_date], using the default slot duration."""
        summary: List[DaySummary] = []
        for current in iter_dates(start_date, end_date):
            slots = AvailabilityService.get_available_slots(
                db, doctor_id, current, DEFAULT_SLOT_DURATION_MINUTES, clock
            )
            available_count = sum(1 for slot in slots if slot.available)
            summary.append(DaySummary(date=current, available=available_count > 0, slots_count=available_count))
        return summary

    @staticmethod
    def get_availability_stats(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type,
        clock: Clock = clinic_now
    ) -> AvailabilityStats:
        summary = AvailabilityService.get_availability_summary(db, doctor_id, start_date, end_date, clock)

        total_days = len(summary)
        available_days = sum(1 for day in summary if day.available)
        total_slots = sum(day.slots_count for day in summary)

        return AvailabilityStats(
            doctor_id=doctor_id,
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            available_days=available_days,
            unavailable_days=total_days - available_days,
            total_available_slots=total_slots,
            average_slots_per_day=round(total_slots / total_days, 2) if total_days else 0.0
        )

    @staticmethod
    def has_availability_in_range(
        db: Session,
        doctor_id: int,
        start_date: date_type,
        end_date: date_type,
        clock: Clock = clinic_now
    ) -> bool:
        summary = AvailabilityService.get_availability_summary(db, doctor_id, start_date, end_date, clock)
        return any(day.available for day in summary)
