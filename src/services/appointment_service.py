"""
Appointment service for booking, rescheduling and status changes.

check_conflict is the only gate that keeps a doctor's slot-holding
appointments (anything not CANCELLED or NO_SHOW) from overlapping. Every
write that places an appointment on the calendar or moves it runs the gate
inside the write's own transaction. Status-only transitions do not.
"""

import logging
from datetime import date as date_type, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import (
    DEFAULT_APPOINTMENT_DURATION_MINUTES, MIN_APPOINTMENT_DURATION_MINUTES, UPCOMING_APPOINTMENT_DAYS
)
from core.constants import SECONDS_PER_MINUTE
from core.database import commit_or_conflict, write_transaction
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment, AppointmentHistory, AppointmentStatus
from models.appointment import SLOT_RELEASING_STATUSES
from shared_types.reports import AppointmentStatistics
from shared_types.requests import AppointmentQuery, UpdateAppointmentRequest
from utils.datetime_utils import Clock, clinic_now, utc_now
from utils.time_utils import check_time_overlap, normalize_time, time_to_seconds

logger = logging.getLogger(__name__)

CONFLICT_DETAIL = "The doctor already has an appointment at this time"

# Statuses after which an appointment can no longer be cancelled
NON_CANCELLABLE_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.COMPLETED.value)

SORTABLE_COLUMNS = {
    'appointment_date': Appointment.appointment_date,
    'appointment_time': Appointment.appointment_time,
    'created_at': Appointment.created_at,
    'status': Appointment.status,
}


class AppointmentService:
    """
    Service class for appointment operations.

    Contains business logic for booking appointments, moving them and
    tracking their status history.
    """

    @staticmethod
    def check_conflict(
        db: Session,
        doctor_id: int,
        appointment_date: date_type,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        """
        Check if a candidate range overlaps a slot-holding appointment.

        Loads the doctor's appointments on that date, excluding CANCELLED and
        NO_SHOW rows, with FOR UPDATE so the caller's following write is
        serialized against other writers of the same (doctor, date).

        Args:
            db: Database session
            doctor_id: Doctor ID
            appointment_date: Date of the candidate booking
            appointment_time: Start of the candidate booking
            duration_minutes: Length of the candidate booking
            exclude_appointment_id: Appointment being moved, skipped in the check

        Returns:
            True if the candidate overlaps an existing booking
        """
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.notin_(SLOT_RELEASING_STATUSES)
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        start = time_to_seconds(appointment_time)
        end = start + duration_minutes * SECONDS_PER_MINUTE

        for existing in query.with_for_update().all():
            if check_time_overlap(start, end, existing.start_seconds, existing.end_seconds):
                logger.debug(
                    f"Candidate {appointment_date} {appointment_time} ({duration_minutes}m) "
                    f"overlaps appointment {existing.id}"
                )
                return True
        return False

    @staticmethod
    def _validate_duration(duration_minutes: int) -> None:
        if duration_minutes < MIN_APPOINTMENT_DURATION_MINUTES:
            raise ValidationError(
                f"Appointment duration must be at least {MIN_APPOINTMENT_DURATION_MINUTES} minutes"
            )

    @staticmethod
    def _validate_not_past(appointment_date: date_type, appointment_time: time, now: datetime) -> None:
        if datetime.combine(appointment_date, appointment_time) < now:
            raise ValidationError("Cannot book an appointment in the past")

    @staticmethod
    def _record_history(
        db: Session,
        appointment: Appointment,
        previous_date: Optional[date_type],
        previous_time: Optional[time],
        previous_status: Optional[str],
        changed_by_id: Optional[int],
        reason: Optional[str]
    ) -> AppointmentHistory:
        """Add an audit row describing the appointment's current state versus the previous one."""
        entry = AppointmentHistory(
            appointment_id=appointment.id,
            previous_date=previous_date,
            previous_time=previous_time,
            new_date=appointment.appointment_date,
            new_time=appointment.appointment_time,
            previous_status=previous_status,
            new_status=appointment.status,
            reason=reason,
            changed_by_id=changed_by_id,
            changed_at=utc_now()
        )
        db.add(entry)
        return entry

    @staticmethod
    def _get_for_update(db: Session, appointment_id: int) -> Appointment:
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).with_for_update().first()
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def create_appointment(
        db: Session,
        doctor_id: int,
        patient_id: int,
        appointment_date: date_type,
        appointment_time: time,
        duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES,
        service_id: Optional[int] = None,
        reason_for_visit: Optional[str] = None,
        notes: Optional[str] = None,
        price: Optional[Decimal] = None,
        changed_by_id: Optional[int] = None,
        clock: Clock = clinic_now
    ) -> Appointment:
        """
        Book an appointment.

        Args:
            db: Database session
            doctor_id: Doctor ID
            patient_id: Patient ID
            appointment_date: Date of the visit
            appointment_time: Start of the visit
            duration_minutes: Length of the visit
            service_id: Optional clinic service being booked
            reason_for_visit: Optional free text from the patient
            notes: Optional internal notes
            price: Optional price
            changed_by_id: User making the booking; a history row is written when set
            clock: Source of "now"

        Returns:
            The persisted Appointment with status SCHEDULED

        Raises:
            ValidationError: If the duration is too short or the start is in the past
            ConflictError: If the range overlaps another slot-holding appointment
        """
        appointment_time = normalize_time(appointment_time)

        with write_transaction(db, "create appointment"):
            AppointmentService._validate_duration(duration_minutes)
            AppointmentService._validate_not_past(appointment_date, appointment_time, clock())

            if AppointmentService.check_conflict(
                db, doctor_id, appointment_date, appointment_time, duration_minutes
            ):
                raise ConflictError(CONFLICT_DETAIL)

            appointment = Appointment(
                doctor_id=doctor_id,
                patient_id=patient_id,
                service_id=service_id,
                appointment_date=appointment_date,
                appointment_time=appointment_time,
                duration_minutes=duration_minutes,
                status=AppointmentStatus.SCHEDULED.value,
                reason_for_visit=reason_for_visit,
                notes=notes,
                price=price
            )
            db.add(appointment)
            db.flush()  # Assign appointment.id for the history row

            if changed_by_id is not None:
                AppointmentService._record_history(
                    db, appointment, None, None, None, changed_by_id, "Appointment created"
                )

            commit_or_conflict(db, CONFLICT_DETAIL)

        logger.info(
            f"Created appointment {appointment.id} for patient {patient_id} with doctor {doctor_id} "
            f"on {appointment_date} {appointment_time}"
        )
        return appointment

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Get an appointment by ID.

        Raises:
            NotFoundError: If no appointment has that ID
        """
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def update_appointment(
        db: Session,
        appointment_id: int,
        request: UpdateAppointmentRequest,
        changed_by_id: Optional[int] = None
    ) -> Appointment:
        """
        Update appointment fields.

        When the date, time or duration actually changes the conflict gate
        runs again, excluding the appointment itself, and a history row
        records the move.

        Raises:
            NotFoundError: If the appointment does not exist
            ConflictError: If the new range overlaps another booking
        """
        changes: Dict[str, Any] = request.model_dump(exclude_unset=True, exclude_none=True)

        with write_transaction(db, "update appointment"):
            appointment = AppointmentService._get_for_update(db, appointment_id)

            previous_date = appointment.appointment_date
            previous_time = appointment.appointment_time

            new_date = changes.get('appointment_date', appointment.appointment_date)
            new_time = changes.get('appointment_time', appointment.appointment_time)
            new_duration = changes.get('duration_minutes', appointment.duration_minutes)

            timing_changed = (
                new_date != appointment.appointment_date
                or new_time != appointment.appointment_time
                or new_duration != appointment.duration_minutes
            )

            if timing_changed and AppointmentService.check_conflict(
                db, appointment.doctor_id, new_date, new_time, new_duration,
                exclude_appointment_id=appointment.id
            ):
                raise ConflictError(CONFLICT_DETAIL)

            for key, value in changes.items():
                setattr(appointment, key, value)

            if new_date != previous_date or new_time != previous_time:
                AppointmentService._record_history(
                    db, appointment, previous_date, previous_time, appointment.status,
                    changed_by_id, "Appointment updated"
                )

            commit_or_conflict(db, CONFLICT_DETAIL)

        logger.info(f"Updated appointment {appointment_id}: {sorted(changes)}")
        return appointment

    @staticmethod
    def update_status(
        db: Session,
        appointment_id: int,
        status: AppointmentStatus,
        changed_by_id: Optional[int] = None,
        reason: Optional[str] = None
    ) -> Appointment:
        """
        Move an appointment to another status and record the change.

        Date and time are untouched, so the conflict gate is not run. A
        cancelled or no-show appointment cannot move back to a status that
        holds its slot.

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If the change would make a released slot held again
        """
        new_status = AppointmentStatus(status).value

        with write_transaction(db, "update appointment status"):
            appointment = AppointmentService._get_for_update(db, appointment_id)

            previous_status = appointment.status
            if previous_status in SLOT_RELEASING_STATUSES and new_status not in SLOT_RELEASING_STATUSES:
                raise ValidationError(
                    f"Cannot change an appointment with status {previous_status} to {new_status}"
                )
            appointment.status = new_status

            AppointmentService._record_history(
                db, appointment,
                appointment.appointment_date, appointment.appointment_time, previous_status,
                changed_by_id, reason
            )
            db.commit()

        logger.info(f"Appointment {appointment_id} status {previous_status} -> {appointment.status}")
        return appointment

    @staticmethod
    def reschedule(
        db: Session,
        appointment_id: int,
        new_date: date_type,
        new_time: time,
        changed_by_id: Optional[int] = None,
        reason: Optional[str] = None,
        clock: Clock = clinic_now
    ) -> Appointment:
        """
        Move an appointment to a new date and time, keeping its duration.

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If the new start is in the past
            ConflictError: If the new range overlaps another booking
        """
        new_time = normalize_time(new_time)

        with write_transaction(db, "reschedule appointment"):
            appointment = AppointmentService._get_for_update(db, appointment_id)
            AppointmentService._validate_not_past(new_date, new_time, clock())

            if AppointmentService.check_conflict(
                db, appointment.doctor_id, new_date, new_time, appointment.duration_minutes,
                exclude_appointment_id=appointment.id
            ):
                raise ConflictError(CONFLICT_DETAIL)

            previous_date = appointment.appointment_date
            previous_time = appointment.appointment_time
            previous_status = appointment.status

            appointment.appointment_date = new_date
            appointment.appointment_time = new_time
            appointment.status = AppointmentStatus.RESCHEDULED.value

            AppointmentService._record_history(
                db, appointment, previous_date, previous_time, previous_status,
                changed_by_id, reason or "Appointment rescheduled"
            )
            commit_or_conflict(db, CONFLICT_DETAIL)

        logger.info(
            f"Rescheduled appointment {appointment_id} from {previous_date} {previous_time} "
            f"to {new_date} {new_time}"
        )
        return appointment

    @staticmethod
    def cancel(
        db: Session,
        appointment_id: int,
        changed_by_id: Optional[int] = None,
        reason: Optional[str] = None
    ) -> Appointment:
        """
        Cancel an appointment, releasing its slot.

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If it is already cancelled or completed
        """
        appointment = AppointmentService.get_appointment(db, appointment_id)
        if appointment.status in NON_CANCELLABLE_STATUSES:
            raise ValidationError(f"Cannot cancel an appointment with status {appointment.status}")

        return AppointmentService.update_status(
            db, appointment_id, AppointmentStatus.CANCELLED, changed_by_id, reason or "Appointment cancelled"
        )

    @staticmethod
    def confirm(db: Session, appointment_id: int, changed_by_id: Optional[int] = None) -> Appointment:
        return AppointmentService.update_status(
            db, appointment_id, AppointmentStatus.CONFIRMED, changed_by_id, "Appointment confirmed"
        )

    @staticmethod
    def complete(db: Session, appointment_id: int, changed_by_id: Optional[int] = None) -> Appointment:
        return AppointmentService.update_status(
            db, appointment_id, AppointmentStatus.COMPLETED, changed_by_id, "Appointment completed"
        )

    @staticmethod
    def mark_as_no_show(db: Session, appointment_id: int, changed_by_id: Optional[int] = None) -> Appointment:
        return AppointmentService.update_status(
            db, appointment_id, AppointmentStatus.NO_SHOW, changed_by_id, "Patient did not show up"
        )

    @staticmethod
    def delete_appointment(db: Session, appointment_id: int) -> None:
        """Permanently delete an appointment and its history."""
        with write_transaction(db, "delete appointment"):
            appointment = AppointmentService.get_appointment(db, appointment_id)
            db.delete(appointment)
            db.commit()

        logger.info(f"Deleted appointment {appointment_id}")

    @staticmethod
    def get_history(db: Session, appointment_id: int) -> List[AppointmentHistory]:
        """History of an appointment, newest first."""
        AppointmentService.get_appointment(db, appointment_id)
        return db.query(AppointmentHistory).filter(
            AppointmentHistory.appointment_id == appointment_id
        ).order_by(AppointmentHistory.changed_at.desc(), AppointmentHistory.id.desc()).all()

    @staticmethod
    def list_appointments(db: Session, query: AppointmentQuery) -> Tuple[List[Appointment], int]:
        """
        List appointments with filters, sorting and pagination.

        Returns:
            Tuple of (appointments on the requested page, total matching count)
        """
        q = db.query(Appointment)
        if query.doctor_id is not None:
            q = q.filter(Appointment.doctor_id == query.doctor_id)
        if query.patient_id is not None:
            q = q.filter(Appointment.patient_id == query.patient_id)
        if query.status is not None:
            q = q.filter(Appointment.status == query.status.value)
        if query.start_date is not None:
            q = q.filter(Appointment.appointment_date >= query.start_date)
        if query.end_date is not None:
            q = q.filter(Appointment.appointment_date <= query.end_date)

        total = q.count()

        if query.sort_by:
            column = SORTABLE_COLUMNS[query.sort_by]
            q = q.order_by(column.desc() if query.order == 'DESC' else column.asc(), Appointment.id)
        else:
            q = q.order_by(Appointment.appointment_date, Appointment.appointment_time, Appointment.id)

        appointments = q.offset((query.page - 1) * query.limit).limit(query.limit).all()
        return appointments, total

    @staticmethod
    def find_by_doctor(
        db: Session,
        doctor_id: int,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> List[Appointment]:
        query = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
        if start_date is not None:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date is not None:
            query = query.filter(Appointment.appointment_date <= end_date)
        return query.order_by(Appointment.appointment_date, Appointment.appointment_time).all()

    @staticmethod
    def find_by_patient(
        db: Session,
        patient_id: int,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> List[Appointment]:
        query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if start_date is not None:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date is not None:
            query = query.filter(Appointment.appointment_date <= end_date)
        return query.order_by(Appointment.appointment_date, Appointment.appointment_time).all()

    @staticmethod
    def find_by_status(
        db: Session,
        status: AppointmentStatus,
        doctor_id: Optional[int] = None
    ) -> List[Appointment]:
        query = db.query(Appointment).filter(Appointment.status == AppointmentStatus(status).value)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.order_by(Appointment.appointment_date, Appointment.appointment_time).all()

    @staticmethod
    def find_slot_holding(db: Session, doctor_id: int, target_date: date_type) -> List[Appointment]:
        """Appointments of a doctor on a date that still occupy their time range."""
        return db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == target_date,
            Appointment.status.notin_(SLOT_RELEASING_STATUSES)
        ).order_by(Appointment.appointment_time).all()

    @staticmethod
    def find_today(db: Session, doctor_id: Optional[int] = None, clock: Clock = clinic_now) -> List[Appointment]:
        """Today's appointments in time order, for one doctor or all."""
        query = db.query(Appointment).filter(Appointment.appointment_date == clock().date())
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.order_by(Appointment.appointment_time).all()

    @staticmethod
    def find_upcoming(
        db: Session,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        clock: Clock = clinic_now
    ) -> List[Appointment]:
        """SCHEDULED appointments from today through the next UPCOMING_APPOINTMENT_DAYS days."""
        today = clock().date()
        query = db.query(Appointment).filter(
            Appointment.appointment_date >= today,
            Appointment.appointment_date <= today + timedelta(days=UPCOMING_APPOINTMENT_DAYS),
            Appointment.status == AppointmentStatus.SCHEDULED.value
        )
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.order_by(Appointment.appointment_date, Appointment.appointment_time).all()

    @staticmethod
    def count_by_status(
        db: Session,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> Dict[str, int]:
        """
        Count appointments per status.

        Returns:
            Dict keyed by every AppointmentStatus value, zero when absent
        """
        query = db.query(Appointment.status, func.count(Appointment.id))
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if start_date is not None:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date is not None:
            query = query.filter(Appointment.appointment_date <= end_date)

        counts = {status.value: 0 for status in AppointmentStatus}
        for status, count in query.group_by(Appointment.status).all():
            counts[status] = count
        return counts

    @staticmethod
    def get_statistics(
        db: Session,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        start_date: Optional[date_type] = None,
        end_date: Optional[date_type] = None
    ) -> AppointmentStatistics:
        """Status breakdown with completion, cancellation and no-show rates (percent, 2 decimals)."""
        by_status = AppointmentService.count_by_status(db, doctor_id, patient_id, start_date, end_date)
        total = sum(by_status.values())

        def rate(status: AppointmentStatus) -> str:
            if total == 0:
                return "0.00"
            return f"{by_status[status.value] / total * 100:.2f}"

        return AppointmentStatistics(
            total=total,
            by_status=by_status,
            completion_rate=rate(AppointmentStatus.COMPLETED),
            cancellation_rate=rate(AppointmentStatus.CANCELLED),
            no_show_rate=rate(AppointmentStatus.NO_SHOW)
        )
