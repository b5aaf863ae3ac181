"""
Integration tests for AppointmentService.

Tests the booking conflict gate, reschedule/update re-validation, status
transitions with history, and the appointment queries and statistics.
"""

import pytest
from datetime import date, time

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment, AppointmentHistory, AppointmentStatus
from services.appointment_service import AppointmentService
from shared_types.requests import AppointmentQuery, UpdateAppointmentRequest
from tests.conftest import NEXT_MONDAY, NEXT_TUESDAY, TODAY, YESTERDAY, create_appointment


class TestCheckConflict:
    """Test the overlap gate."""

    def test_no_appointments(self, db_session):
        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 0), 30)

    def test_overlap_detected(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), duration_minutes=30)

        assert AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 15), 30)
        assert AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(9, 45), 30)
        assert AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(9, 0), 120)

    def test_adjacent_is_not_conflict(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), duration_minutes=30)

        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 30), 30)
        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(9, 30), 30)

    @pytest.mark.parametrize("status", [AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW])
    def test_released_statuses_ignored(self, db_session, status):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=status)

        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 0), 30)

    def test_other_doctor_and_date_ignored(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), doctor_id=2)
        create_appointment(db_session, NEXT_TUESDAY, time(10, 0))

        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 0), 30)

    def test_excluded_appointment_ignored(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        assert not AppointmentService.check_conflict(
            db_session, 1, NEXT_MONDAY, time(10, 0), 30, exclude_appointment_id=appointment.id
        )


class TestCreateAppointment:
    """Test booking creation."""

    def test_create_success(self, db_session, clock):
        appointment = AppointmentService.create_appointment(
            db_session, 1, 100, NEXT_MONDAY, time(9, 0), clock=clock
        )

        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.SCHEDULED.value
        assert appointment.duration_minutes == 30
        assert db_session.query(AppointmentHistory).count() == 0

    def test_create_records_history_when_actor_known(self, db_session, clock):
        appointment = AppointmentService.create_appointment(
            db_session, 1, 100, NEXT_MONDAY, time(9, 0), changed_by_id=7, clock=clock
        )

        history = AppointmentService.get_history(db_session, appointment.id)
        assert len(history) == 1
        assert history[0].previous_status is None
        assert history[0].new_status == "SCHEDULED"
        assert history[0].changed_by_id == 7

    def test_conflict_rejected(self, db_session, clock):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        with pytest.raises(ConflictError) as exc_info:
            AppointmentService.create_appointment(db_session, 1, 101, NEXT_MONDAY, time(10, 0), clock=clock)

        assert exc_info.value.status_code == 409
        assert db_session.query(Appointment).count() == 1

    def test_booking_into_cancelled_slot_allowed(self, db_session, clock):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=AppointmentStatus.CANCELLED)

        appointment = AppointmentService.create_appointment(db_session, 1, 101, NEXT_MONDAY, time(10, 0), clock=clock)
        assert appointment.status == "SCHEDULED"

    def test_short_duration_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            AppointmentService.create_appointment(
                db_session, 1, 100, NEXT_MONDAY, time(9, 0), duration_minutes=10, clock=clock
            )

    def test_past_start_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            AppointmentService.create_appointment(db_session, 1, 100, YESTERDAY, time(9, 0), clock=clock)
        with pytest.raises(ValidationError):
            AppointmentService.create_appointment(db_session, 1, 100, TODAY, time(14, 0), clock=clock)

    def test_later_today_allowed(self, db_session, clock):
        appointment = AppointmentService.create_appointment(db_session, 1, 100, TODAY, time(15, 0), clock=clock)
        assert appointment.appointment_date == TODAY

    def test_validation_runs_before_conflict_check(self, db_session, clock):
        create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        with pytest.raises(ValidationError):
            AppointmentService.create_appointment(
                db_session, 1, 100, NEXT_MONDAY, time(10, 0), duration_minutes=5, clock=clock
            )


class TestRescheduleAndUpdate:
    """Test time-changing writes."""

    def test_reschedule_success(self, db_session, clock):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        result = AppointmentService.reschedule(
            db_session, appointment.id, NEXT_TUESDAY, time(11, 0), changed_by_id=7, clock=clock
        )

        assert result.appointment_date == NEXT_TUESDAY
        assert result.appointment_time == time(11, 0)
        assert result.status == "RESCHEDULED"

        history = AppointmentService.get_history(db_session, appointment.id)
        assert history[0].previous_date == NEXT_MONDAY
        assert history[0].previous_time == time(10, 0)
        assert history[0].previous_status == "SCHEDULED"
        assert history[0].new_status == "RESCHEDULED"

    def test_reschedule_into_conflict_rejected(self, db_session, clock):
        create_appointment(db_session, NEXT_TUESDAY, time(11, 0), patient_id=200)
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        with pytest.raises(ConflictError):
            AppointmentService.reschedule(db_session, appointment.id, NEXT_TUESDAY, time(11, 15), clock=clock)

        db_session.refresh(appointment)
        assert appointment.appointment_date == NEXT_MONDAY
        assert appointment.status == "SCHEDULED"

    def test_reschedule_overlapping_own_old_slot_allowed(self, db_session, clock):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0), duration_minutes=60)

        result = AppointmentService.reschedule(db_session, appointment.id, NEXT_MONDAY, time(10, 30), clock=clock)
        assert result.appointment_time == time(10, 30)

    def test_reschedule_missing(self, db_session, clock):
        with pytest.raises(NotFoundError):
            AppointmentService.reschedule(db_session, 999, NEXT_MONDAY, time(10, 0), clock=clock)

    def test_update_time_rechecks_conflict(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(11, 0), patient_id=200)
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        with pytest.raises(ConflictError):
            AppointmentService.update_appointment(
                db_session, appointment.id, UpdateAppointmentRequest(appointment_time=time(11, 0))
            )

    def test_update_duration_rechecks_conflict(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(10, 30), patient_id=200)
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        with pytest.raises(ConflictError):
            AppointmentService.update_appointment(
                db_session, appointment.id, UpdateAppointmentRequest(duration_minutes=45)
            )

    def test_update_notes_only(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        result = AppointmentService.update_appointment(
            db_session, appointment.id, UpdateAppointmentRequest(notes="Bring previous results")
        )

        assert result.notes == "Bring previous results"
        assert AppointmentService.get_history(db_session, appointment.id) == []

    def test_update_time_records_history(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        AppointmentService.update_appointment(
            db_session, appointment.id, UpdateAppointmentRequest(appointment_time=time(12, 0)), changed_by_id=3
        )

        history = AppointmentService.get_history(db_session, appointment.id)
        assert len(history) == 1
        assert history[0].previous_time == time(10, 0)
        assert history[0].new_time == time(12, 0)


class TestStatusTransitions:
    """Test status-only transitions."""

    def test_confirm_complete(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        AppointmentService.confirm(db_session, appointment.id, changed_by_id=1)
        result = AppointmentService.complete(db_session, appointment.id, changed_by_id=1)

        assert result.status == "COMPLETED"
        history = AppointmentService.get_history(db_session, appointment.id)
        assert [h.new_status for h in history] == ["COMPLETED", "CONFIRMED"]

    def test_cancel_releases_slot(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        result = AppointmentService.cancel(db_session, appointment.id, changed_by_id=1, reason="Patient request")

        assert result.status == "CANCELLED"
        assert not AppointmentService.check_conflict(db_session, 1, NEXT_MONDAY, time(10, 0), 30)
        assert AppointmentService.get_history(db_session, appointment.id)[0].reason == "Patient request"

    @pytest.mark.parametrize("status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED])
    def test_cancel_rejected_for_final_states(self, db_session, status):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=status)

        with pytest.raises(ValidationError):
            AppointmentService.cancel(db_session, appointment.id)

    def test_mark_as_no_show(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        assert AppointmentService.mark_as_no_show(db_session, appointment.id).status == "NO_SHOW"

    def test_confirm_after_cancel_and_rebook_rejected(self, db_session, clock):
        first = AppointmentService.create_appointment(db_session, 1, 100, NEXT_MONDAY, time(10, 0), clock=clock)
        AppointmentService.cancel(db_session, first.id)
        second = AppointmentService.create_appointment(db_session, 1, 200, NEXT_MONDAY, time(10, 0), clock=clock)

        with pytest.raises(ValidationError):
            AppointmentService.confirm(db_session, first.id)

        db_session.refresh(first)
        assert first.status == "CANCELLED"
        assert [a.id for a in AppointmentService.find_slot_holding(db_session, 1, NEXT_MONDAY)] == [second.id]

    @pytest.mark.parametrize("released", [AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW])
    @pytest.mark.parametrize("target", [
        AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED, AppointmentStatus.RESCHEDULED,
    ])
    def test_released_slot_cannot_be_held_again(self, db_session, released, target):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=released)

        with pytest.raises(ValidationError):
            AppointmentService.update_status(db_session, appointment.id, target)

        assert db_session.query(AppointmentHistory).count() == 0

    def test_move_between_released_statuses_allowed(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=AppointmentStatus.NO_SHOW)

        result = AppointmentService.update_status(db_session, appointment.id, AppointmentStatus.CANCELLED)

        assert result.status == "CANCELLED"

    def test_delete_appointment(self, db_session):
        appointment = create_appointment(db_session, NEXT_MONDAY, time(10, 0))
        AppointmentService.confirm(db_session, appointment.id)

        AppointmentService.delete_appointment(db_session, appointment.id)

        assert db_session.query(Appointment).count() == 0
        assert db_session.query(AppointmentHistory).count() == 0
        with pytest.raises(NotFoundError):
            AppointmentService.get_history(db_session, appointment.id)


class TestAppointmentQueries:
    """Test listing, filtering and statistics."""

    def test_list_with_filters_and_pagination(self, db_session):
        for hour in range(9, 14):
            create_appointment(db_session, NEXT_MONDAY, time(hour, 0))
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), doctor_id=2)

        rows, total = AppointmentService.list_appointments(
            db_session, AppointmentQuery(doctor_id=1, page=2, limit=2)
        )

        assert total == 5
        assert [a.appointment_time for a in rows] == [time(11, 0), time(12, 0)]

    def test_list_sorted_descending(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(9, 0))
        create_appointment(db_session, NEXT_TUESDAY, time(9, 0))

        rows, _ = AppointmentService.list_appointments(
            db_session, AppointmentQuery(sort_by='appointment_date', order='DESC')
        )
        assert [a.appointment_date for a in rows] == [NEXT_TUESDAY, NEXT_MONDAY]

    def test_list_by_status_and_dates(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), status=AppointmentStatus.CANCELLED)
        create_appointment(db_session, NEXT_MONDAY, time(10, 0))
        create_appointment(db_session, date(2026, 3, 20), time(10, 0))

        rows, total = AppointmentService.list_appointments(
            db_session,
            AppointmentQuery(status=AppointmentStatus.SCHEDULED, start_date=NEXT_MONDAY, end_date=NEXT_TUESDAY)
        )
        assert total == 1
        assert rows[0].appointment_time == time(10, 0)

    def test_find_by_doctor_and_patient(self, db_session):
        create_appointment(db_session, NEXT_TUESDAY, time(9, 0), patient_id=100)
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), patient_id=100)
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), patient_id=200)

        assert [a.appointment_date for a in AppointmentService.find_by_patient(db_session, 100)] == [
            NEXT_MONDAY, NEXT_TUESDAY
        ]
        assert len(AppointmentService.find_by_doctor(db_session, 1, NEXT_MONDAY, NEXT_MONDAY)) == 2

    def test_find_by_status(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), status=AppointmentStatus.NO_SHOW)
        create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        assert len(AppointmentService.find_by_status(db_session, AppointmentStatus.NO_SHOW)) == 1

    def test_find_today_and_upcoming(self, db_session, clock):
        create_appointment(db_session, TODAY, time(16, 0))
        create_appointment(db_session, NEXT_MONDAY, time(9, 0))
        create_appointment(db_session, NEXT_TUESDAY, time(9, 0))
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=AppointmentStatus.CONFIRMED)

        assert len(AppointmentService.find_today(db_session, doctor_id=1, clock=clock)) == 1

        upcoming = AppointmentService.find_upcoming(db_session, doctor_id=1, clock=clock)
        assert [(a.appointment_date, a.appointment_time) for a in upcoming] == [
            (TODAY, time(16, 0)), (NEXT_MONDAY, time(9, 0))
        ]

    def test_find_slot_holding(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), status=AppointmentStatus.CANCELLED)
        create_appointment(db_session, NEXT_MONDAY, time(11, 0), status=AppointmentStatus.COMPLETED)
        create_appointment(db_session, NEXT_MONDAY, time(10, 0))

        held = AppointmentService.find_slot_holding(db_session, 1, NEXT_MONDAY)
        assert [a.appointment_time for a in held] == [time(10, 0), time(11, 0)]

    def test_statistics(self, db_session):
        create_appointment(db_session, NEXT_MONDAY, time(9, 0), status=AppointmentStatus.COMPLETED)
        create_appointment(db_session, NEXT_MONDAY, time(10, 0), status=AppointmentStatus.COMPLETED)
        create_appointment(db_session, NEXT_MONDAY, time(11, 0), status=AppointmentStatus.CANCELLED)
        create_appointment(db_session, NEXT_MONDAY, time(12, 0), status=AppointmentStatus.NO_SHOW)
        create_appointment(db_session, NEXT_MONDAY, time(13, 0), status=AppointmentStatus.SCHEDULED)
        create_appointment(db_session, NEXT_MONDAY, time(14, 0), status=AppointmentStatus.SCHEDULED)

        counts = AppointmentService.count_by_status(db_session, doctor_id=1)
        assert counts["COMPLETED"] == 2
        assert counts["RESCHEDULED"] == 0

        stats = AppointmentService.get_statistics(db_session, doctor_id=1)
        assert stats.total == 6
        assert stats.completion_rate == "33.33"
        assert stats.cancellation_rate == "16.67"
        assert stats.no_show_rate == "16.67"

    def test_statistics_empty(self, db_session):
        stats = AppointmentService.get_statistics(db_session, doctor_id=1)

        assert stats.total == 0
        assert stats.completion_rate == "0.00"
