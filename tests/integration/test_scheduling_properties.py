"""
Property-based tests for scheduling invariants.

These tests verify invariants that must hold after any sequence of writes
that individually succeeded, regardless of input. Uses Hypothesis for
property-based testing; each example runs against a fresh database.
"""

from datetime import date, time
from itertools import combinations

from hypothesis import given, settings, strategies as st

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment, AppointmentStatus, DoctorSchedule, ScheduleException
from models.appointment import SLOT_RELEASING_STATUSES
from services.appointment_service import AppointmentService
from services.doctor_schedule_service import DoctorScheduleService
from services.schedule_exception_service import ScheduleExceptionService
from shared_types.requests import UpdateAppointmentRequest, UpdateScheduleRequest
from tests.conftest import NOW, sqlite_session
from utils.datetime_utils import fixed_clock
from utils.time_utils import check_time_overlap

CLOCK = fixed_clock(NOW)
BOOKING_DATES = [date(2026, 3, 9), date(2026, 3, 10)]

quarter_hours = st.integers(min_value=8 * 4, max_value=18 * 4).map(lambda q: time(q // 4, (q % 4) * 15))
durations = st.sampled_from([15, 30, 45, 60, 90])

booking_ops = st.one_of(
    st.tuples(st.just("create"), st.sampled_from(BOOKING_DATES), quarter_hours, durations),
    st.tuples(st.just("reschedule"), st.integers(0, 10), st.sampled_from(BOOKING_DATES), quarter_hours),
    st.tuples(st.just("update"), st.integers(0, 10), quarter_hours, durations),
    st.tuples(st.just("status"), st.integers(0, 10), st.sampled_from(list(AppointmentStatus))),
)


def _window_bounds(draw_start: int, length: int):
    start = time(draw_start // 4, (draw_start % 4) * 15)
    end_quarter = min(draw_start + length, 24 * 4 - 1)
    end = time(end_quarter // 4, (end_quarter % 4) * 15)
    return start, end


schedule_ops = st.one_of(
    st.tuples(st.just("create"), st.integers(0, 2), st.integers(6 * 4, 20 * 4), st.integers(1, 24), st.booleans()),
    st.tuples(st.just("update"), st.integers(0, 10), st.integers(6 * 4, 20 * 4), st.integers(1, 24)),
    st.tuples(st.just("activate"), st.integers(0, 10)),
    st.tuples(st.just("deactivate"), st.integers(0, 10)),
)

exception_ops = st.tuples(
    st.sampled_from([date(2026, 3, 9), date(2026, 3, 10)]),
    st.one_of(st.none(), st.tuples(st.integers(8 * 4, 17 * 4), st.integers(1, 8))),
)


def _nth_id(db, model, index):
    ids = [row.id for row in db.query(model).order_by(model.id).all()]
    if not ids:
        return None
    return ids[index % len(ids)]


@settings(deadline=None, max_examples=25)
@given(st.lists(booking_ops, min_size=1, max_size=12))
def test_no_double_booking(operations):
    """Slot-holding appointments of one doctor and date never overlap."""
    with sqlite_session() as db:
        for op in operations:
            try:
                if op[0] == "create":
                    _, day, start, duration = op
                    AppointmentService.create_appointment(db, 1, 100, day, start, duration, clock=CLOCK)
                elif op[0] == "reschedule":
                    _, index, day, start = op
                    appointment_id = _nth_id(db, Appointment, index)
                    if appointment_id is not None:
                        AppointmentService.reschedule(db, appointment_id, day, start, clock=CLOCK)
                elif op[0] == "update":
                    _, index, start, duration = op
                    appointment_id = _nth_id(db, Appointment, index)
                    if appointment_id is not None:
                        AppointmentService.update_appointment(
                            db, appointment_id,
                            UpdateAppointmentRequest(appointment_time=start, duration_minutes=duration)
                        )
                elif op[0] == "status":
                    _, index, status = op
                    appointment_id = _nth_id(db, Appointment, index)
                    if appointment_id is not None:
                        AppointmentService.update_status(db, appointment_id, status)
            except (ConflictError, ValidationError, NotFoundError):
                pass

        held = db.query(Appointment).filter(Appointment.status.notin_(SLOT_RELEASING_STATUSES)).all()
        for a, b in combinations(held, 2):
            if a.doctor_id == b.doctor_id and a.appointment_date == b.appointment_date:
                assert not check_time_overlap(a.start_seconds, a.end_seconds, b.start_seconds, b.end_seconds)


@settings(deadline=None, max_examples=25)
@given(st.lists(schedule_ops, min_size=1, max_size=12))
def test_active_schedules_never_overlap(operations):
    """Active windows of one doctor and day never overlap."""
    with sqlite_session() as db:
        for op in operations:
            try:
                if op[0] == "create":
                    _, day, start_quarter, length, is_active = op
                    start, end = _window_bounds(start_quarter, length)
                    DoctorScheduleService.create_schedule(db, 1, day, start, end, is_active)
                elif op[0] == "update":
                    _, index, start_quarter, length = op
                    schedule_id = _nth_id(db, DoctorSchedule, index)
                    if schedule_id is not None:
                        start, end = _window_bounds(start_quarter, length)
                        DoctorScheduleService.update_schedule(
                            db, schedule_id, UpdateScheduleRequest(start_time=start, end_time=end)
                        )
                elif op[0] == "activate":
                    schedule_id = _nth_id(db, DoctorSchedule, op[1])
                    if schedule_id is not None:
                        DoctorScheduleService.activate(db, schedule_id)
                else:
                    schedule_id = _nth_id(db, DoctorSchedule, op[1])
                    if schedule_id is not None:
                        DoctorScheduleService.deactivate(db, schedule_id)
            except (ConflictError, ValidationError):
                pass

        active = db.query(DoctorSchedule).filter(DoctorSchedule.is_active == True).all()
        for a, b in combinations(active, 2):
            if a.doctor_id == b.doctor_id and a.day_of_week == b.day_of_week:
                assert not check_time_overlap(a.start_time, a.end_time, b.start_time, b.end_time)


@settings(deadline=None, max_examples=25)
@given(st.lists(exception_ops, min_size=1, max_size=10))
def test_full_day_and_partial_exceptions_never_coexist(operations):
    """Per date: one full-day exception alone, or non-overlapping partial ones."""
    with sqlite_session() as db:
        for exception_date, time_range in operations:
            start = end = None
            if time_range is not None:
                start_quarter, length = time_range
                start, end = _window_bounds(start_quarter, length)
            try:
                ScheduleExceptionService.create_exception(db, 1, exception_date, start, end, clock=CLOCK)
            except ConflictError:
                pass

        for exception_date in {op[0] for op in operations}:
            rows = db.query(ScheduleException).filter(ScheduleException.exception_date == exception_date).all()
            full_day = [e for e in rows if e.is_full_day]
            if full_day:
                assert len(rows) == 1
            for a, b in combinations(rows, 2):
                assert not check_time_overlap(a.start_time, a.end_time, b.start_time, b.end_time)
