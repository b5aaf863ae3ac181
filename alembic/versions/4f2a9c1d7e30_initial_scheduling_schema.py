"""initial_scheduling_schema

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-03-01 10:12:44.318201

Creates the weekly schedule, schedule exception, appointment and appointment
history tables with their row-level check constraints and the composite
indexes used by the overlap checks.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1d7e30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'doctor_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_schedule_day_of_week'),
        sa.CheckConstraint('start_time < end_time', name='check_schedule_time_range'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_doctor_schedules_id', 'doctor_schedules', ['id'])
    op.create_index('ix_doctor_schedules_doctor_id', 'doctor_schedules', ['doctor_id'])
    op.create_index(
        'idx_doctor_schedules_doctor_day_active', 'doctor_schedules', ['doctor_id', 'day_of_week', 'is_active']
    )
    op.create_index(
        'idx_doctor_schedules_doctor_day_time', 'doctor_schedules', ['doctor_id', 'day_of_week', 'start_time']
    )

    op.create_table(
        'schedule_exceptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('exception_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR "
            "(start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time)",
            name='check_exception_time_range'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_schedule_exceptions_id', 'schedule_exceptions', ['id'])
    op.create_index('ix_schedule_exceptions_doctor_id', 'schedule_exceptions', ['doctor_id'])
    op.create_index(
        'idx_schedule_exceptions_doctor_date', 'schedule_exceptions', ['doctor_id', 'exception_date']
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reason_for_visit', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint('duration_minutes > 0', name='check_appointment_duration'),
        sa.CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'CANCELLED', 'COMPLETED', 'NO_SHOW', 'RESCHEDULED')",
            name='check_appointment_status'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('ix_appointments_doctor_id', 'appointments', ['doctor_id'])
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'])
    op.create_index('idx_appointments_doctor_date', 'appointments', ['doctor_id', 'appointment_date'])
    op.create_index(
        'idx_appointments_doctor_date_status', 'appointments', ['doctor_id', 'appointment_date', 'status']
    )
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'appointment_date'])

    op.create_table(
        'appointment_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('previous_date', sa.Date(), nullable=True),
        sa.Column('previous_time', sa.Time(), nullable=True),
        sa.Column('new_date', sa.Date(), nullable=False),
        sa.Column('new_time', sa.Time(), nullable=False),
        sa.Column('previous_status', sa.String(length=20), nullable=True),
        sa.Column('new_status', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by_id', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_appointment_history_id', 'appointment_history', ['id'])
    op.create_index(
        'idx_appointment_history_appointment', 'appointment_history', ['appointment_id', 'changed_at']
    )


def downgrade() -> None:
    op.drop_index('idx_appointment_history_appointment', table_name='appointment_history')
    op.drop_index('ix_appointment_history_id', table_name='appointment_history')
    op.drop_table('appointment_history')

    op.drop_index('idx_appointments_patient_date', table_name='appointments')
    op.drop_index('idx_appointments_doctor_date_status', table_name='appointments')
    op.drop_index('idx_appointments_doctor_date', table_name='appointments')
    op.drop_index('ix_appointments_patient_id', table_name='appointments')
    op.drop_index('ix_appointments_doctor_id', table_name='appointments')
    op.drop_index('ix_appointments_id', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('idx_schedule_exceptions_doctor_date', table_name='schedule_exceptions')
    op.drop_index('ix_schedule_exceptions_doctor_id', table_name='schedule_exceptions')
    op.drop_index('ix_schedule_exceptions_id', table_name='schedule_exceptions')
    op.drop_table('schedule_exceptions')

    op.drop_index('idx_doctor_schedules_doctor_day_time', table_name='doctor_schedules')
    op.drop_index('idx_doctor_schedules_doctor_day_active', table_name='doctor_schedules')
    op.drop_index('ix_doctor_schedules_doctor_id', table_name='doctor_schedules')
    op.drop_index('ix_doctor_schedules_id', table_name='doctor_schedules')
    op.drop_table('doctor_schedules')
