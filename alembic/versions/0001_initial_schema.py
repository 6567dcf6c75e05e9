"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = postgresql.ENUM('dentist', 'assistant', 'super_admin', name='user_role', create_type=False)
user_status = postgresql.ENUM('pending', 'approved', 'rejected', name='user_status', create_type=False)
payment_method = postgresql.ENUM('cash', 'card', 'check', name='payment_method', create_type=False)
appointment_status = postgresql.ENUM('pending', 'confirmed', 'completed', 'cancelled', name='appointment_status', create_type=False)
archive_type = postgresql.ENUM('deleted', 'archived', name='archive_type', create_type=False)

ENUMS = (user_role, user_status, payment_method, appointment_status, archive_type)


def upgrade() -> None:
    # 1. Tipos enum
    for enum_type in ENUMS:
        enum_type.create(op.get_bind(), checkfirst=True)

    # 2. users
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('practice_name', sa.String(length=200), nullable=True, comment='Nombre del consultorio; vincula asistentes con su dentista'),
        sa.Column('status', user_status, nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_practice_name'), 'users', ['practice_name'], unique=False)
    op.create_index(op.f('ix_users_status'), 'users', ['status'], unique=False)

    # 3. user_assignments
    op.create_table('user_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('assistant_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assistant_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('assistant_id'),
        sa.UniqueConstraint('dentist_id', 'assistant_id', name='uq_assignment_pair')
    )
    op.create_index(op.f('ix_user_assignments_dentist_id'), 'user_assignments', ['dentist_id'], unique=False)

    # 4. patients (teléfono único entre activos del mismo dentista)
    op.create_table('patients',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_by', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['archived_by'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_patients_dentist_id'), 'patients', ['dentist_id'], unique=False)
    op.create_index(
        'uq_patients_dentist_phone_active', 'patients', ['dentist_id', 'phone'],
        unique=True, postgresql_where=sa.text('is_archived = false'),
    )

    # 5. consultations (remaining_balance generado por la base)
    op.create_table('consultations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('date_of_consultation', sa.Date(), nullable=False),
        sa.Column('type_of_prosthesis', sa.String(length=200), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('remaining_balance', sa.Numeric(precision=10, scale=2), sa.Computed('total_price - amount_paid', persisted=True), nullable=True),
        sa.Column('needs_followup', sa.Boolean(), nullable=False),
        sa.Column('receipt_number', sa.String(length=40), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number')
    )
    op.create_index(op.f('ix_consultations_patient_id'), 'consultations', ['patient_id'], unique=False)
    op.create_index(op.f('ix_consultations_dentist_id'), 'consultations', ['dentist_id'], unique=False)
    op.create_index('idx_consultation_dentist_date', 'consultations', ['dentist_id', 'date_of_consultation'], unique=False)

    # 6. payments
    op.create_table('payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('consultation_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('patient_name', sa.String(length=200), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('remaining_balance', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('receipt_number', sa.String(length=40), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['consultation_id'], ['consultations.id']),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number')
    )
    op.create_index(op.f('ix_payments_consultation_id'), 'payments', ['consultation_id'], unique=False)
    op.create_index(op.f('ix_payments_patient_id'), 'payments', ['patient_id'], unique=False)
    op.create_index('idx_payment_dentist_date', 'payments', ['dentist_id', 'payment_date'], unique=False)

    # 7. appointments (un horario por dentista entre citas no canceladas)
    op.create_table('appointments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('consultation_id', sa.Integer(), nullable=True, comment='Consulta de origen para citas de seguimiento'),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('patient_name', sa.String(length=200), nullable=False),
        sa.Column('patient_phone', sa.String(length=30), nullable=True),
        sa.Column('treatment_type', sa.String(length=200), nullable=False),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['consultation_id'], ['consultations.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_appointments_consultation_id'), 'appointments', ['consultation_id'], unique=False)
    op.create_index(
        'uq_appointments_dentist_slot', 'appointments',
        ['dentist_id', 'appointment_date', 'appointment_time'],
        unique=True, postgresql_where=sa.text("status <> 'cancelled'"),
    )
    op.create_index('idx_appointment_patient', 'appointments', ['patient_id', 'appointment_date'], unique=False)
    op.create_index('idx_appointment_status', 'appointments', ['dentist_id', 'status'], unique=False)

    # 8. archives
    op.create_table('archives',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('dentist_id', sa.Integer(), nullable=False),
        sa.Column('original_table', sa.String(length=50), nullable=False, comment='patients | consultations'),
        sa.Column('original_id', sa.Integer(), nullable=False),
        sa.Column('data_json', sa.Text(), nullable=False),
        sa.Column('archive_type', archive_type, nullable=False),
        sa.Column('patient_name', sa.String(length=200), nullable=True),
        sa.Column('treatment', sa.String(length=200), nullable=True),
        sa.Column('archived_by', sa.Integer(), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['dentist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['archived_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_archives_dentist_id'), 'archives', ['dentist_id'], unique=False)
    op.create_index('idx_archive_original', 'archives', ['original_table', 'original_id'], unique=False)


def downgrade() -> None:
    op.drop_table('archives')
    op.drop_table('appointments')
    op.drop_table('payments')
    op.drop_table('consultations')
    op.drop_table('patients')
    op.drop_table('user_assignments')
    op.drop_table('users')

    for enum_type in reversed(ENUMS):
        enum_type.drop(op.get_bind(), checkfirst=True)
