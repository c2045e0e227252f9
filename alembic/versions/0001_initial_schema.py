"""Initial schema: staff, patients, appointments and clinical records

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:12:41.208315

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('admin', 'specialist', 'receptionist', name='user_role')
appointment_status = sa.Enum('scheduled', 'in_progress', 'paused', 'completed', name='appointment_status')
audit_action = sa.Enum(
    'CREATE', 'READ', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', 'TRANSITION', 'ACCESS_DENIED', 'EXPORT',
    name='audit_action',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('idx_users_email', 'users', ['email'])
    op.create_index('idx_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('identification', sa.String(length=50), nullable=False, unique=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(length=20), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_patients_id', 'patients', ['id'])
    op.create_index('idx_patients_name', 'patients', ['last_name', 'first_name'])
    op.create_index('idx_patients_created', 'patients', ['created_at'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('specialist_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('receptionist_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('taken_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('taken_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'scheduled_at'])
    op.create_index('idx_appointments_specialist_date', 'appointments', ['specialist_id', 'scheduled_at'])
    op.create_index('idx_appointments_status_date', 'appointments', ['status', 'scheduled_at'])
    # A specialist holds at most one in_progress appointment
    op.create_index(
        'uq_appointments_active_specialist', 'appointments', ['taken_by_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        'clinical_histories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id'), nullable=False, unique=True),
        sa.Column('reason_for_consultation', sa.Text(), nullable=True),
        sa.Column('current_illness', sa.Text(), nullable=True),
        sa.Column('personal_history', sa.Text(), nullable=True),
        sa.Column('family_history', sa.Text(), nullable=True),
        sa.Column('occupational_history', sa.Text(), nullable=True),
        sa.Column('uses_optical_correction', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('optical_correction_type', sa.String(length=100), nullable=True),
        sa.Column('systemic_diseases', sa.Text(), nullable=True),
        sa.Column('medications', sa.Text(), nullable=True),
        sa.Column('allergies', sa.Text(), nullable=True),
        sa.Column('diagnostic', sa.Text(), nullable=True),
        sa.Column('treatment_plan', sa.Text(), nullable=True),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_clinical_histories_id', 'clinical_histories', ['id'])

    op.create_table(
        'clinical_evolutions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('clinical_history_id', sa.Integer(), sa.ForeignKey('clinical_histories.id'), nullable=False),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=True),
        sa.Column('evolution_date', sa.Date(), nullable=False),
        sa.Column('subjective', sa.Text(), nullable=False),
        sa.Column('objective', sa.Text(), nullable=False),
        sa.Column('assessment', sa.Text(), nullable=False),
        sa.Column('plan', sa.Text(), nullable=False),
        sa.Column('recommendations', sa.Text(), nullable=True),
        sa.Column('right_far_vision', sa.String(length=50), nullable=True),
        sa.Column('left_far_vision', sa.String(length=50), nullable=True),
        sa.Column('right_near_vision', sa.String(length=50), nullable=True),
        sa.Column('left_near_vision', sa.String(length=50), nullable=True),
        sa.Column('right_eye_sphere', sa.String(length=50), nullable=True),
        sa.Column('right_eye_cylinder', sa.String(length=50), nullable=True),
        sa.Column('right_eye_axis', sa.String(length=50), nullable=True),
        sa.Column('right_eye_visual_acuity', sa.String(length=50), nullable=True),
        sa.Column('left_eye_sphere', sa.String(length=50), nullable=True),
        sa.Column('left_eye_cylinder', sa.String(length=50), nullable=True),
        sa.Column('left_eye_axis', sa.String(length=50), nullable=True),
        sa.Column('left_eye_visual_acuity', sa.String(length=50), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_clinical_evolutions_id', 'clinical_evolutions', ['id'])
    op.create_index('idx_evolutions_history_date', 'clinical_evolutions', ['clinical_history_id', 'evolution_date'])
    op.create_index('idx_evolutions_appointment', 'clinical_evolutions', ['appointment_id'])
    op.create_index('idx_evolutions_creator', 'clinical_evolutions', ['created_by'])

    op.create_table(
        'prescriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=False, unique=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('document', sa.String(length=50), nullable=True),
        sa.Column('patient_name', sa.String(length=200), nullable=True),
        sa.Column('right_sphere', sa.String(length=20), nullable=True),
        sa.Column('right_cylinder', sa.String(length=20), nullable=True),
        sa.Column('right_axis', sa.String(length=20), nullable=True),
        sa.Column('right_addition', sa.String(length=20), nullable=True),
        sa.Column('right_height', sa.String(length=20), nullable=True),
        sa.Column('right_distance_p', sa.String(length=20), nullable=True),
        sa.Column('right_visual_acuity_far', sa.String(length=20), nullable=True),
        sa.Column('right_visual_acuity_near', sa.String(length=20), nullable=True),
        sa.Column('left_sphere', sa.String(length=20), nullable=True),
        sa.Column('left_cylinder', sa.String(length=20), nullable=True),
        sa.Column('left_axis', sa.String(length=20), nullable=True),
        sa.Column('left_addition', sa.String(length=20), nullable=True),
        sa.Column('left_height', sa.String(length=20), nullable=True),
        sa.Column('left_distance_p', sa.String(length=20), nullable=True),
        sa.Column('left_visual_acuity_far', sa.String(length=20), nullable=True),
        sa.Column('left_visual_acuity_near', sa.String(length=20), nullable=True),
        sa.Column('correction_type', sa.String(length=100), nullable=True),
        sa.Column('usage_type', sa.String(length=100), nullable=True),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('professional', sa.String(length=200), nullable=True),
        sa.Column('observation', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_prescriptions_id', 'prescriptions', ['id'])
    op.create_index('idx_prescriptions_date', 'prescriptions', ['date'])
    op.create_index('idx_prescriptions_creator', 'prescriptions', ['created_by'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=True),
        sa.Column('resource_type', sa.String(length=50), nullable=True),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_category', 'audit_logs', ['category'])
    op.create_index('ix_audit_logs_severity', 'audit_logs', ['severity'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('idx_audit_user_date', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('idx_audit_action_date', 'audit_logs', ['action', 'timestamp'])
    op.create_index('idx_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('prescriptions')
    op.drop_table('clinical_evolutions')
    op.drop_table('clinical_histories')
    op.drop_index('uq_appointments_active_specialist', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('patients')
    op.drop_table('users')
    bind = op.get_bind()
    for enum_type in (audit_action, appointment_status, user_role):
        enum_type.drop(bind, checkfirst=True)
