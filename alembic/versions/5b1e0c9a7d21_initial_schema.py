"""initial_schema

Revision ID: 5b1e0c9a7d21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b1e0c9a7d21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTOR_ROLE = ('patient', 'doctor', 'emergency', 'admin')
VERIFICATION_STATUS = (
    'not_submitted', 'submitted', 'under_review', 'need_resubmission',
    'verified', 'rejected', 'suspended',
)
ACCESS_REQUEST_STATUS = ('pending', 'approved', 'rejected', 'expired', 'access_revoked')
ACCESS_LEVEL = ('read', 'write')
RECORD_CATEGORY = (
    'all', 'general', 'lab-results', 'prescription', 'imaging', 'emergency', 'consultation',
)
AUDIT_ACTION = (
    'DOCTOR_VERIFICATION_SUBMITTED',
    'DOCTOR_VERIFICATION_APPROVED',
    'DOCTOR_VERIFICATION_REJECTED',
    'DOCTOR_VERIFICATION_RESUBMISSION_REQUESTED',
    'DOCTOR_VERIFICATION_SUSPENDED',
    'DOCTOR_VERIFICATION_STATUS_CHANGED',
    'PATIENT_ACCESS_REQUEST_CREATED',
    'PATIENT_ACCESS_REQUEST_APPROVED',
    'PATIENT_ACCESS_REQUEST_REJECTED',
    'PATIENT_REVOKED_ACCESS',
    'PATIENT_TRUSTED_DOCTOR_ADDED',
    'PATIENT_DATA_ACCESSED',
    'MEDICAL_RECORD_CREATED',
    'MEDICAL_RECORD_VIEWED',
    'MEDICAL_RECORD_DOWNLOADED',
    'ADMIN_ACTION',
)
AUDIT_ACTOR_ROLE = ('patient', 'doctor', 'emergency', 'admin', 'system')
AUDIT_TARGET_TYPE = (
    'doctor', 'patient', 'access_request', 'verification', 'medical_record', 'admin',
)
AUDIT_SEVERITY = ('low', 'medium', 'high', 'critical')
AUDIT_OUTCOME = ('success', 'failure', 'warning')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _enum(values: tuple[str, ...], name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


def upgrade() -> None:
    """Create actors, verification, consent ledger, records and audit trail."""
    bind = op.get_bind()
    for values, name in (
        (ACTOR_ROLE, 'actor_role'),
        (VERIFICATION_STATUS, 'verification_status'),
        (ACCESS_REQUEST_STATUS, 'access_request_status'),
        (ACCESS_LEVEL, 'access_level'),
        (RECORD_CATEGORY, 'record_category'),
        (AUDIT_ACTION, 'audit_action'),
        (AUDIT_ACTOR_ROLE, 'audit_actor_role'),
        (AUDIT_TARGET_TYPE, 'audit_target_type'),
        (AUDIT_SEVERITY, 'audit_severity'),
        (AUDIT_OUTCOME, 'audit_outcome'),
    ):
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'actors',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('role', _enum(ACTOR_ROLE, 'actor_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('license_number', sa.String(100), nullable=True),
        sa.Column('specialization', sa.String(255), nullable=True),
        sa.Column('hospital', sa.String(255), nullable=True),
        sa.Column('badge_number', sa.String(100), nullable=True),
        sa.Column('department', sa.String(255), nullable=True),
        sa.Column('station', sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_actors_email', 'actors', ['email'], unique=True)

    op.create_table(
        'trusted_doctors',
        sa.Column('patient_id', sa.UUID(), nullable=False),
        sa.Column('doctor_id', sa.UUID(), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['actors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['actors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('patient_id', 'doctor_id'),
    )

    op.create_table(
        'doctor_verifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('doctor_id', sa.UUID(), nullable=False),
        sa.Column('status', _enum(VERIFICATION_STATUS, 'verification_status'), nullable=False),
        sa.Column('documents', postgresql.JSONB(), nullable=False),
        sa.Column('submission_history', postgresql.JSONB(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewer_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.String(1000), nullable=True),
        sa.Column('suspension_reason', sa.String(1000), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', sa.UUID(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.UUID(), nullable=True),
        sa.Column('suspended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_reviewed_by', sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['doctor_id'], ['actors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_doctor_verifications_doctor_id', 'doctor_verifications', ['doctor_id'], unique=True
    )

    op.create_table(
        'access_requests',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('doctor_id', sa.UUID(), nullable=False),
        sa.Column('patient_id', sa.UUID(), nullable=False),
        sa.Column('status', _enum(ACCESS_REQUEST_STATUS, 'access_request_status'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('access_level', _enum(ACCESS_LEVEL, 'access_level'), nullable=False),
        sa.Column('record_categories', postgresql.JSONB(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(1000), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_approved', sa.Boolean(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['doctor_id'], ['actors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['actors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_access_requests_doctor_id', 'access_requests', ['doctor_id'])
    op.create_index('ix_access_requests_patient_id', 'access_requests', ['patient_id'])
    op.create_index(
        'ix_access_requests_doctor_patient_status_requested',
        'access_requests',
        ['doctor_id', 'patient_id', 'status', 'requested_at'],
    )

    op.create_table(
        'medical_records',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('patient_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', _enum(RECORD_CATEGORY, 'record_category'), nullable=False),
        sa.Column('record_date', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('authored_by', sa.UUID(), nullable=True),
        sa.Column('is_emergency_visible', sa.Boolean(), nullable=False),
        sa.Column('files', postgresql.JSONB(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['patient_id'], ['actors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_medical_records_patient_id', 'medical_records', ['patient_id'])

    op.create_table(
        'record_permissions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('record_id', sa.UUID(), nullable=False),
        sa.Column('doctor_id', sa.UUID(), nullable=False),
        sa.Column('granted', sa.Boolean(), nullable=False),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('access_level', _enum(ACCESS_LEVEL, 'access_level'), nullable=False),
        sa.Column('access_request_id', sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['record_id'], ['medical_records.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['actors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['access_request_id'], ['access_requests.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('record_id', 'doctor_id', name='uq_record_permissions_record_doctor'),
    )
    op.create_index('ix_record_permissions_record_id', 'record_permissions', ['record_id'])
    op.create_index('ix_record_permissions_doctor_id', 'record_permissions', ['doctor_id'])

    op.create_table(
        'audit_entries',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('action', _enum(AUDIT_ACTION, 'audit_action'), nullable=False),
        sa.Column('actor_id', sa.UUID(), nullable=True),
        sa.Column('actor_role', _enum(AUDIT_ACTOR_ROLE, 'audit_actor_role'), nullable=True),
        sa.Column('target_type', _enum(AUDIT_TARGET_TYPE, 'audit_target_type'), nullable=True),
        sa.Column('target_id', sa.UUID(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('details', postgresql.JSONB(), nullable=False),
        sa.Column('severity', _enum(AUDIT_SEVERITY, 'audit_severity'), nullable=False),
        sa.Column('status', _enum(AUDIT_OUTCOME, 'audit_outcome'), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_entries_action_timestamp', 'audit_entries', ['action', 'timestamp'])
    op.create_index('ix_audit_entries_actor_timestamp', 'audit_entries', ['actor_id', 'timestamp'])
    op.create_index('ix_audit_entries_target_timestamp', 'audit_entries', ['target_id', 'timestamp'])
    op.create_index('ix_audit_entries_timestamp', 'audit_entries', ['timestamp'])

    # Append-only at the database level too
    op.execute(
        """
        CREATE FUNCTION audit_entries_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_entries is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER audit_entries_no_update_delete
        BEFORE UPDATE OR DELETE ON audit_entries
        FOR EACH ROW EXECUTE FUNCTION audit_entries_append_only()
        """
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.execute('DROP TRIGGER IF EXISTS audit_entries_no_update_delete ON audit_entries')
    op.execute('DROP FUNCTION IF EXISTS audit_entries_append_only()')
    op.drop_table('audit_entries')
    op.drop_table('record_permissions')
    op.drop_table('medical_records')
    op.drop_table('access_requests')
    op.drop_table('doctor_verifications')
    op.drop_table('trusted_doctors')
    op.drop_table('actors')

    bind = op.get_bind()
    for name in (
        'audit_outcome', 'audit_severity', 'audit_target_type', 'audit_actor_role',
        'audit_action', 'record_category', 'access_level', 'access_request_status',
        'verification_status', 'actor_role',
    ):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
