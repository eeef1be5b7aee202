"""Audit trail database model."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text, event, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.db.base import Base, str_enum


class AuditAction(enum.StrEnum):
    """Closed set of security-relevant decisions that are recorded."""

    DOCTOR_VERIFICATION_SUBMITTED = "DOCTOR_VERIFICATION_SUBMITTED"
    DOCTOR_VERIFICATION_APPROVED = "DOCTOR_VERIFICATION_APPROVED"
    DOCTOR_VERIFICATION_REJECTED = "DOCTOR_VERIFICATION_REJECTED"
    DOCTOR_VERIFICATION_RESUBMISSION_REQUESTED = "DOCTOR_VERIFICATION_RESUBMISSION_REQUESTED"
    DOCTOR_VERIFICATION_SUSPENDED = "DOCTOR_VERIFICATION_SUSPENDED"
    DOCTOR_VERIFICATION_STATUS_CHANGED = "DOCTOR_VERIFICATION_STATUS_CHANGED"
    PATIENT_ACCESS_REQUEST_CREATED = "PATIENT_ACCESS_REQUEST_CREATED"
    PATIENT_ACCESS_REQUEST_APPROVED = "PATIENT_ACCESS_REQUEST_APPROVED"
    PATIENT_ACCESS_REQUEST_REJECTED = "PATIENT_ACCESS_REQUEST_REJECTED"
    PATIENT_REVOKED_ACCESS = "PATIENT_REVOKED_ACCESS"
    PATIENT_TRUSTED_DOCTOR_ADDED = "PATIENT_TRUSTED_DOCTOR_ADDED"
    PATIENT_DATA_ACCESSED = "PATIENT_DATA_ACCESSED"
    MEDICAL_RECORD_CREATED = "MEDICAL_RECORD_CREATED"
    MEDICAL_RECORD_VIEWED = "MEDICAL_RECORD_VIEWED"
    MEDICAL_RECORD_DOWNLOADED = "MEDICAL_RECORD_DOWNLOADED"
    ADMIN_ACTION = "ADMIN_ACTION"


class AuditActorRole(enum.StrEnum):
    """Role of whoever triggered the decision. ``system`` for automated actions."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    EMERGENCY = "emergency"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditTargetType(enum.StrEnum):
    """Kind of entity the decision was about."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    ACCESS_REQUEST = "access_request"
    VERIFICATION = "verification"
    MEDICAL_RECORD = "medical_record"
    ADMIN = "admin"


class AuditSeverity(enum.StrEnum):
    """Severity of an audited decision."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditOutcome(enum.StrEnum):
    """Outcome of the audited decision."""

    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class AuditEntry(Base):
    """Immutable record of one security-relevant decision.

    ``actor_id`` deliberately has no foreign key: entries must outlive and
    never be rewritten by changes to the actors table. Updates and deletes
    through the ORM are refused by the listeners below.
    """

    __tablename__ = "audit_entries"

    action: Mapped[AuditAction] = mapped_column(
        str_enum(AuditAction, "audit_action"),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    actor_role: Mapped[AuditActorRole | None] = mapped_column(
        str_enum(AuditActorRole, "audit_actor_role"),
        nullable=True,
    )
    target_type: Mapped[AuditTargetType | None] = mapped_column(
        str_enum(AuditTargetType, "audit_target_type"),
        nullable=True,
    )
    target_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
    severity: Mapped[AuditSeverity] = mapped_column(
        str_enum(AuditSeverity, "audit_severity"),
        nullable=False,
        default=AuditSeverity.LOW,
    )
    status: Mapped[AuditOutcome] = mapped_column(
        str_enum(AuditOutcome, "audit_outcome"),
        nullable=False,
        default=AuditOutcome.SUCCESS,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_audit_entries_action_timestamp", "action", "timestamp"),
        Index("ix_audit_entries_actor_timestamp", "actor_id", "timestamp"),
        Index("ix_audit_entries_target_timestamp", "target_id", "timestamp"),
        Index("ix_audit_entries_timestamp", "timestamp"),
    )


class AuditTrailImmutableError(RuntimeError):
    """Raised when code attempts to modify or delete an audit entry."""


@event.listens_for(AuditEntry, "before_update")
def _refuse_update(mapper: Any, connection: Any, target: AuditEntry) -> None:  # noqa: ARG001
    raise AuditTrailImmutableError(f"Audit entry {target.id} cannot be modified")


@event.listens_for(AuditEntry, "before_delete")
def _refuse_delete(mapper: Any, connection: Any, target: AuditEntry) -> None:  # noqa: ARG001
    raise AuditTrailImmutableError(f"Audit entry {target.id} cannot be deleted")
