"""Database models package."""

from src.models.db.access_request import (
    AccessLevel,
    AccessRequest,
    AccessRequestStatus,
    RecordCategory,
)
from src.models.db.actor import (
    Actor,
    ActorRole,
    Admin,
    Doctor,
    EmergencyResponder,
    Patient,
    trusted_doctors,
)
from src.models.db.audit import (
    AuditAction,
    AuditActorRole,
    AuditEntry,
    AuditOutcome,
    AuditSeverity,
    AuditTargetType,
)
from src.models.db.base import Base, TimestampMixin
from src.models.db.medical_record import MedicalRecord, RecordPermission
from src.models.db.verification import DocumentType, DoctorVerification, VerificationStatus

__all__ = [
    "AccessLevel",
    "AccessRequest",
    "AccessRequestStatus",
    "Actor",
    "ActorRole",
    "Admin",
    "AuditAction",
    "AuditActorRole",
    "AuditEntry",
    "AuditOutcome",
    "AuditSeverity",
    "AuditTargetType",
    "Base",
    "Doctor",
    "DoctorVerification",
    "DocumentType",
    "EmergencyResponder",
    "MedicalRecord",
    "Patient",
    "RecordCategory",
    "RecordPermission",
    "TimestampMixin",
    "VerificationStatus",
    "trusted_doctors",
]
