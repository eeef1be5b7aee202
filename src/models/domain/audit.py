"""Audit trail Pydantic schemas.

Entry details are a closed set of payload models, one per action kind,
discriminated on ``kind``. Consumers can match on the payload class and
handle every kind exhaustively.
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class AuditAction(StrEnum):
    """Closed set of audited decisions."""

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


class AuditActorRole(StrEnum):
    """Role recorded on an entry."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    EMERGENCY = "emergency"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditTargetType(StrEnum):
    """Kind of entity an entry is about."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    ACCESS_REQUEST = "access_request"
    VERIFICATION = "verification"
    MEDICAL_RECORD = "medical_record"
    ADMIN = "admin"


class AuditSeverity(StrEnum):
    """Severity of an audited decision."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditOutcome(StrEnum):
    """Outcome of an audited decision."""

    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class _Details(BaseModel):
    """Fields every payload may carry.

    ``error`` is set on failure entries and holds the caller-facing message.
    """

    model_config = ConfigDict(use_enum_values=True)

    error: str | None = None


class VerificationSubmittedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_SUBMITTED"] = "DOCTOR_VERIFICATION_SUBMITTED"
    document_types: list[str] = Field(default_factory=list)
    document_count: int = 0
    previous_status: str | None = None
    warnings: list[str] = Field(default_factory=list)


class VerificationApprovedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_APPROVED"] = "DOCTOR_VERIFICATION_APPROVED"
    previous_status: str | None = None
    notes: str | None = None


class VerificationRejectedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_REJECTED"] = "DOCTOR_VERIFICATION_REJECTED"
    previous_status: str | None = None
    reason: str | None = None


class VerificationResubmissionRequestedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_RESUBMISSION_REQUESTED"] = (
        "DOCTOR_VERIFICATION_RESUBMISSION_REQUESTED"
    )
    previous_status: str | None = None
    notes: str | None = None


class VerificationSuspendedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_SUSPENDED"] = "DOCTOR_VERIFICATION_SUSPENDED"
    previous_status: str | None = None
    reason: str | None = None


class VerificationStatusChangedDetails(_Details):
    kind: Literal["DOCTOR_VERIFICATION_STATUS_CHANGED"] = "DOCTOR_VERIFICATION_STATUS_CHANGED"
    previous_status: str | None = None
    new_status: str | None = None


class AccessRequestCreatedDetails(_Details):
    kind: Literal["PATIENT_ACCESS_REQUEST_CREATED"] = "PATIENT_ACCESS_REQUEST_CREATED"
    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    access_level: str | None = None
    record_categories: list[str] = Field(default_factory=list)
    auto_approved: bool = False
    expires_at: datetime | None = None


class AccessRequestApprovedDetails(_Details):
    kind: Literal["PATIENT_ACCESS_REQUEST_APPROVED"] = "PATIENT_ACCESS_REQUEST_APPROVED"
    doctor_id: UUID | None = None
    duration_days: int | None = None
    expires_at: datetime | None = None
    added_to_trusted: bool = False
    records_granted: int = 0
    current_state: str | None = None


class AccessRequestRejectedDetails(_Details):
    kind: Literal["PATIENT_ACCESS_REQUEST_REJECTED"] = "PATIENT_ACCESS_REQUEST_REJECTED"
    doctor_id: UUID | None = None
    reason: str | None = None
    current_state: str | None = None


class AccessRevokedDetails(_Details):
    kind: Literal["PATIENT_REVOKED_ACCESS"] = "PATIENT_REVOKED_ACCESS"
    doctor_id: UUID | None = None
    records_revoked: int = 0
    current_state: str | None = None


class TrustedDoctorAddedDetails(_Details):
    kind: Literal["PATIENT_TRUSTED_DOCTOR_ADDED"] = "PATIENT_TRUSTED_DOCTOR_ADDED"
    doctor_id: UUID | None = None
    via_access_request: UUID | None = None


class PatientDataAccessedDetails(_Details):
    kind: Literal["PATIENT_DATA_ACCESSED"] = "PATIENT_DATA_ACCESSED"
    record_count: int = 0
    purpose: str | None = None


class MedicalRecordCreatedDetails(_Details):
    kind: Literal["MEDICAL_RECORD_CREATED"] = "MEDICAL_RECORD_CREATED"
    category: str | None = None
    file_count: int = 0
    is_emergency_visible: bool = False
    grants_applied: int = 0


class _RecordAccessDetails(_Details):
    patient_id: UUID | None = None
    file_name: str | None = None
    emergency_access: bool = False
    token_fingerprint: str | None = None


class RecordViewedDetails(_RecordAccessDetails):
    kind: Literal["MEDICAL_RECORD_VIEWED"] = "MEDICAL_RECORD_VIEWED"
    purpose: str | None = None


class RecordDownloadedDetails(_RecordAccessDetails):
    kind: Literal["MEDICAL_RECORD_DOWNLOADED"] = "MEDICAL_RECORD_DOWNLOADED"
    file_size: int | None = None
    mime_type: str | None = None


class AdminActionDetails(_Details):
    kind: Literal["ADMIN_ACTION"] = "ADMIN_ACTION"
    note: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


AuditDetails = Annotated[
    VerificationSubmittedDetails
    | VerificationApprovedDetails
    | VerificationRejectedDetails
    | VerificationResubmissionRequestedDetails
    | VerificationSuspendedDetails
    | VerificationStatusChangedDetails
    | AccessRequestCreatedDetails
    | AccessRequestApprovedDetails
    | AccessRequestRejectedDetails
    | AccessRevokedDetails
    | TrustedDoctorAddedDetails
    | PatientDataAccessedDetails
    | MedicalRecordCreatedDetails
    | RecordViewedDetails
    | RecordDownloadedDetails
    | AdminActionDetails,
    Field(discriminator="kind"),
]

audit_details_adapter: TypeAdapter[AuditDetails] = TypeAdapter(AuditDetails)


class AuditEntryCreate(BaseModel):
    """An entry about to be appended.

    The action is taken from the payload so the two can never disagree.
    """

    actor_id: UUID | None = None
    actor_role: AuditActorRole | None = None
    target_type: AuditTargetType | None = None
    target_id: UUID | None = None
    description: str = Field(..., min_length=1)
    details: AuditDetails
    severity: AuditSeverity = AuditSeverity.LOW
    status: AuditOutcome = AuditOutcome.SUCCESS
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def action(self) -> AuditAction:
        return AuditAction(self.details.kind)


class AuditEntryRead(BaseModel):
    """Schema for reading an audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: AuditAction
    actor_id: UUID | None = None
    actor_role: AuditActorRole | None = None
    target_type: AuditTargetType | None = None
    target_id: UUID | None = None
    description: str
    details: AuditDetails
    severity: AuditSeverity
    status: AuditOutcome
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime


class AuditQuery(BaseModel):
    """Filters for querying the audit trail. Dates are inclusive."""

    action: AuditAction | None = None
    actor_role: AuditActorRole | None = None
    target_type: AuditTargetType | None = None
    severity: AuditSeverity | None = None
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def check_range(self) -> "AuditQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class AdminNoteCreate(BaseModel):
    """Schema for an admin's manual audit note."""

    description: str = Field(..., min_length=1, max_length=2000)
    target_type: AuditTargetType | None = None
    target_id: UUID | None = None
    severity: AuditSeverity = AuditSeverity.MEDIUM
    extra: dict[str, Any] = Field(default_factory=dict)
