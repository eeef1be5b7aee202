"""Admin dashboard Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.models.domain.access_request import AccessRequestStatus
from src.models.domain.audit import AuditAction, AuditSeverity
from src.models.domain.verification import VerificationStatus


class VerificationStats(BaseModel):
    """Doctor verification counts.

    Doctors who never submitted count as ``not_submitted``.
    """

    total: int
    by_status: dict[VerificationStatus, int]
    submitted_this_month: int = Field(
        ..., description="Records whose latest submission falls in the current UTC month"
    )


class AccessRequestStats(BaseModel):
    """Access request counts by effective status."""

    total: int
    by_status: dict[AccessRequestStatus, int]


class PendingVerificationItem(BaseModel):
    """Verification waiting for an administrator."""

    id: UUID
    doctor_id: UUID
    doctor_name: str
    doctor_email: str
    status: VerificationStatus
    submitted_at: datetime | None = None
    document_count: int


class PendingAccessRequestItem(BaseModel):
    """Access request waiting for a patient's answer."""

    id: UUID
    doctor_id: UUID
    doctor_name: str | None = None
    patient_id: UUID
    patient_name: str | None = None
    reason: str
    requested_at: datetime


class FlaggedDoctor(BaseModel):
    """Doctor whose access requests patients keep rejecting."""

    doctor_id: UUID
    doctor_name: str
    doctor_email: str
    rejection_count: int


class CriticalAuditItem(BaseModel):
    """High or critical severity audit entry."""

    id: UUID
    action: AuditAction
    actor_id: UUID | None = None
    actor_name: str = Field(..., description="'System' when no actor is recorded")
    description: str
    severity: AuditSeverity
    timestamp: datetime


class DashboardStats(BaseModel):
    """Snapshot shown on the admin dashboard."""

    verifications: VerificationStats
    access_requests: AccessRequestStats
    pending_verifications: list[PendingVerificationItem]
    pending_access_requests: list[PendingAccessRequestItem]
    flagged_doctors: list[FlaggedDoctor]
    critical_audit_entries: list[CriticalAuditItem]
    generated_at: datetime
