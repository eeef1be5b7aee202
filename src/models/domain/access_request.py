"""Patient access request Pydantic schemas."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccessRequestStatus(StrEnum):
    """Status of an access request as seen by readers."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    ACCESS_REVOKED = "access_revoked"


class AccessLevel(StrEnum):
    """Level of access requested or granted."""

    READ = "read"
    WRITE = "write"


class RecordCategory(StrEnum):
    """Medical record categories. ``all`` covers every category."""

    ALL = "all"
    GENERAL = "general"
    LAB_RESULTS = "lab-results"
    PRESCRIPTION = "prescription"
    IMAGING = "imaging"
    EMERGENCY = "emergency"
    CONSULTATION = "consultation"


class AccessRequestCreate(BaseModel):
    """Schema for a doctor's request to access a patient's records."""

    patient_id: UUID | None = Field(None, description="Patient identifier")
    patient_unique_id: str | None = Field(
        None,
        min_length=3,
        max_length=255,
        description="Alternative lookup: patient id string or part of the patient's email",
    )
    reason: str | None = Field(None, max_length=2000, description="Why access is needed")
    access_level: AccessLevel = Field(AccessLevel.READ, description="Requested access level")
    record_categories: list[RecordCategory] = Field(
        default_factory=lambda: [RecordCategory.ALL],
        min_length=1,
        description="Record categories requested",
    )

    @model_validator(mode="after")
    def require_patient_reference(self) -> "AccessRequestCreate":
        if self.patient_id is None and not self.patient_unique_id:
            raise ValueError("Patient ID or unique ID is required")
        return self


class AccessRequestApprove(BaseModel):
    """Schema for a patient approving a request."""

    duration_days: int | None = Field(
        None,
        ge=1,
        description="Grant duration; defaults to the configured 30 days",
    )
    add_to_trusted: bool = Field(
        False,
        description="Trust this doctor so future requests auto-approve",
    )


class AccessRequestReject(BaseModel):
    """Schema for a patient rejecting a request."""

    reason: str | None = Field(None, max_length=1000, description="Why access was refused")


class AccessRequestRead(BaseModel):
    """Schema for reading an access request.

    ``status`` is the effective status: an approved request whose expiry
    has passed reads as ``expired``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Access request unique identifier")
    doctor_id: UUID = Field(..., description="Requesting doctor")
    patient_id: UUID = Field(..., description="Target patient")
    status: AccessRequestStatus = Field(..., description="Effective status")
    reason: str = Field(..., description="Reason given by the doctor")
    access_level: AccessLevel = Field(..., description="Requested access level")
    record_categories: list[RecordCategory] = Field(..., description="Requested categories")
    requested_at: datetime = Field(..., description="When the request was created")
    approved_at: datetime | None = Field(None, description="When it was approved")
    rejected_at: datetime | None = Field(None, description="When it was rejected")
    rejection_reason: str | None = Field(None, description="Patient's rejection reason")
    revoked_at: datetime | None = Field(None, description="When approved access was revoked")
    expires_at: datetime | None = Field(None, description="When the grant lapses")
    auto_approved: bool = Field(..., description="Approved via the patient's trust list")
    doctor_name: str | None = Field(None, description="Requesting doctor's display name")
    patient_name: str | None = Field(None, description="Target patient's display name")


class AccessRequestCreated(BaseModel):
    """Response to a create call."""

    access_request: AccessRequestRead
    message: str
