"""Doctor verification Pydantic schemas."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VerificationStatus(StrEnum):
    """Lifecycle state of a doctor's credential review."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    NEED_RESUBMISSION = "need_resubmission"
    VERIFIED = "verified"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class ReviewAction(StrEnum):
    """Decisions an admin can take on a verification record."""

    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_RESUBMISSION = "request_resubmission"
    SUSPEND = "suspend"


class DocumentUpload(BaseModel):
    """A document reference supplied by the doctor.

    The file itself already lives in the blob store; only its descriptor
    is submitted here. ``document_type`` is validated by the service so
    that one bad entry does not reject the whole submission.
    """

    document_type: str = Field(
        ...,
        description="MRN, GOVERNMENT_ID, HOSPITAL_ID or MEDICAL_CERTIFICATE",
    )
    file_name: str = Field(..., min_length=1, max_length=255, description="Stored file name")
    file_url: str = Field(..., min_length=1, max_length=1024, description="Blob store reference")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str = Field(..., description="MIME type of the file")


class VerificationSubmit(BaseModel):
    """Schema for a doctor's document submission."""

    documents: list[DocumentUpload] = Field(..., min_length=1, description="Documents to submit")


class VerificationDocument(BaseModel):
    """A stored document descriptor."""

    document_type: str
    file_name: str
    file_url: str
    file_size: int
    mime_type: str
    uploaded_at: datetime


class SubmissionHistoryEntry(BaseModel):
    """A superseded submission round."""

    submitted_at: datetime | None = None
    archived_at: datetime
    status: VerificationStatus
    documents: list[VerificationDocument] = Field(default_factory=list)
    rejection_reason: str | None = None
    reviewer_notes: str | None = None


class VerificationReview(BaseModel):
    """Schema for an admin review decision."""

    action: ReviewAction = Field(..., description="Review decision")
    reason: str | None = Field(
        None,
        max_length=1000,
        description="Required for reject and suspend",
    )
    notes: str | None = Field(
        None,
        max_length=4000,
        description="Required for request_resubmission; optional otherwise",
    )

    @model_validator(mode="after")
    def require_explanations(self) -> "VerificationReview":
        if self.action in (ReviewAction.REJECT, ReviewAction.SUSPEND) and not (
            self.reason and self.reason.strip()
        ):
            raise ValueError(f"A reason is required to {self.action.value}")
        if self.action == ReviewAction.REQUEST_RESUBMISSION and not (
            self.notes and self.notes.strip()
        ):
            raise ValueError("Notes are required when requesting resubmission")
        return self


class VerificationRead(BaseModel):
    """Schema for reading a verification record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = Field(None, description="Verification record ID, None if never submitted")
    doctor_id: UUID = Field(..., description="Doctor the record belongs to")
    status: VerificationStatus = Field(..., description="Current verification state")
    documents: list[VerificationDocument] = Field(default_factory=list)
    submission_history: list[SubmissionHistoryEntry] = Field(default_factory=list)
    submitted_at: datetime | None = None
    reviewer_notes: str | None = None
    rejection_reason: str | None = None
    suspension_reason: str | None = None
    verified_at: datetime | None = None
    rejected_at: datetime | None = None
    suspended_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    last_reviewed_by: UUID | None = None


class VerificationSubmitResult(BaseModel):
    """Result of a document submission."""

    verification: VerificationRead
    accepted_count: int = Field(..., description="Documents accepted in this round")
    warnings: list[str] = Field(default_factory=list, description="Documents that were dropped")


class VerificationSummary(BaseModel):
    """Row in the admin verification queue."""

    id: UUID
    doctor_id: UUID
    doctor_email: str
    doctor_name: str
    specialization: str | None = None
    hospital: str | None = None
    status: VerificationStatus
    document_count: int
    submitted_at: datetime | None = None
    last_reviewed_at: datetime | None = None
