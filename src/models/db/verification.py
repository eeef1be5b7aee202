"""Doctor verification database model."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.db.base import Base, TimestampMixin, str_enum

if TYPE_CHECKING:
    from src.models.db.actor import Doctor


class VerificationStatus(enum.StrEnum):
    """Lifecycle state of a doctor's credential review."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    NEED_RESUBMISSION = "need_resubmission"
    VERIFIED = "verified"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class DocumentType(enum.StrEnum):
    """Credential documents a doctor can submit."""

    MRN = "MRN"
    GOVERNMENT_ID = "GOVERNMENT_ID"
    HOSPITAL_ID = "HOSPITAL_ID"
    MEDICAL_CERTIFICATE = "MEDICAL_CERTIFICATE"


class DoctorVerification(Base, TimestampMixin):
    """One verification record per doctor.

    ``documents`` holds the current submission round. Earlier rounds are
    appended to ``submission_history`` and never removed. JSONB columns are
    always reassigned, never mutated in place, so changes are flushed.
    """

    __tablename__ = "doctor_verifications"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    status: Mapped[VerificationStatus] = mapped_column(
        str_enum(VerificationStatus, "verification_status"),
        nullable=False,
        default=VerificationStatus.NOT_SUBMITTED,
    )
    documents: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    submission_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    suspension_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    verified_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rejected_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    suspended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )

    doctor: Mapped["Doctor"] = relationship(
        back_populates="verification",
        lazy="selectin",
    )
