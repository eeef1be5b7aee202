"""Patient access request (consent ledger) database model."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.db.base import Base, TimestampMixin, str_enum

if TYPE_CHECKING:
    from src.models.db.actor import Doctor, Patient


class AccessRequestStatus(enum.StrEnum):
    """State of a doctor's request to read a patient's records."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    ACCESS_REVOKED = "access_revoked"


class AccessLevel(enum.StrEnum):
    """Level of access requested or granted."""

    READ = "read"
    WRITE = "write"


class RecordCategory(enum.StrEnum):
    """Medical record categories. ``all`` is only meaningful on requests."""

    ALL = "all"
    GENERAL = "general"
    LAB_RESULTS = "lab-results"
    PRESCRIPTION = "prescription"
    IMAGING = "imaging"
    EMERGENCY = "emergency"
    CONSULTATION = "consultation"


class AccessRequest(Base, TimestampMixin):
    """One request episode between a doctor and a patient.

    Rows are never deleted. ``status`` only moves out of ``pending`` through
    a conditional update, so concurrent responses cannot both succeed.
    An ``approved`` row whose ``expires_at`` has passed reads as expired
    without its stored status changing.
    """

    __tablename__ = "access_requests"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[AccessRequestStatus] = mapped_column(
        str_enum(AccessRequestStatus, "access_request_status"),
        nullable=False,
        default=AccessRequestStatus.PENDING,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    access_level: Mapped[AccessLevel] = mapped_column(
        str_enum(AccessLevel, "access_level"),
        nullable=False,
        default=AccessLevel.READ,
    )
    record_categories: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=lambda: [RecordCategory.ALL.value],
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    auto_approved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    user_agent: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
    )

    doctor: Mapped["Doctor"] = relationship(
        foreign_keys=[doctor_id],
        lazy="selectin",
    )
    patient: Mapped["Patient"] = relationship(
        foreign_keys=[patient_id],
        lazy="selectin",
    )

    __table_args__ = (
        # Duplicate-suppression lookups: pending requests for a pair, newest first
        Index(
            "ix_access_requests_doctor_patient_status_requested",
            "doctor_id",
            "patient_id",
            "status",
            "requested_at",
        ),
    )
