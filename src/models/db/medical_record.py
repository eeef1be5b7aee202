"""Medical record and per-record permission database models."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.db.access_request import AccessLevel, RecordCategory
from src.models.db.base import Base, TimestampMixin, str_enum

if TYPE_CHECKING:
    from src.models.db.actor import Patient


class MedicalRecord(Base, TimestampMixin):
    """A patient's clinical document set.

    ``files`` holds blob-store references (name, MIME type, size, path);
    the service never reads file bytes.
    """

    __tablename__ = "medical_records"

    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[RecordCategory] = mapped_column(
        str_enum(RecordCategory, "record_category"),
        nullable=False,
        default=RecordCategory.GENERAL,
    )
    record_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    authored_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    is_emergency_visible: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    files: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )

    patient: Mapped["Patient"] = relationship(lazy="selectin")
    permissions: Mapped[list["RecordPermission"]] = relationship(
        back_populates="record",
        lazy="selectin",
        order_by="RecordPermission.created_at",
    )

    def find_file(self, file_name: str) -> dict[str, Any] | None:
        """Look up a file reference by its stored name."""
        return next((f for f in self.files if f.get("file_name") == file_name), None)

    def permission_for(self, doctor_id: uuid.UUID) -> "RecordPermission | None":
        """The overlay entry for a doctor, if one was ever created."""
        return next((p for p in self.permissions if p.doctor_id == doctor_id), None)


class RecordPermission(Base, TimestampMixin):
    """A doctor's grant on one medical record.

    Rows are refreshed on approval and marked ungranted on revocation; they
    are never deleted. A past ``expires_at`` makes the grant void at read
    time even though ``granted`` stays true.
    """

    __tablename__ = "record_permissions"

    record_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("medical_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    granted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    access_level: Mapped[AccessLevel] = mapped_column(
        str_enum(AccessLevel, "access_level"),
        nullable=False,
        default=AccessLevel.READ,
    )
    access_request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("access_requests.id", ondelete="SET NULL"),
        nullable=True,
    )

    record: Mapped["MedicalRecord"] = relationship(back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("record_id", "doctor_id", name="uq_record_permissions_record_doctor"),
    )
