"""Actor database models.

Actors share one ``actors`` table and are discriminated on ``role``
(single-table inheritance). Role-specific attributes live on the subclass
for that role, so a ``Doctor`` has a license number and a ``Patient`` does
not. The role is fixed by the subclass at construction and no operation
changes it.
"""

import enum
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Table, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.db.base import Base, TimestampMixin, str_enum

if TYPE_CHECKING:
    from src.models.db.verification import DoctorVerification, VerificationStatus


class ActorRole(enum.StrEnum):
    """Actor role enumeration."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    EMERGENCY = "emergency"
    ADMIN = "admin"


# A patient's pre-authorized doctors. Rows are only ever added.
trusted_doctors = Table(
    "trusted_doctors",
    Base.metadata,
    Column(
        "patient_id",
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "doctor_id",
        UUID(as_uuid=True),
        ForeignKey("actors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "added_at",
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    ),
)


class Actor(Base, TimestampMixin):
    """Common identity core for every role."""

    __tablename__ = "actors"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[ActorRole] = mapped_column(
        str_enum(ActorRole, "actor_role"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __mapper_args__ = {"polymorphic_on": "role", "with_polymorphic": "*"}

    @property
    def display_name(self) -> str:
        """Human readable name, falling back to the email address."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.email

    @property
    def is_verified(self) -> bool:
        """Only doctors carry a verification state."""
        return False


class Patient(Actor):
    """Patient actor. Owns medical records and a trust list."""

    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __mapper_args__ = {"polymorphic_identity": ActorRole.PATIENT}


class Doctor(Actor):
    """Doctor actor.

    Verification state is read from the doctor's ``DoctorVerification``
    row; nothing on the actor row duplicates it.
    """

    license_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    specialization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hospital: Mapped[str | None] = mapped_column(String(255), nullable=True)

    verification: Mapped["DoctorVerification | None"] = relationship(
        back_populates="doctor",
        lazy="selectin",
        uselist=False,
    )

    __mapper_args__ = {"polymorphic_identity": ActorRole.DOCTOR}

    @property
    def verification_status(self) -> "VerificationStatus":
        from src.models.db.verification import VerificationStatus

        if self.verification is None:
            return VerificationStatus.NOT_SUBMITTED
        return self.verification.status

    @property
    def is_verified(self) -> bool:
        from src.models.db.verification import VerificationStatus

        return self.verification_status == VerificationStatus.VERIFIED


class EmergencyResponder(Actor):
    """Emergency responder actor."""

    badge_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    station: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __mapper_args__ = {"polymorphic_identity": ActorRole.EMERGENCY}


class Admin(Actor):
    """Administrator. Reviews verifications and reads the audit trail."""

    __mapper_args__ = {"polymorphic_identity": ActorRole.ADMIN}


ACTOR_CLASSES: dict[ActorRole, type[Actor]] = {
    ActorRole.PATIENT: Patient,
    ActorRole.DOCTOR: Doctor,
    ActorRole.EMERGENCY: EmergencyResponder,
    ActorRole.ADMIN: Admin,
}
