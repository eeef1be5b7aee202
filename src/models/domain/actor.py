"""Actor Pydantic schemas."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ActorRole(StrEnum):
    """Actor role enumeration."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    EMERGENCY = "emergency"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Who is performing an operation.

    ``actor_id`` is None only for anonymous emergency-token access.
    """

    actor_id: UUID | None
    role: ActorRole
    emergency_token_fingerprint: str | None = None

    @property
    def is_emergency_bypass(self) -> bool:
        """True when acting on an emergency token rather than a session."""
        return self.actor_id is None and self.role == ActorRole.EMERGENCY


@dataclass(frozen=True)
class ClientInfo:
    """Network origin of a request, recorded on audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None


class ActorBase(BaseModel):
    """Fields shared by every role."""

    email: EmailStr = Field(..., description="Actor email address")
    first_name: str | None = Field(None, max_length=100, description="Given name")
    last_name: str | None = Field(None, max_length=100, description="Family name")


class PatientCreate(ActorBase):
    """Schema for registering a patient."""

    role: Literal["patient"] = "patient"
    date_of_birth: date | None = Field(None, description="Date of birth")
    phone: str | None = Field(None, max_length=50, description="Contact phone")


class DoctorCreate(ActorBase):
    """Schema for registering a doctor."""

    role: Literal["doctor"] = "doctor"
    license_number: str | None = Field(None, max_length=100, description="License number")
    specialization: str | None = Field(None, max_length=255, description="Specialization")
    hospital: str | None = Field(None, max_length=255, description="Affiliated hospital")


class EmergencyResponderCreate(ActorBase):
    """Schema for registering an emergency responder."""

    role: Literal["emergency"] = "emergency"
    badge_number: str | None = Field(None, max_length=100, description="Badge number")
    department: str | None = Field(None, max_length=255, description="Department")
    station: str | None = Field(None, max_length=255, description="Station")


class AdminCreate(ActorBase):
    """Schema for registering an administrator."""

    role: Literal["admin"] = "admin"


ActorCreate = Annotated[
    PatientCreate | DoctorCreate | EmergencyResponderCreate | AdminCreate,
    Field(discriminator="role"),
]


class ActorRead(BaseModel):
    """Schema for reading actor identity data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Actor unique identifier")
    email: str = Field(..., description="Actor email address")
    role: ActorRole = Field(..., description="Actor role")
    first_name: str | None = Field(None, description="Given name")
    last_name: str | None = Field(None, description="Family name")
    is_verified: bool = Field(..., description="Derived from the doctor's verification record")
    created_at: datetime = Field(..., description="When the actor registered")


class TrustedDoctorAdd(BaseModel):
    """Schema for adding a doctor to a patient's trust list."""

    doctor_id: UUID = Field(..., description="ID of the doctor to trust")


class TrustedDoctorRead(BaseModel):
    """A doctor on a patient's trust list."""

    doctor_id: UUID = Field(..., description="ID of the trusted doctor")
    email: str = Field(..., description="Doctor email address")
    name: str = Field(..., description="Doctor display name")
    specialization: str | None = Field(None, description="Doctor specialization")
    added_at: datetime = Field(..., description="When the doctor was trusted")
