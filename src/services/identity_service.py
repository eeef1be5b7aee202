"""Service for actors and patient trust lists."""

import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from src.models.db.actor import (
    Actor,
    Admin,
    Doctor,
    EmergencyResponder,
    Patient,
)
from src.models.domain.actor import (
    ActorCreate,
    ActorRead,
    ActorRole,
    AdminCreate,
    ClientInfo,
    DoctorCreate,
    EmergencyResponderCreate,
    PatientCreate,
    Principal,
    TrustedDoctorRead,
)
from src.models.domain.audit import (
    AuditEntryCreate,
    AuditSeverity,
    AuditTargetType,
    TrustedDoctorAddedDetails,
)
from src.repositories.actor_repo import ActorRepository
from src.services.audit_service import AuditService, actor_role_of

logger = logging.getLogger(__name__)


class IdentityService:
    """Service for looking up actors and maintaining trust lists.

    Roles are fixed when an actor is created; nothing here changes one.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repo = ActorRepository(session)
        self.audit = AuditService(session)

    async def create_actor(self, data: ActorCreate) -> ActorRead:
        """Register an actor with a fixed role.

        Raises:
            ConflictError: If the email address is already registered
        """
        existing = await self.repo.get_by_email(str(data.email))
        if existing is not None:
            raise ConflictError(detail=f"An actor with email '{data.email}' already exists")

        common = {
            "email": str(data.email),
            "first_name": data.first_name,
            "last_name": data.last_name,
        }
        actor: Actor
        match data:
            case PatientCreate():
                actor = Patient(**common, date_of_birth=data.date_of_birth, phone=data.phone)
            case DoctorCreate():
                actor = Doctor(
                    **common,
                    license_number=data.license_number,
                    specialization=data.specialization,
                    hospital=data.hospital,
                )
            case EmergencyResponderCreate():
                actor = EmergencyResponder(
                    **common,
                    badge_number=data.badge_number,
                    department=data.department,
                    station=data.station,
                )
            case AdminCreate():
                actor = Admin(**common)

        created = await self.repo.create(actor)
        logger.info(
            "Actor registered",
            extra={"actor_id": str(created.id), "role": created.role.value},
        )
        return self._to_read(created)

    async def get_actor(self, actor_id: uuid.UUID) -> ActorRead:
        """Get an actor by ID.

        Raises:
            NotFoundError: If no actor has this ID
        """
        actor = await self.repo.get_by_id(actor_id)
        if actor is None:
            raise NotFoundError(resource="Actor", resource_id=str(actor_id))
        return self._to_read(actor)

    async def is_verified_doctor(self, actor_id: uuid.UUID) -> bool:
        """True only for a doctor whose verification record is ``verified``."""
        doctor = await self.repo.get_doctor(actor_id)
        return doctor is not None and doctor.is_verified

    async def is_in_trust_list(self, patient_id: uuid.UUID, doctor_id: uuid.UUID) -> bool:
        """Check whether a patient has pre-authorized a doctor."""
        return await self.repo.is_trusted(patient_id, doctor_id)

    async def list_trusted_doctors(self, principal: Principal) -> list[TrustedDoctorRead]:
        """List the calling patient's trusted doctors."""
        if principal.role != ActorRole.PATIENT or principal.actor_id is None:
            raise ForbiddenError()
        pairs = await self.repo.list_trusted(principal.actor_id)
        return [self._to_trusted_read(doctor, added_at) for doctor, added_at in pairs]

    async def add_trusted_doctor(
        self,
        principal: Principal,
        doctor_id: uuid.UUID,
        client: ClientInfo,
    ) -> TrustedDoctorRead:
        """Add a doctor to the calling patient's trust list.

        Trusting a doctor only affects requests made afterwards.

        Raises:
            ForbiddenError: If the caller is not a patient
            NotFoundError: If the doctor does not exist
        """
        if principal.role != ActorRole.PATIENT or principal.actor_id is None:
            raise ForbiddenError()

        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.DOCTOR,
            target_id=doctor_id,
            description="Patient added a doctor to their trust list",
            details=TrustedDoctorAddedDetails(doctor_id=doctor_id),
            severity=AuditSeverity.LOW,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        doctor = await self.repo.get_doctor(doctor_id)
        if doctor is None:
            await self.audit.fail(
                entry, NotFoundError(resource="Doctor", resource_id=str(doctor_id))
            )

        await self.repo.add_trusted(principal.actor_id, doctor_id)
        await self.audit.append(entry)

        pairs = await self.repo.list_trusted(principal.actor_id)
        added_at = next(at for d, at in pairs if d.id == doctor_id)
        return self._to_trusted_read(doctor, added_at)

    def _to_read(self, actor: Actor) -> ActorRead:
        """Convert an Actor DB model to ActorRead schema."""
        return ActorRead(
            id=actor.id,
            email=actor.email,
            role=ActorRole(actor.role.value),
            first_name=actor.first_name,
            last_name=actor.last_name,
            is_verified=actor.is_verified,
            created_at=actor.created_at,
        )

    def _to_trusted_read(self, doctor: Doctor, added_at: datetime) -> TrustedDoctorRead:
        return TrustedDoctorRead(
            doctor_id=doctor.id,
            email=doctor.email,
            name=doctor.display_name,
            specialization=doctor.specialization,
            added_at=added_at,
        )
