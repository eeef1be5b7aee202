"""Repository for actor and trust list operations."""

import uuid
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.db.actor import Actor, Doctor, Patient, trusted_doctors


class ActorRepository:
    """Repository for actor database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, actor: Actor) -> Actor:
        """Create a new actor.

        Args:
            actor: The actor to create (a role subclass)

        Returns:
            The created actor
        """
        self.session.add(actor)
        await self.session.flush()
        await self.session.refresh(actor)
        return actor

    async def get_by_id(self, actor_id: uuid.UUID) -> Actor | None:
        """Get an actor of any role by ID."""
        result = await self.session.execute(select(Actor).where(Actor.id == actor_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Actor | None:
        """Get an actor by exact email address."""
        result = await self.session.execute(select(Actor).where(Actor.email == email))
        return result.scalar_one_or_none()

    async def get_doctor(self, doctor_id: uuid.UUID) -> Doctor | None:
        """Get a doctor by ID. Returns None for actors of other roles."""
        result = await self.session.execute(select(Doctor).where(Doctor.id == doctor_id))
        return result.scalar_one_or_none()

    async def get_patient(
        self,
        patient_id: uuid.UUID,
        for_update: bool = False,
    ) -> Patient | None:
        """Get a patient by ID.

        Args:
            patient_id: The patient ID
            for_update: Lock the patient row until the transaction ends. Used
                to serialize access request creation for one patient.

        Returns:
            The patient if found, None otherwise
        """
        query = select(Patient).where(Patient.id == patient_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_patient(self, unique_id: str) -> Patient | None:
        """Resolve a patient from a loose identifier.

        Tries the value as a patient ID first, then as a case-insensitive
        fragment of the patient's email.

        Args:
            unique_id: Patient ID string or part of an email address

        Returns:
            The matching patient, or None when no patient or more than one
            patient matches
        """
        try:
            patient_id = uuid.UUID(unique_id.strip())
        except ValueError:
            patient_id = None

        if patient_id is not None:
            patient = await self.get_patient(patient_id)
            if patient is not None:
                return patient

        result = await self.session.execute(
            select(Patient)
            .where(Patient.email.icontains(unique_id.strip(), autoescape=True))
            .order_by(Patient.created_at)
            .limit(2)
        )
        # An ambiguous fragment must not resolve to one of several patients
        matches = list(result.scalars().all())
        return matches[0] if len(matches) == 1 else None

    async def is_trusted(self, patient_id: uuid.UUID, doctor_id: uuid.UUID) -> bool:
        """Check whether a doctor is on a patient's trust list."""
        result = await self.session.execute(
            select(trusted_doctors.c.doctor_id).where(
                and_(
                    trusted_doctors.c.patient_id == patient_id,
                    trusted_doctors.c.doctor_id == doctor_id,
                )
            )
        )
        return result.first() is not None

    async def add_trusted(self, patient_id: uuid.UUID, doctor_id: uuid.UUID) -> bool:
        """Add a doctor to a patient's trust list.

        Returns:
            True if the doctor was added, False if already present
        """
        result = await self.session.execute(
            insert(trusted_doctors)
            .values(patient_id=patient_id, doctor_id=doctor_id)
            .on_conflict_do_nothing(index_elements=["patient_id", "doctor_id"])
            .returning(trusted_doctors.c.doctor_id)
        )
        return result.first() is not None

    async def list_trusted(self, patient_id: uuid.UUID) -> list[tuple[Doctor, datetime]]:
        """List a patient's trusted doctors with the time each was added.

        Returns:
            (doctor, added_at) pairs, most recently added first
        """
        result = await self.session.execute(
            select(Doctor, trusted_doctors.c.added_at)
            .join(trusted_doctors, trusted_doctors.c.doctor_id == Doctor.id)
            .where(trusted_doctors.c.patient_id == patient_id)
            .order_by(trusted_doctors.c.added_at.desc())
        )
        return [(doctor, added_at) for doctor, added_at in result.all()]
