"""Repository for doctor verification operations."""

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.db.actor import Doctor
from src.models.db.verification import DoctorVerification, VerificationStatus


class VerificationRepository:
    """Repository for doctor verification database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, verification: DoctorVerification) -> DoctorVerification:
        """Create a verification record.

        Args:
            verification: The verification record to create

        Returns:
            The created verification record
        """
        self.session.add(verification)
        await self.session.flush()
        await self.session.refresh(verification)
        return verification

    async def save(self, verification: DoctorVerification) -> DoctorVerification:
        """Flush pending changes on a loaded record and reload it."""
        await self.session.flush()
        await self.session.refresh(verification)
        return verification

    async def get_by_id(
        self,
        verification_id: uuid.UUID,
        for_update: bool = False,
    ) -> DoctorVerification | None:
        """Get a verification record by its own ID.

        Args:
            verification_id: The verification record ID
            for_update: Lock the row until the transaction ends

        Returns:
            The verification record if found, None otherwise
        """
        query = select(DoctorVerification).where(DoctorVerification.id == verification_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_doctor(
        self,
        doctor_id: uuid.UUID,
        for_update: bool = False,
    ) -> DoctorVerification | None:
        """Get the verification record of a doctor.

        Args:
            doctor_id: The doctor's actor ID
            for_update: Lock the row until the transaction ends

        Returns:
            The verification record if one was ever submitted, None otherwise
        """
        query = select(DoctorVerification).where(DoctorVerification.doctor_id == doctor_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_by_status(
        self,
        status: VerificationStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[DoctorVerification]:
        """List verification records, most recently submitted first.

        Args:
            status: Optional status filter
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            List of verification records
        """
        query = select(DoctorVerification)
        if status is not None:
            query = query.where(DoctorVerification.status == status)
        query = (
            query.order_by(
                DoctorVerification.submitted_at.desc().nulls_last(),
                DoctorVerification.id,
            )
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_status(self, status: VerificationStatus | None = None) -> int:
        """Count verification records, optionally by status."""
        query = select(func.count(DoctorVerification.id))
        if status is not None:
            query = query.where(DoctorVerification.status == status)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def count_grouped_by_status(self) -> dict[VerificationStatus, int]:
        """Count verification records per status. Empty statuses are absent."""
        result = await self.session.execute(
            select(DoctorVerification.status, func.count(DoctorVerification.id)).group_by(
                DoctorVerification.status
            )
        )
        return {status: count for status, count in result.all()}

    async def count_doctors_without_record(self) -> int:
        """Count doctors who never submitted verification documents."""
        result = await self.session.execute(
            select(func.count(Doctor.id))
            .select_from(Doctor)
            .outerjoin(DoctorVerification, DoctorVerification.doctor_id == Doctor.id)
            .where(DoctorVerification.id.is_(None))
        )
        return result.scalar() or 0

    async def count_submitted_since(self, since: datetime) -> int:
        """Count records whose latest submission is at or after ``since``."""
        result = await self.session.execute(
            select(func.count(DoctorVerification.id)).where(
                DoctorVerification.submitted_at >= since
            )
        )
        return result.scalar() or 0

    async def list_awaiting_review(self, limit: int = 5) -> list[DoctorVerification]:
        """Submitted or under-review records, most recently updated first."""
        result = await self.session.execute(
            select(DoctorVerification)
            .where(
                DoctorVerification.status.in_(
                    (VerificationStatus.SUBMITTED, VerificationStatus.UNDER_REVIEW)
                )
            )
            .order_by(DoctorVerification.updated_at.desc(), DoctorVerification.id)
            .limit(limit)
        )
        return list(result.scalars().all())
