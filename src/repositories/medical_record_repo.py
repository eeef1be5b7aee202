"""Repository for medical records and their permission overlay."""

import uuid
from datetime import datetime

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.db.access_request import AccessLevel, RecordCategory
from src.models.db.medical_record import MedicalRecord, RecordPermission


class MedicalRecordRepository:
    """Repository for medical record database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, record: MedicalRecord) -> MedicalRecord:
        """Create a new medical record.

        Args:
            record: The medical record to create

        Returns:
            The created medical record
        """
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return record

    async def get_by_id(
        self,
        record_id: uuid.UUID,
        populate_existing: bool = False,
    ) -> MedicalRecord | None:
        """Get a medical record with its permissions loaded."""
        query = select(MedicalRecord).where(MedicalRecord.id == record_id)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_patient(
        self,
        patient_id: uuid.UUID,
        categories: list[RecordCategory] | None = None,
    ) -> list[MedicalRecord]:
        """List a patient's records, newest clinical date first.

        Args:
            patient_id: The owning patient
            categories: Restrict to these categories; None or a list
                containing ``all`` means every category

        Returns:
            List of medical records
        """
        conditions = [MedicalRecord.patient_id == patient_id]
        if categories and RecordCategory.ALL not in categories:
            conditions.append(MedicalRecord.category.in_(categories))

        result = await self.session.execute(
            select(MedicalRecord)
            .where(and_(*conditions))
            .order_by(MedicalRecord.record_date.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def upsert_permissions(
        self,
        record_ids: list[uuid.UUID],
        doctor_id: uuid.UUID,
        granted_at: datetime,
        expires_at: datetime | None,
        access_level: AccessLevel,
        access_request_id: uuid.UUID | None,
    ) -> int:
        """Grant a doctor access to records, refreshing existing entries.

        Args:
            record_ids: Records to grant
            doctor_id: The doctor receiving access
            granted_at: Grant timestamp
            expires_at: When the grant lapses
            access_level: Granted access level
            access_request_id: The request the grant derives from

        Returns:
            Number of records granted
        """
        if not record_ids:
            return 0

        rows = [
            {
                "id": uuid.uuid4(),
                "record_id": record_id,
                "doctor_id": doctor_id,
                "granted": True,
                "granted_at": granted_at,
                "expires_at": expires_at,
                "access_level": access_level,
                "access_request_id": access_request_id,
            }
            for record_id in record_ids
        ]
        stmt = insert(RecordPermission).values(rows)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_record_permissions_record_doctor",
            set_={
                "granted": True,
                "granted_at": stmt.excluded.granted_at,
                "expires_at": stmt.excluded.expires_at,
                "access_level": stmt.excluded.access_level,
                "access_request_id": stmt.excluded.access_request_id,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
        return len(rows)

    async def revoke_permissions(
        self,
        doctor_id: uuid.UUID,
        patient_id: uuid.UUID,
        access_request_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """Mark the grants derived from one access request as ungranted.

        Entries are kept so the history of who had access stays visible.
        Grants the doctor holds through other requests are left alone.

        Returns:
            IDs of the records whose grant was withdrawn
        """
        patient_records = select(MedicalRecord.id).where(MedicalRecord.patient_id == patient_id)
        result = await self.session.execute(
            update(RecordPermission)
            .where(
                and_(
                    RecordPermission.doctor_id == doctor_id,
                    RecordPermission.record_id.in_(patient_records),
                    RecordPermission.access_request_id == access_request_id,
                    RecordPermission.granted.is_(True),
                )
            )
            .values(granted=False, updated_at=func.now())
            .returning(RecordPermission.record_id)
            .execution_options(synchronize_session=False)
        )
        return list(result.scalars().all())
