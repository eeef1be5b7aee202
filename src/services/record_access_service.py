"""Service for the record permission overlay and record reads."""

import logging
import uuid
from datetime import UTC, datetime
from typing import NoReturn

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.exceptions import AppError, ForbiddenError, NotFoundError
from src.models.db.access_request import RecordCategory
from src.models.db.medical_record import MedicalRecord, RecordPermission
from src.models.domain.access_request import AccessLevel as DomainAccessLevel
from src.models.domain.access_request import RecordCategory as DomainRecordCategory
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.models.domain.audit import (
    AuditActorRole,
    AuditEntryCreate,
    AuditSeverity,
    AuditTargetType,
    MedicalRecordCreatedDetails,
    PatientDataAccessedDetails,
    RecordDownloadedDetails,
    RecordViewedDetails,
)
from src.models.domain.medical_record import (
    FileAccess,
    MedicalRecordCreate,
    MedicalRecordRead,
    RecordFile,
    RecordPermissionRead,
)
from src.repositories.access_request_repo import AccessRequestRepository
from src.repositories.actor_repo import ActorRepository
from src.repositories.medical_record_repo import MedicalRecordRepository
from src.services.audit_service import AuditService, actor_role_of

logger = logging.getLogger(__name__)


def permission_is_active(permission: RecordPermission, now: datetime) -> bool:
    """A grant counts only while flagged and not past its expiry."""
    return permission.granted and (permission.expires_at is None or permission.expires_at > now)


def has_access(
    record: MedicalRecord,
    role: ActorRole,
    actor_id: uuid.UUID | None,
    now: datetime | None = None,
) -> bool:
    """Decide whether an actor may read a record.

    Pure and side-effect free; callers are responsible for auditing.

    - patient: only their own records, without expiry
    - doctor: an active permission entry on the record
    - emergency: only records flagged emergency-visible
    - admin: never; admins do not read clinical content
    """
    now = now or datetime.now(UTC)
    if role == ActorRole.PATIENT:
        return actor_id is not None and record.patient_id == actor_id
    if role == ActorRole.DOCTOR:
        if actor_id is None:
            return False
        permission = record.permission_for(actor_id)
        return permission is not None and permission_is_active(permission, now)
    if role == ActorRole.EMERGENCY:
        return record.is_emergency_visible
    return False


class RecordAccessService:
    """Service for registering records and serving file references."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = MedicalRecordRepository(session)
        self.requests = AccessRequestRepository(session)
        self.actors = ActorRepository(session)
        self.audit = AuditService(session, self.settings)

    async def create_record(
        self,
        principal: Principal,
        data: MedicalRecordCreate,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> MedicalRecordRead:
        """Register record metadata for the calling patient.

        Doctors currently holding an approved, unexpired grant covering the
        record's category receive a permission entry on the new record.
        """
        now = now or datetime.now(UTC)
        if principal.role != ActorRole.PATIENT or principal.actor_id is None:
            raise ForbiddenError("Only patients can add medical records")

        record = await self.repo.create(
            MedicalRecord(
                patient_id=principal.actor_id,
                title=data.title,
                description=data.description,
                category=RecordCategory(data.category.value),
                record_date=data.record_date or now,
                authored_by=principal.actor_id,
                is_emergency_visible=data.is_emergency_visible,
                files=[f.model_dump(mode="json") for f in data.files],
            )
        )

        grants_applied = 0
        for request in await self.requests.list_active_for_patient(principal.actor_id, now):
            covered = set(request.record_categories)
            if RecordCategory.ALL.value in covered or record.category.value in covered:
                grants_applied += await self.repo.upsert_permissions(
                    [record.id],
                    doctor_id=request.doctor_id,
                    granted_at=now,
                    expires_at=request.expires_at,
                    access_level=request.access_level,
                    access_request_id=request.id,
                )

        await self.audit.append(
            AuditEntryCreate(
                actor_id=principal.actor_id,
                actor_role=actor_role_of(principal),
                target_type=AuditTargetType.MEDICAL_RECORD,
                target_id=record.id,
                description="Patient added a medical record",
                details=MedicalRecordCreatedDetails(
                    category=record.category.value,
                    file_count=len(record.files),
                    is_emergency_visible=record.is_emergency_visible,
                    grants_applied=grants_applied,
                ),
                severity=AuditSeverity.LOW,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
        )
        stored = await self.repo.get_by_id(record.id, populate_existing=True)
        return self._to_read(stored or record, now, include_permissions=True)

    async def list_own_records(
        self,
        principal: Principal,
        now: datetime | None = None,
    ) -> list[MedicalRecordRead]:
        """List the calling patient's records with their permission entries."""
        if principal.role != ActorRole.PATIENT or principal.actor_id is None:
            raise ForbiddenError()
        now = now or datetime.now(UTC)
        records = await self.repo.list_for_patient(principal.actor_id)
        return [self._to_read(r, now, include_permissions=True) for r in records]

    async def list_patient_records(
        self,
        principal: Principal,
        patient_id: uuid.UUID,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> list[MedicalRecordRead]:
        """List the records of a patient the calling doctor can currently read.

        Raises:
            ForbiddenError: If the caller is not a doctor or holds no active
                grant on any of the patient's records
        """
        now = now or datetime.now(UTC)
        details = PatientDataAccessedDetails(purpose="list records")
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.PATIENT,
            target_id=patient_id,
            description="Doctor listed patient records",
            details=details,
            severity=AuditSeverity.LOW,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        if principal.role != ActorRole.DOCTOR:
            await self.audit.fail(entry, ForbiddenError())

        records = [
            r
            for r in await self.repo.list_for_patient(patient_id)
            if has_access(r, principal.role, principal.actor_id, now)
        ]
        if not records:
            await self.audit.fail(entry, ForbiddenError())

        details.record_count = len(records)
        await self.audit.append(entry)
        return [self._to_read(r, now) for r in records]

    async def get_record(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> MedicalRecordRead:
        """Read a record's metadata. Audited as a view without a file."""
        now = now or datetime.now(UTC)
        record = await self._authorize(
            principal,
            record_id,
            self._view_entry(principal, record_id, client, file_name=None),
            now,
        )
        await self.audit.append(
            self._view_entry(principal, record_id, client, file_name=None, record=record)
        )
        return self._to_read(
            record,
            now,
            include_permissions=principal.role == ActorRole.PATIENT,
        )

    async def view_file(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        file_name: str,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> FileAccess:
        """Return a file reference for inline viewing.

        Raises:
            ForbiddenError: If the caller may not read the record, or the
                record does not exist
            NotFoundError: If the record has no file with this name
        """
        now = now or datetime.now(UTC)
        entry = self._view_entry(principal, record_id, client, file_name=file_name)
        record = await self._authorize(principal, record_id, entry, now)
        file = self._find_file(record, file_name)
        if file is None:
            await self.audit.fail(entry, NotFoundError(resource="File", resource_id=file_name))

        await self.audit.append(
            self._view_entry(principal, record_id, client, file_name=file_name, record=record)
        )
        return FileAccess(
            record_id=record.id,
            file=file,
            disposition="inline",
            emergency_access=principal.is_emergency_bypass,
        )

    async def download_file(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        file_name: str,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> FileAccess:
        """Return a file reference for download.

        Raises:
            ForbiddenError: If the caller may not read the record, or the
                record does not exist
            NotFoundError: If the record has no file with this name
        """
        now = now or datetime.now(UTC)
        details = RecordDownloadedDetails(
            file_name=file_name,
            emergency_access=principal.is_emergency_bypass,
            token_fingerprint=principal.emergency_token_fingerprint,
        )
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.MEDICAL_RECORD,
            target_id=record_id,
            description=self._describe(principal, "downloaded a medical record file"),
            details=details,
            severity=AuditSeverity.HIGH if principal.is_emergency_bypass else AuditSeverity.MEDIUM,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        record = await self._authorize(principal, record_id, entry, now)
        details.patient_id = record.patient_id
        file = self._find_file(record, file_name)
        if file is None:
            await self.audit.fail(entry, NotFoundError(resource="File", resource_id=file_name))

        details.file_size = file.file_size
        details.mime_type = file.mime_type
        await self.audit.append(entry)
        return FileAccess(
            record_id=record.id,
            file=file,
            disposition="attachment",
            emergency_access=principal.is_emergency_bypass,
        )

    async def refuse_emergency_token(
        self,
        record_id: uuid.UUID | None,
        file_name: str | None,
        fingerprint: str,
        client: ClientInfo,
        error: AppError,
        download: bool = False,
    ) -> NoReturn:
        """Audit a record read whose emergency token did not verify, then raise."""
        details_cls = RecordDownloadedDetails if download else RecordViewedDetails
        await self.audit.fail(
            AuditEntryCreate(
                actor_role=AuditActorRole.EMERGENCY,
                target_type=AuditTargetType.MEDICAL_RECORD,
                target_id=record_id,
                description="Emergency access (token) refused",
                details=details_cls(
                    file_name=file_name,
                    emergency_access=True,
                    token_fingerprint=fingerprint,
                ),
                severity=AuditSeverity.HIGH,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            ),
            error,
        )

    async def _authorize(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        entry: AuditEntryCreate,
        now: datetime,
    ) -> MedicalRecord:
        """Load a record the principal may read, auditing any refusal.

        A missing record is refused exactly like a forbidden one.
        """
        record = await self.repo.get_by_id(record_id)
        if record is None or not has_access(record, principal.role, principal.actor_id, now):
            logger.warning(
                "Record access denied",
                extra={
                    "record_id": str(record_id),
                    "role": principal.role.value,
                    "emergency_access": principal.is_emergency_bypass,
                },
            )
            await self.audit.fail(entry, ForbiddenError())
        return record

    def _view_entry(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        client: ClientInfo,
        file_name: str | None,
        record: MedicalRecord | None = None,
    ) -> AuditEntryCreate:
        return AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.MEDICAL_RECORD,
            target_id=record_id,
            description=self._describe(principal, "viewed a medical record"),
            details=RecordViewedDetails(
                patient_id=record.patient_id if record else None,
                file_name=file_name,
                emergency_access=principal.is_emergency_bypass,
                token_fingerprint=principal.emergency_token_fingerprint,
            ),
            severity=AuditSeverity.HIGH if principal.is_emergency_bypass else AuditSeverity.LOW,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

    @staticmethod
    def _describe(principal: Principal, what: str) -> str:
        if principal.is_emergency_bypass:
            return f"Emergency access (token) {what}"
        return f"{principal.role.value.capitalize()} {what}"

    @staticmethod
    def _find_file(record: MedicalRecord, file_name: str) -> RecordFile | None:
        found = record.find_file(file_name)
        return RecordFile(**found) if found else None

    def _to_read(
        self,
        record: MedicalRecord,
        now: datetime,
        include_permissions: bool = False,
    ) -> MedicalRecordRead:
        """Convert a MedicalRecord DB model to MedicalRecordRead schema."""
        permissions = None
        if include_permissions:
            permissions = [
                RecordPermissionRead(
                    doctor_id=p.doctor_id,
                    granted=p.granted,
                    granted_at=p.granted_at,
                    expires_at=p.expires_at,
                    access_level=DomainAccessLevel(p.access_level.value),
                    active=permission_is_active(p, now),
                )
                for p in record.permissions
            ]
        return MedicalRecordRead(
            id=record.id,
            patient_id=record.patient_id,
            title=record.title,
            description=record.description,
            category=DomainRecordCategory(record.category.value),
            record_date=record.record_date,
            is_emergency_visible=record.is_emergency_visible,
            files=[RecordFile(**f) for f in record.files],
            created_at=record.created_at,
            permissions=permissions,
        )
