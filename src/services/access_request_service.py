"""Service for the consent ledger: doctors' requests to read patient records.

    pending -> approved | rejected      (target patient responds)
    approved -> access_revoked          (target patient withdraws)
    approved, past expires_at           reads as expired; nothing is rewritten

A request from a doctor on the patient's trust list is created already
approved. Pending requests never time out on their own.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import NoReturn

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.core.pagination import OffsetPage, PageParams, create_offset_page
from src.models.db.access_request import (
    AccessLevel,
    AccessRequest,
    AccessRequestStatus,
    RecordCategory,
)
from src.models.db.actor import Doctor, Patient
from src.models.domain.access_request import (
    AccessRequestApprove,
    AccessRequestCreate,
    AccessRequestCreated,
    AccessRequestRead,
    AccessRequestReject,
)
from src.models.domain.access_request import AccessLevel as DomainAccessLevel
from src.models.domain.access_request import AccessRequestStatus as DomainAccessRequestStatus
from src.models.domain.access_request import RecordCategory as DomainRecordCategory
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.models.domain.audit import (
    AccessRequestApprovedDetails,
    AccessRequestCreatedDetails,
    AccessRequestRejectedDetails,
    AccessRevokedDetails,
    AuditEntryCreate,
    AuditSeverity,
    AuditTargetType,
)
from src.repositories.access_request_repo import AccessRequestRepository
from src.repositories.actor_repo import ActorRepository
from src.repositories.medical_record_repo import MedicalRecordRepository
from src.services.audit_service import AuditService, actor_role_of

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_REASON = "Patient data access required"
DEFAULT_REJECTION_REASON = "Patient declined access"


def effective_status(request: AccessRequest, now: datetime | None = None) -> AccessRequestStatus:
    """Status as readers must see it.

    An approved request whose expiry has passed is expired even though its
    stored status is still ``approved``.
    """
    now = now or datetime.now(UTC)
    if (
        request.status == AccessRequestStatus.APPROVED
        and request.expires_at is not None
        and request.expires_at <= now
    ):
        return AccessRequestStatus.EXPIRED
    return request.status


class AccessRequestService:
    """Service for creating, answering and revoking access requests."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = AccessRequestRepository(session)
        self.actors = ActorRepository(session)
        self.records = MedicalRecordRepository(session)
        self.audit = AuditService(session, self.settings)

    async def create_request(
        self,
        principal: Principal,
        data: AccessRequestCreate,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> AccessRequestCreated:
        """Create an access request from a verified doctor.

        The patient row is locked for the rest of the transaction so that
        concurrent identical requests are serialized through the duplicate
        check.

        Raises:
            ForbiddenError: If the caller is not a verified doctor
            NotFoundError: If the patient cannot be resolved
            ConflictError: If a pending request for the pair was created
                inside the duplicate window
        """
        now = now or datetime.now(UTC)
        categories = list(dict.fromkeys(c.value for c in data.record_categories))
        details = AccessRequestCreatedDetails(
            doctor_id=principal.actor_id,
            patient_id=data.patient_id,
            access_level=data.access_level.value,
            record_categories=categories,
        )
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.ACCESS_REQUEST,
            description="Doctor requested access to patient records",
            details=details,
            severity=AuditSeverity.MEDIUM,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        doctor = (
            await self.actors.get_doctor(principal.actor_id)
            if principal.role == ActorRole.DOCTOR and principal.actor_id is not None
            else None
        )
        if doctor is None or not doctor.is_verified:
            await self.audit.fail(
                entry,
                ForbiddenError("Only verified doctors can request patient access"),
            )

        patient = await self._resolve_patient(data)
        if patient is None:
            await self.audit.fail(entry, NotFoundError(resource="Patient"))
        details.patient_id = patient.id

        since = now - timedelta(minutes=self.settings.duplicate_request_window_minutes)
        duplicate = await self.repo.get_recent_pending(doctor.id, patient.id, since)
        if duplicate is not None:
            await self.audit.fail(
                entry.model_copy(update={"target_id": duplicate.id}),
                ConflictError(
                    "A pending access request for this patient already exists",
                    current_state=AccessRequestStatus.PENDING.value,
                ),
            )

        trusted = await self.actors.is_trusted(patient.id, doctor.id)
        access_request = AccessRequest(
            doctor_id=doctor.id,
            patient_id=patient.id,
            status=AccessRequestStatus.PENDING,
            reason=(data.reason or "").strip() or DEFAULT_REQUEST_REASON,
            access_level=AccessLevel(data.access_level.value),
            record_categories=categories,
            requested_at=now,
            auto_approved=False,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        if trusted:
            access_request.status = AccessRequestStatus.APPROVED
            access_request.approved_at = now
            access_request.expires_at = now + timedelta(
                days=self.settings.trusted_auto_approval_days
            )
            access_request.auto_approved = True

        access_request = await self.repo.create(access_request)
        if trusted:
            await self._apply_grants(access_request, now)

        details.auto_approved = trusted
        details.expires_at = access_request.expires_at
        await self.audit.append(
            entry.model_copy(
                update={
                    "target_id": access_request.id,
                    "description": (
                        "Doctor requested access to patient records (auto-approved, trusted)"
                        if trusted
                        else entry.description
                    ),
                }
            )
        )
        logger.info(
            "Access request created",
            extra={
                "access_request_id": str(access_request.id),
                "doctor_id": str(doctor.id),
                "patient_id": str(patient.id),
                "auto_approved": trusted,
            },
        )
        return AccessRequestCreated(
            access_request=self._to_read(access_request, now, doctor=doctor, patient=patient),
            message=(
                "Access automatically approved (trusted doctor)"
                if trusted
                else "Access request sent to patient"
            ),
        )

    async def approve(
        self,
        principal: Principal,
        request_id: uuid.UUID,
        data: AccessRequestApprove,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> AccessRequestRead:
        """Approve a pending request addressed to the calling patient.

        Raises:
            ForbiddenError: If the request does not exist or the caller is
                not the target patient
            ConflictError: If the request is no longer pending
            ValidationError: If the duration exceeds the configured maximum
        """
        now = now or datetime.now(UTC)
        duration_days = data.duration_days or self.settings.consent_default_duration_days
        expires_at = now + timedelta(days=duration_days)
        details = AccessRequestApprovedDetails(
            duration_days=duration_days,
            expires_at=expires_at,
            added_to_trusted=data.add_to_trusted,
        )
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.ACCESS_REQUEST,
            target_id=request_id,
            description="Patient approved an access request",
            details=details,
            severity=AuditSeverity.MEDIUM,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        request = await self._get_owned(principal, request_id, entry)
        details.doctor_id = request.doctor_id

        if duration_days > self.settings.max_consent_duration_days:
            await self.audit.fail(
                entry,
                ValidationError(
                    f"duration_days must not exceed {self.settings.max_consent_duration_days}"
                ),
            )

        updated = await self.repo.transition(
            request_id,
            AccessRequestStatus.PENDING,
            {
                "status": AccessRequestStatus.APPROVED,
                "approved_at": now,
                "expires_at": expires_at,
            },
        )
        if updated is None:
            await self._fail_not_pending(entry, request_id, now)

        if data.add_to_trusted:
            await self.actors.add_trusted(updated.patient_id, updated.doctor_id)
        details.records_granted = await self._apply_grants(updated, now)
        await self.audit.append(entry)

        logger.info(
            "Access request approved",
            extra={
                "access_request_id": str(request_id),
                "duration_days": duration_days,
                "added_to_trusted": data.add_to_trusted,
            },
        )
        return self._to_read(updated, now)

    async def reject(
        self,
        principal: Principal,
        request_id: uuid.UUID,
        data: AccessRequestReject,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> AccessRequestRead:
        """Reject a pending request addressed to the calling patient.

        Raises:
            ForbiddenError: If the request does not exist or the caller is
                not the target patient
            ConflictError: If the request is no longer pending
        """
        now = now or datetime.now(UTC)
        reason = (data.reason or "").strip() or DEFAULT_REJECTION_REASON
        details = AccessRequestRejectedDetails(reason=reason)
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.ACCESS_REQUEST,
            target_id=request_id,
            description="Patient rejected an access request",
            details=details,
            severity=AuditSeverity.LOW,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        request = await self._get_owned(principal, request_id, entry)
        details.doctor_id = request.doctor_id

        updated = await self.repo.transition(
            request_id,
            AccessRequestStatus.PENDING,
            {
                "status": AccessRequestStatus.REJECTED,
                "rejected_at": now,
                "rejection_reason": reason,
            },
        )
        if updated is None:
            await self._fail_not_pending(entry, request_id, now)

        await self.audit.append(entry)
        logger.info("Access request rejected", extra={"access_request_id": str(request_id)})
        return self._to_read(updated, now)

    async def revoke(
        self,
        principal: Principal,
        request_id: uuid.UUID,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> AccessRequestRead:
        """Withdraw an approved, unexpired grant.

        Only permissions derived from this request are marked ungranted.
        Records still covered by another active request of the same doctor
        are granted again under that request.

        Raises:
            ForbiddenError: If the request does not exist or the caller is
                not the target patient
            ConflictError: If the request is not currently approved
        """
        now = now or datetime.now(UTC)
        details = AccessRevokedDetails()
        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.ACCESS_REQUEST,
            target_id=request_id,
            description="Patient revoked a doctor's access",
            details=details,
            severity=AuditSeverity.MEDIUM,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        request = await self._get_owned(principal, request_id, entry)
        details.doctor_id = request.doctor_id

        updated = await self.repo.transition(
            request_id,
            AccessRequestStatus.APPROVED,
            {"status": AccessRequestStatus.ACCESS_REVOKED, "revoked_at": now},
            extra_conditions=[
                or_(AccessRequest.expires_at.is_(None), AccessRequest.expires_at > now)
            ],
        )
        if updated is None:
            current = await self.repo.get_by_id(request_id, populate_existing=True)
            state = effective_status(current, now).value if current else "unknown"
            details.current_state = state
            await self.audit.fail(
                entry,
                ConflictError(f"Only approved access can be revoked; request is {state}", state),
            )

        ungranted = await self.records.revoke_permissions(
            updated.doctor_id, updated.patient_id, request_id
        )
        regranted = await self._regrant_from_other_requests(updated, ungranted, now)
        details.records_revoked = len(set(ungranted) - regranted)
        await self.audit.append(entry)
        logger.info("Access revoked", extra={"access_request_id": str(request_id)})
        return self._to_read(updated, now)

    async def get_request(
        self,
        principal: Principal,
        request_id: uuid.UUID,
        now: datetime | None = None,
    ) -> AccessRequestRead:
        """Get a request visible to the caller: its doctor, its patient, or an admin.

        Raises:
            ForbiddenError: If the request does not exist or the caller is not
                a party to it
        """
        request = await self.repo.get_by_id(request_id)
        if request is None:
            raise ForbiddenError()
        if principal.role != ActorRole.ADMIN and principal.actor_id not in (
            request.doctor_id,
            request.patient_id,
        ):
            raise ForbiddenError()
        return self._to_read(request, now or datetime.now(UTC))

    async def list_requests(
        self,
        principal: Principal,
        params: PageParams,
        status: DomainAccessRequestStatus | None = None,
        now: datetime | None = None,
    ) -> OffsetPage[AccessRequestRead]:
        """List requests visible to the caller, newest first.

        Doctors see the requests they made, patients the requests addressed
        to them, admins every request. ``status`` filters on the effective
        status.
        """
        now = now or datetime.now(UTC)
        doctor_id = principal.actor_id if principal.role == ActorRole.DOCTOR else None
        patient_id = principal.actor_id if principal.role == ActorRole.PATIENT else None
        if principal.role not in (ActorRole.DOCTOR, ActorRole.PATIENT, ActorRole.ADMIN):
            raise ForbiddenError()

        db_status = AccessRequestStatus(status.value) if status else None
        rows = await self.repo.list_requests(
            now,
            doctor_id=doctor_id,
            patient_id=patient_id,
            status=db_status,
            limit=params.limit,
            offset=params.offset,
        )
        total = await self.repo.count_requests(
            now,
            doctor_id=doctor_id,
            patient_id=patient_id,
            status=db_status,
        )
        return create_offset_page([self._to_read(r, now) for r in rows], params, total)

    async def _resolve_patient(self, data: AccessRequestCreate) -> Patient | None:
        """Find and lock the target patient."""
        patient_id = data.patient_id
        if patient_id is None and data.patient_unique_id:
            found = await self.actors.find_patient(data.patient_unique_id)
            if found is None:
                return None
            patient_id = found.id
        if patient_id is None:
            return None
        return await self.actors.get_patient(patient_id, for_update=True)

    async def _get_owned(
        self,
        principal: Principal,
        request_id: uuid.UUID,
        entry: AuditEntryCreate,
    ) -> AccessRequest:
        """Load a request the calling patient is the target of, auditing refusals.

        A missing request is refused the same way as someone else's.
        """
        request = await self.repo.get_by_id(request_id)
        if (
            request is None
            or principal.role != ActorRole.PATIENT
            or request.patient_id != principal.actor_id
        ):
            await self.audit.fail(entry, ForbiddenError())
        return request

    async def _fail_not_pending(
        self,
        entry: AuditEntryCreate,
        request_id: uuid.UUID,
        now: datetime,
    ) -> NoReturn:
        current = await self.repo.get_by_id(request_id, populate_existing=True)
        state = effective_status(current, now).value if current else "unknown"
        await self.audit.fail(
            entry.model_copy(
                update={"details": entry.details.model_copy(update={"current_state": state})}
            ),
            ConflictError(f"Request already {state}", state),
        )

    async def _apply_grants(self, request: AccessRequest, now: datetime) -> int:
        """Populate the permission overlay for an approved request."""
        categories = [RecordCategory(c) for c in request.record_categories]
        records = await self.records.list_for_patient(request.patient_id, categories)
        return await self.records.upsert_permissions(
            [r.id for r in records],
            doctor_id=request.doctor_id,
            granted_at=now,
            expires_at=request.expires_at,
            access_level=request.access_level,
            access_request_id=request.id,
        )

    async def _regrant_from_other_requests(
        self,
        revoked: AccessRequest,
        record_ids: list[uuid.UUID],
        now: datetime,
    ) -> set[uuid.UUID]:
        """Restore grants another active request of the same pair still covers.

        A later approval takes over the permission rows it overlaps, so the
        rows ungranted here may also belong to an earlier request.

        Returns:
            IDs of the records granted again
        """
        if not record_ids:
            return set()
        ungranted = set(record_ids)
        regranted: set[uuid.UUID] = set()
        active = await self.repo.list_active_for_patient(revoked.patient_id, now)
        for other in active:
            if other.doctor_id != revoked.doctor_id or other.id == revoked.id:
                continue
            categories = [RecordCategory(c) for c in other.record_categories]
            covered = [
                r.id
                for r in await self.records.list_for_patient(other.patient_id, categories)
                if r.id in ungranted
            ]
            await self.records.upsert_permissions(
                covered,
                doctor_id=other.doctor_id,
                granted_at=other.approved_at or now,
                expires_at=other.expires_at,
                access_level=other.access_level,
                access_request_id=other.id,
            )
            regranted.update(covered)
        return regranted

    def _to_read(
        self,
        request: AccessRequest,
        now: datetime,
        doctor: Doctor | None = None,
        patient: Patient | None = None,
    ) -> AccessRequestRead:
        """Convert an AccessRequest DB model to AccessRequestRead schema.

        ``doctor`` and ``patient`` are passed for freshly created rows whose
        relationships have not been loaded.
        """
        doctor = doctor or request.doctor
        patient = patient or request.patient
        return AccessRequestRead(
            id=request.id,
            doctor_id=request.doctor_id,
            patient_id=request.patient_id,
            status=DomainAccessRequestStatus(effective_status(request, now).value),
            reason=request.reason,
            access_level=DomainAccessLevel(request.access_level.value),
            record_categories=[DomainRecordCategory(c) for c in request.record_categories],
            requested_at=request.requested_at,
            approved_at=request.approved_at,
            rejected_at=request.rejected_at,
            rejection_reason=request.rejection_reason,
            revoked_at=request.revoked_at,
            expires_at=request.expires_at,
            auto_approved=request.auto_approved,
            doctor_name=doctor.display_name if doctor else None,
            patient_name=patient.display_name if patient else None,
        )
