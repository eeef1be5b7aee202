"""Integration tests for access requests, grants and record reads."""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from src.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from src.core.security import create_emergency_token
from src.models.db.audit import AuditAction, AuditEntry, AuditOutcome
from src.models.domain.access_request import (
    AccessRequestApprove,
    AccessRequestCreate,
    AccessRequestReject,
    AccessRequestStatus,
    RecordCategory,
)
from src.models.domain.actor import ClientInfo, PatientCreate, Principal
from src.models.domain.medical_record import MedicalRecordCreate, RecordFile
from src.services.access_request_service import AccessRequestService
from src.services.emergency_service import verify_emergency_token
from src.services.identity_service import IdentityService
from src.services.record_access_service import RecordAccessService

pytestmark = pytest.mark.integration


def _file(name: str) -> RecordFile:
    return RecordFile(
        file_name=name,
        original_name=name,
        file_url=f"s3://records/{name}",
        file_size=1024,
        mime_type="application/pdf",
    )


async def _add_record(
    uow,  # noqa: ANN001
    patient: Principal,
    client: ClientInfo,
    now: datetime,
    category: RecordCategory = RecordCategory.LAB_RESULTS,
    emergency_visible: bool = False,
):  # noqa: ANN202
    async with uow() as session:
        return await RecordAccessService(session).create_record(
            patient,
            MedicalRecordCreate(
                title="Blood panel",
                category=category,
                is_emergency_visible=emergency_visible,
                files=[_file("panel.pdf")],
            ),
            client,
            now=now,
        )


async def _request(
    uow,  # noqa: ANN001
    doctor: Principal,
    patient: Principal,
    client: ClientInfo,
    now: datetime,
):  # noqa: ANN202
    async with uow() as session:
        return await AccessRequestService(session).create_request(
            doctor,
            AccessRequestCreate(patient_id=patient.actor_id),
            client,
            now=now,
        )


class TestAccessRequestLifecycle:
    """Requests from creation to expiry against a real database."""

    async def test_approved_grant_lapses_at_expiry(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        record = await _add_record(uow, patient, client_info, now)
        created = await _request(uow, verified_doctor, patient, client_info, now)
        assert created.access_request.status == AccessRequestStatus.PENDING

        async with uow() as session:
            approved = await AccessRequestService(session).approve(
                patient,
                created.access_request.id,
                AccessRequestApprove(duration_days=7),
                client_info,
                now=now,
            )
        assert approved.expires_at == now + timedelta(days=7)

        async with uow() as session:
            read = await RecordAccessService(session).get_record(
                verified_doctor, record.id, client_info, now=now + timedelta(days=6)
            )
        assert read.id == record.id

        with pytest.raises(ForbiddenError):
            async with uow() as session:
                await RecordAccessService(session).get_record(
                    verified_doctor, record.id, client_info, now=now + timedelta(days=8)
                )

        async with uow() as session:
            later = await AccessRequestService(session).get_request(
                patient, created.access_request.id, now=now + timedelta(days=8)
            )
        assert later.status == AccessRequestStatus.EXPIRED

    async def test_trusted_doctor_is_auto_approved(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        record = await _add_record(uow, patient, client_info, now)
        async with uow() as session:
            await IdentityService(session).add_trusted_doctor(
                patient, verified_doctor.actor_id, client_info
            )

        created = await _request(uow, verified_doctor, patient, client_info, now)

        assert created.access_request.status == AccessRequestStatus.APPROVED
        assert created.access_request.auto_approved is True
        assert created.access_request.expires_at == now + timedelta(days=30)
        async with uow() as session:
            read = await RecordAccessService(session).get_record(
                verified_doctor, record.id, client_info, now=now + timedelta(days=1)
            )
        assert read.id == record.id

    async def test_duplicate_window(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        first = await _request(uow, verified_doctor, patient, client_info, now)

        with pytest.raises(ConflictError) as exc_info:
            await _request(
                uow, verified_doctor, patient, client_info, now + timedelta(minutes=30)
            )
        assert exc_info.value.extra["current_state"] == "pending"

        second = await _request(
            uow, verified_doctor, patient, client_info, now + timedelta(minutes=60)
        )
        assert second.access_request.id != first.access_request.id
        assert second.access_request.status == AccessRequestStatus.PENDING

    async def test_ambiguous_patient_reference_is_not_found(
        self,
        uow,  # noqa: ANN001
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        marker = uuid.uuid4().hex[:8]
        async with uow() as session:
            for name in ("ann", "joe"):
                await IdentityService(session).create_actor(
                    PatientCreate(email=f"{name}.{marker}@example.com", first_name=name.title())
                )

        with pytest.raises(NotFoundError):
            async with uow() as session:
                await AccessRequestService(session).create_request(
                    verified_doctor,
                    AccessRequestCreate(patient_unique_id=marker),
                    client_info,
                    now=now,
                )

        async with uow() as session:
            created = await AccessRequestService(session).create_request(
                verified_doctor,
                AccessRequestCreate(patient_unique_id=f"ann.{marker}"),
                client_info,
                now=now,
            )
        assert created.access_request.patient_name == "Ann"

    async def test_terminal_transitions_are_not_repeated(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        created = await _request(uow, verified_doctor, patient, client_info, now)
        request_id = created.access_request.id

        async with uow() as session:
            await AccessRequestService(session).reject(
                patient, request_id, AccessRequestReject(reason="Not my doctor"), client_info
            )

        with pytest.raises(ConflictError) as exc_info:
            async with uow() as session:
                await AccessRequestService(session).approve(
                    patient, request_id, AccessRequestApprove(), client_info
                )
        assert exc_info.value.extra["current_state"] == "rejected"

        async with uow() as session:
            current = await AccessRequestService(session).get_request(patient, request_id)
        assert current.status == AccessRequestStatus.REJECTED
        assert current.rejection_reason == "Not my doctor"

    async def test_revoke_removes_access(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        record = await _add_record(uow, patient, client_info, now)
        created = await _request(uow, verified_doctor, patient, client_info, now)
        async with uow() as session:
            await AccessRequestService(session).approve(
                patient, created.access_request.id, AccessRequestApprove(), client_info, now=now
            )
        async with uow() as session:
            revoked = await AccessRequestService(session).revoke(
                patient, created.access_request.id, client_info, now=now + timedelta(days=1)
            )
        assert revoked.status == AccessRequestStatus.ACCESS_REVOKED

        with pytest.raises(ForbiddenError):
            async with uow() as session:
                await RecordAccessService(session).get_record(
                    verified_doctor, record.id, client_info, now=now + timedelta(days=2)
                )

    async def test_revoke_keeps_grants_of_other_active_requests(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        verified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        record = await _add_record(uow, patient, client_info, now)
        broad = await _request(uow, verified_doctor, patient, client_info, now)
        later = now + timedelta(hours=2)
        async with uow() as session:
            narrow = await AccessRequestService(session).create_request(
                verified_doctor,
                AccessRequestCreate(
                    patient_id=patient.actor_id,
                    record_categories=[RecordCategory.LAB_RESULTS],
                ),
                client_info,
                now=later,
            )
        for created, at in ((broad, now), (narrow, later)):
            async with uow() as session:
                await AccessRequestService(session).approve(
                    patient, created.access_request.id, AccessRequestApprove(), client_info, now=at
                )

        async with uow() as session:
            await AccessRequestService(session).revoke(
                patient, narrow.access_request.id, client_info, now=later
            )
        async with uow() as session:
            read = await RecordAccessService(session).get_record(
                verified_doctor, record.id, client_info, now=later
            )
            remaining = await AccessRequestService(session).get_request(
                patient, broad.access_request.id, now=later
            )
        assert read.id == record.id
        assert remaining.status == AccessRequestStatus.APPROVED

        async with uow() as session:
            await AccessRequestService(session).revoke(
                patient, broad.access_request.id, client_info, now=later
            )
        with pytest.raises(ForbiddenError):
            async with uow() as session:
                await RecordAccessService(session).get_record(
                    verified_doctor, record.id, client_info, now=later
                )

    async def test_unverified_doctor_is_refused_and_audited(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        unverified_doctor: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        with pytest.raises(ForbiddenError):
            await _request(uow, unverified_doctor, patient, client_info, now)

        async with uow() as session:
            result = await session.execute(
                select(AuditEntry).where(
                    AuditEntry.action == AuditAction.PATIENT_ACCESS_REQUEST_CREATED,
                    AuditEntry.actor_id == unverified_doctor.actor_id,
                )
            )
            entries = list(result.scalars().all())
        assert len(entries) == 1
        assert entries[0].status == AuditOutcome.FAILURE


class TestEmergencyAccess:
    """Emergency token reads against a real database."""

    async def test_token_reads_only_emergency_visible_records(
        self,
        uow,  # noqa: ANN001
        patient: Principal,
        client_info: ClientInfo,
        now: datetime,
    ) -> None:
        visible = await _add_record(
            uow, patient, client_info, now, RecordCategory.EMERGENCY, emergency_visible=True
        )
        hidden = await _add_record(uow, patient, client_info, now)
        responder = verify_emergency_token(create_emergency_token()).principal()

        async with uow() as session:
            access = await RecordAccessService(session).view_file(
                responder, visible.id, "panel.pdf", client_info
            )
        assert access.emergency_access is True

        with pytest.raises(ForbiddenError):
            async with uow() as session:
                await RecordAccessService(session).view_file(
                    responder, hidden.id, "panel.pdf", client_info
                )

        async with uow() as session:
            result = await session.execute(
                select(AuditEntry)
                .where(AuditEntry.action == AuditAction.MEDICAL_RECORD_VIEWED)
                .order_by(AuditEntry.timestamp)
            )
            entries = list(result.scalars().all())
        assert [e.status for e in entries] == [AuditOutcome.SUCCESS, AuditOutcome.FAILURE]
        assert all(e.details["emergency_access"] for e in entries)
        assert all(e.actor_id is None for e in entries)
