"""Tests for AuditService."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.core.exceptions import ForbiddenError, InternalError
from src.core.pagination import PageParams
from src.models.db.audit import (
    AuditAction,
    AuditActorRole,
    AuditEntry,
    AuditOutcome,
    AuditSeverity,
    AuditTargetType,
)
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.models.domain.audit import (
    AccessRevokedDetails,
    AdminNoteCreate,
    AuditEntryCreate,
    AuditQuery,
    RecordViewedDetails,
)
from src.models.domain.audit import AuditSeverity as DomainSeverity
from src.services.audit_service import AuditService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def stored(entry: AuditEntry) -> AuditEntry:
    entry.id = uuid.uuid4()
    entry.timestamp = NOW
    return entry


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create a mock async session."""
    return AsyncMock()


@pytest.fixture
def service(mock_session: AsyncMock) -> AuditService:
    svc = AuditService(mock_session)
    svc.repo = MagicMock()
    svc.repo.create = AsyncMock(side_effect=stored)
    return svc


def revoke_entry() -> AuditEntryCreate:
    return AuditEntryCreate(
        actor_id=uuid.uuid4(),
        actor_role="patient",
        target_type="access_request",
        target_id=uuid.uuid4(),
        description="Patient revoked a doctor's access",
        details=AccessRevokedDetails(doctor_id=uuid.uuid4()),
        severity="medium",
        ip_address="10.1.1.1",
    )


class TestAppend:
    """Tests for append."""

    async def test_maps_entry_to_row(self, service: AuditService) -> None:
        entry = revoke_entry()

        entry_id = await service.append(entry)

        row = service.repo.create.await_args.args[0]
        assert row.id == entry_id
        assert row.action == AuditAction.PATIENT_REVOKED_ACCESS
        assert row.actor_role == AuditActorRole.PATIENT
        assert row.target_type == AuditTargetType.ACCESS_REQUEST
        assert row.severity == AuditSeverity.MEDIUM
        assert row.status == AuditOutcome.SUCCESS
        assert row.details["doctor_id"] == str(entry.details.doctor_id)
        assert row.details["kind"] == "PATIENT_REVOKED_ACCESS"

    async def test_storage_failure_surfaces(self, service: AuditService) -> None:
        service.repo.create = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception()))

        with pytest.raises(InternalError):
            await service.append(revoke_entry())


class TestFail:
    """Tests for fail."""

    async def test_commits_failure_then_raises(
        self, service: AuditService, mock_session: AsyncMock
    ) -> None:
        with pytest.raises(ForbiddenError):
            await service.fail(revoke_entry(), ForbiddenError("Access denied"))

        row = service.repo.create.await_args.args[0]
        assert row.status == AuditOutcome.FAILURE
        assert row.details["error"] == "Access denied"
        mock_session.commit.assert_awaited_once()

    async def test_commit_failure_is_internal_error(
        self, service: AuditService, mock_session: AsyncMock
    ) -> None:
        mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception())

        with pytest.raises(InternalError):
            await service.fail(revoke_entry(), ForbiddenError())


class TestRecordAdminNote:
    """Tests for record_admin_note."""

    async def test_note_is_admin_action(self, service: AuditService) -> None:
        admin = Principal(actor_id=uuid.uuid4(), role=ActorRole.ADMIN)

        result = await service.record_admin_note(
            admin,
            AdminNoteCreate(description="Reviewed emergency access log", severity="high"),
            ClientInfo(ip_address="10.0.0.1"),
        )

        assert result.action.value == "ADMIN_ACTION"
        assert result.actor_id == admin.actor_id
        assert result.target_type.value == "admin"
        assert result.severity == DomainSeverity.HIGH
        assert result.details.note == "Reviewed emergency access log"
        assert result.timestamp == NOW


class TestQuery:
    """Tests for query."""

    async def test_page_size_is_clamped(self, service: AuditService) -> None:
        row = stored(
            AuditEntry(
                action=AuditAction.MEDICAL_RECORD_VIEWED,
                actor_id=None,
                actor_role=AuditActorRole.EMERGENCY,
                target_type=AuditTargetType.MEDICAL_RECORD,
                target_id=uuid.uuid4(),
                description="Emergency access (token) viewed a medical record",
                details={"emergency_access": True, "token_fingerprint": "abcd"},
                severity=AuditSeverity.HIGH,
                status=AuditOutcome.SUCCESS,
            )
        )
        service.repo.query = AsyncMock(return_value=[row])
        service.repo.count = AsyncMock(return_value=1)

        page = await service.query(AuditQuery(), PageParams(page=1, limit=500))

        assert service.repo.query.await_args.kwargs["limit"] == 100
        assert page.pagination.total == 1
        details = page.items[0].details
        assert isinstance(details, RecordViewedDetails)
        assert details.emergency_access is True
        assert page.items[0].actor_id is None
