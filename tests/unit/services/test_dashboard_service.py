"""Tests for DashboardService."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config import Settings
from src.models.db.access_request import AccessLevel, AccessRequest, AccessRequestStatus
from src.models.db.actor import Doctor, Patient
from src.models.db.audit import AuditAction, AuditEntry, AuditOutcome, AuditSeverity
from src.models.db.verification import DoctorVerification, VerificationStatus
from src.models.domain.access_request import AccessRequestStatus as DomainRequestStatus
from src.models.domain.verification import VerificationStatus as DomainVerificationStatus
from src.services.dashboard_service import DashboardService

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=UTC)


@pytest.fixture
def doctor() -> Doctor:
    return Doctor(
        id=uuid.uuid4(),
        email="ada.reyes@example.com",
        first_name="Ada",
        last_name="Reyes",
    )


@pytest.fixture
def service() -> DashboardService:
    settings = Settings(dashboard_rejection_threshold=4)  # type: ignore[call-arg]
    svc = DashboardService(AsyncMock(), settings)
    svc.verifications = MagicMock()
    svc.requests = MagicMock()
    svc.audit = MagicMock()
    svc.verifications.count_grouped_by_status = AsyncMock(return_value={})
    svc.verifications.count_doctors_without_record = AsyncMock(return_value=0)
    svc.verifications.count_submitted_since = AsyncMock(return_value=0)
    svc.verifications.list_awaiting_review = AsyncMock(return_value=[])
    svc.requests.count_by_effective_status = AsyncMock(return_value={})
    svc.requests.list_requests = AsyncMock(return_value=[])
    svc.requests.doctors_with_rejections = AsyncMock(return_value=[])
    svc.audit.list_severe = AsyncMock(return_value=[])
    return svc


class TestCounts:
    """Tests for the status count maps."""

    async def test_empty_database_reports_zero_everywhere(
        self, service: DashboardService
    ) -> None:
        stats = await service.get_stats(NOW)

        assert stats.verifications.total == 0
        assert set(stats.verifications.by_status) == set(DomainVerificationStatus)
        assert all(count == 0 for count in stats.verifications.by_status.values())
        assert stats.access_requests.total == 0
        assert set(stats.access_requests.by_status) == set(DomainRequestStatus)
        assert stats.pending_verifications == []
        assert stats.flagged_doctors == []
        assert stats.generated_at == NOW

    async def test_doctors_without_a_record_count_as_not_submitted(
        self, service: DashboardService
    ) -> None:
        service.verifications.count_grouped_by_status.return_value = {
            VerificationStatus.NOT_SUBMITTED: 1,
            VerificationStatus.VERIFIED: 5,
            VerificationStatus.SUBMITTED: 2,
        }
        service.verifications.count_doctors_without_record.return_value = 3

        stats = await service.get_stats(NOW)

        by_status = stats.verifications.by_status
        assert by_status[DomainVerificationStatus.NOT_SUBMITTED] == 4
        assert by_status[DomainVerificationStatus.VERIFIED] == 5
        assert by_status[DomainVerificationStatus.SUSPENDED] == 0
        assert stats.verifications.total == 11

    async def test_month_starts_at_utc_midnight_on_the_first(
        self, service: DashboardService
    ) -> None:
        service.verifications.count_submitted_since.return_value = 7

        stats = await service.get_stats(NOW)

        assert stats.verifications.submitted_this_month == 7
        service.verifications.count_submitted_since.assert_awaited_once_with(
            datetime(2026, 3, 1, tzinfo=UTC)
        )

    async def test_access_request_counts_use_effective_status(
        self, service: DashboardService
    ) -> None:
        service.requests.count_by_effective_status.return_value = {
            AccessRequestStatus.PENDING: 2,
            AccessRequestStatus.EXPIRED: 3,
            AccessRequestStatus.APPROVED: 1,
        }

        stats = await service.get_stats(NOW)

        service.requests.count_by_effective_status.assert_awaited_once_with(NOW)
        assert stats.access_requests.by_status[DomainRequestStatus.EXPIRED] == 3
        assert stats.access_requests.by_status[DomainRequestStatus.REJECTED] == 0
        assert stats.access_requests.total == 6


class TestQueues:
    """Tests for the short lists."""

    async def test_pending_verifications(
        self, service: DashboardService, doctor: Doctor
    ) -> None:
        verification = DoctorVerification(
            id=uuid.uuid4(),
            doctor_id=doctor.id,
            status=VerificationStatus.UNDER_REVIEW,
            documents=[{"document_type": "GOVERNMENT_ID"}],
            submission_history=[],
            submitted_at=NOW - timedelta(days=1),
        )
        verification.doctor = doctor
        service.verifications.list_awaiting_review.return_value = [verification]

        stats = await service.get_stats(NOW)

        service.verifications.list_awaiting_review.assert_awaited_once_with(limit=5)
        [item] = stats.pending_verifications
        assert item.doctor_name == "Ada Reyes"
        assert item.status == DomainVerificationStatus.UNDER_REVIEW
        assert item.document_count == 1

    async def test_pending_access_requests(
        self, service: DashboardService, doctor: Doctor
    ) -> None:
        patient = Patient(id=uuid.uuid4(), email="sam.cole@example.com")
        request = AccessRequest(
            id=uuid.uuid4(),
            doctor_id=doctor.id,
            patient_id=patient.id,
            status=AccessRequestStatus.PENDING,
            reason="Follow-up on lab results",
            access_level=AccessLevel.READ,
            record_categories=["all"],
            requested_at=NOW - timedelta(hours=2),
        )
        request.doctor = doctor
        request.patient = patient
        service.requests.list_requests.return_value = [request]

        stats = await service.get_stats(NOW)

        service.requests.list_requests.assert_awaited_once_with(
            NOW, status=AccessRequestStatus.PENDING, limit=10
        )
        [item] = stats.pending_access_requests
        assert item.doctor_name == "Ada Reyes"
        assert item.patient_name == "sam.cole@example.com"
        assert item.reason == "Follow-up on lab results"

    async def test_flagged_doctors_use_configured_threshold(
        self, service: DashboardService, doctor: Doctor
    ) -> None:
        service.requests.doctors_with_rejections.return_value = [(doctor, 6)]

        stats = await service.get_stats(NOW)

        service.requests.doctors_with_rejections.assert_awaited_once_with(4, limit=5)
        [flagged] = stats.flagged_doctors
        assert flagged.doctor_id == doctor.id
        assert flagged.rejection_count == 6

    async def test_critical_entries_name_the_actor_or_system(
        self, service: DashboardService, doctor: Doctor
    ) -> None:
        def entry(actor_id: uuid.UUID | None, severity: AuditSeverity) -> AuditEntry:
            return AuditEntry(
                id=uuid.uuid4(),
                action=AuditAction.MEDICAL_RECORD_VIEWED,
                actor_id=actor_id,
                description="Emergency access (token) refused",
                details={},
                severity=severity,
                status=AuditOutcome.FAILURE,
                timestamp=NOW,
            )

        service.audit.list_severe.return_value = [
            (entry(doctor.id, AuditSeverity.CRITICAL), doctor),
            (entry(None, AuditSeverity.HIGH), None),
        ]

        stats = await service.get_stats(NOW)

        service.audit.list_severe.assert_awaited_once_with(limit=10)
        assert [e.actor_name for e in stats.critical_audit_entries] == ["Ada Reyes", "System"]
        assert stats.critical_audit_entries[0].severity == "critical"
