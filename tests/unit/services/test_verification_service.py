"""Tests for VerificationService."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from src.models.db.actor import Doctor
from src.models.db.verification import DoctorVerification, VerificationStatus
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.models.domain.audit import AuditActorRole
from src.models.domain.verification import (
    DocumentUpload,
    ReviewAction,
    VerificationReview,
    VerificationSubmit,
)
from src.models.domain.verification import VerificationStatus as DomainStatus
from src.services.verification_service import VerificationService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def upload(
    document_type: str = "GOVERNMENT_ID",
    file_name: str = "id.pdf",
    file_size: int = 1024,
    mime_type: str = "application/pdf",
) -> DocumentUpload:
    return DocumentUpload(
        document_type=document_type,
        file_name=file_name,
        file_url=f"s3://verification/{file_name}",
        file_size=file_size,
        mime_type=mime_type,
    )


def stored_document(document_type: str) -> dict:
    return {
        "document_type": document_type,
        "file_name": f"{document_type.lower()}.pdf",
        "file_url": f"s3://verification/{document_type.lower()}.pdf",
        "file_size": 2048,
        "mime_type": "application/pdf",
        "uploaded_at": (NOW - timedelta(days=2)).isoformat(),
    }


def make_verification(
    doctor_id: uuid.UUID,
    status: VerificationStatus,
    documents: list[dict] | None = None,
) -> DoctorVerification:
    return DoctorVerification(
        id=uuid.uuid4(),
        doctor_id=doctor_id,
        status=status,
        documents=documents
        if documents is not None
        else [stored_document("GOVERNMENT_ID"), stored_document("MEDICAL_CERTIFICATE")],
        submission_history=[],
        submitted_at=NOW - timedelta(days=2),
    )


async def _raise(entry, error):  # noqa: ANN001, ANN202
    raise error


@pytest.fixture
def doctor() -> Doctor:
    return Doctor(
        id=uuid.uuid4(),
        email="ada.reyes@example.com",
        first_name="Ada",
        last_name="Reyes",
    )


@pytest.fixture
def client() -> ClientInfo:
    return ClientInfo(ip_address="198.51.100.7", user_agent="pytest")


@pytest.fixture
def admin() -> Principal:
    return Principal(actor_id=uuid.uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def service(doctor: Doctor) -> VerificationService:
    svc = VerificationService(AsyncMock())
    svc.repo = MagicMock()
    svc.actors = MagicMock()
    svc.audit = MagicMock()
    svc.audit.append = AsyncMock(return_value=uuid.uuid4())
    svc.audit.fail = AsyncMock(side_effect=_raise)
    svc.actors.get_doctor = AsyncMock(return_value=doctor)
    svc.repo.save = AsyncMock(side_effect=lambda v: v)
    return svc


class TestCheckDocument:
    """Tests for check_document."""

    def test_accepts_known_type(self, service: VerificationService) -> None:
        assert service.check_document(upload()) is None

    def test_type_is_case_insensitive(self, service: VerificationService) -> None:
        assert service.check_document(upload(document_type="medical_certificate")) is None

    def test_rejects_unknown_type(self, service: VerificationService) -> None:
        warning = service.check_document(upload(document_type="PASSPORT_PHOTO"))
        assert warning is not None
        assert "unsupported document type" in warning

    def test_rejects_oversized_file(self, service: VerificationService) -> None:
        warning = service.check_document(upload(file_size=10 * 1024 * 1024 + 1))
        assert warning == "id.pdf: file exceeds the maximum size"

    def test_rejects_disallowed_mime_type(self, service: VerificationService) -> None:
        warning = service.check_document(upload(mime_type="application/zip"))
        assert warning is not None
        assert "application/zip" in warning


class TestSubmit:
    """Tests for submit."""

    async def test_first_submission_creates_record(
        self, service: VerificationService, doctor: Doctor, client: ClientInfo
    ) -> None:
        service.repo.get_by_doctor = AsyncMock(return_value=None)

        async def _create(verification: DoctorVerification) -> DoctorVerification:
            verification.id = uuid.uuid4()
            verification.doctor_id = doctor.id
            return verification

        service.repo.create = AsyncMock(side_effect=_create)

        result = await service.submit(
            Principal(actor_id=doctor.id, role=ActorRole.DOCTOR),
            VerificationSubmit(
                documents=[upload(), upload("PASSPORT_PHOTO", "photo.png", mime_type="image/png")]
            ),
            client,
            now=NOW,
        )

        assert result.verification.status == DomainStatus.SUBMITTED
        assert result.accepted_count == 1
        assert len(result.warnings) == 1
        entry = service.audit.append.await_args.args[0]
        assert entry.action.value == "DOCTOR_VERIFICATION_SUBMITTED"
        assert entry.details.previous_status == "not_submitted"
        assert entry.target_id == result.verification.id

    async def test_no_valid_documents(
        self, service: VerificationService, doctor: Doctor, client: ClientInfo
    ) -> None:
        service.repo.get_by_doctor = AsyncMock(return_value=None)
        service.repo.create = AsyncMock()

        with pytest.raises(ValidationError, match="No valid documents"):
            await service.submit(
                Principal(actor_id=doctor.id, role=ActorRole.DOCTOR),
                VerificationSubmit(documents=[upload(mime_type="text/plain")]),
                client,
                now=NOW,
            )
        service.repo.create.assert_not_awaited()
        service.audit.fail.assert_awaited_once()

    async def test_under_review_conflicts(
        self, service: VerificationService, doctor: Doctor, client: ClientInfo
    ) -> None:
        service.repo.get_by_doctor = AsyncMock(
            return_value=make_verification(doctor.id, VerificationStatus.UNDER_REVIEW)
        )

        with pytest.raises(ConflictError) as exc_info:
            await service.submit(
                Principal(actor_id=doctor.id, role=ActorRole.DOCTOR),
                VerificationSubmit(documents=[upload()]),
                client,
                now=NOW,
            )
        assert exc_info.value.extra["current_state"] == "under_review"

    async def test_resubmit_after_rejection_archives_round(
        self, service: VerificationService, doctor: Doctor, client: ClientInfo
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.REJECTED)
        verification.rejection_reason = "Certificate illegible"
        service.repo.get_by_doctor = AsyncMock(return_value=verification)

        result = await service.submit(
            Principal(actor_id=doctor.id, role=ActorRole.DOCTOR),
            VerificationSubmit(documents=[upload(), upload("MEDICAL_CERTIFICATE", "cert.pdf")]),
            client,
            now=NOW,
        )

        read = result.verification
        assert read.status == DomainStatus.SUBMITTED
        assert read.rejection_reason is None
        assert len(read.submission_history) == 1
        archived = read.submission_history[0]
        assert archived.status == DomainStatus.REJECTED
        assert archived.rejection_reason == "Certificate illegible"
        assert archived.archived_at == NOW
        assert len(archived.documents) == 2

    async def test_resubmit_while_submitted_does_not_archive(
        self, service: VerificationService, doctor: Doctor, client: ClientInfo
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.SUBMITTED)
        service.repo.get_by_doctor = AsyncMock(return_value=verification)

        result = await service.submit(
            Principal(actor_id=doctor.id, role=ActorRole.DOCTOR),
            VerificationSubmit(documents=[upload()]),
            client,
            now=NOW,
        )

        assert result.verification.submission_history == []
        assert len(result.verification.documents) == 1

    async def test_non_doctor_is_forbidden(
        self, service: VerificationService, client: ClientInfo
    ) -> None:
        with pytest.raises(ForbiddenError):
            await service.submit(
                Principal(actor_id=uuid.uuid4(), role=ActorRole.PATIENT),
                VerificationSubmit(documents=[upload()]),
                client,
            )

        failed = service.audit.fail.await_args.args[0]
        assert failed.actor_role == AuditActorRole.PATIENT
        service.actors.get_doctor.assert_not_called()


class TestReview:
    """Tests for review."""

    async def test_approve_with_required_documents(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.UNDER_REVIEW)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        result = await service.review(
            admin,
            verification.id,
            VerificationReview(action=ReviewAction.APPROVE, notes="Checked with registry"),
            client,
            now=NOW,
        )

        assert result.status == DomainStatus.VERIFIED
        assert result.verified_at == NOW
        assert result.reviewer_notes == "Checked with registry"
        assert result.last_reviewed_by == admin.actor_id
        entry = service.audit.append.await_args.args[0]
        assert entry.action.value == "DOCTOR_VERIFICATION_APPROVED"
        assert entry.severity.value == "high"

    async def test_approve_with_missing_documents(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(
            doctor.id, VerificationStatus.SUBMITTED, [stored_document("GOVERNMENT_ID")]
        )
        service.repo.get_by_id = AsyncMock(return_value=verification)

        with pytest.raises(ValidationError, match="MEDICAL_CERTIFICATE"):
            await service.review(
                admin,
                verification.id,
                VerificationReview(action=ReviewAction.APPROVE),
                client,
                now=NOW,
            )
        assert verification.status == VerificationStatus.SUBMITTED
        service.repo.save.assert_not_awaited()

    async def test_reject_records_reason(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.SUBMITTED)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        result = await service.review(
            admin,
            verification.id,
            VerificationReview(action=ReviewAction.REJECT, reason="License expired"),
            client,
            now=NOW,
        )

        assert result.status == DomainStatus.REJECTED
        assert result.rejection_reason == "License expired"
        assert result.rejected_at == NOW
        assert service.audit.append.await_args.args[0].details.reason == "License expired"

    async def test_start_review_only_from_submitted(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.UNDER_REVIEW)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        with pytest.raises(ConflictError):
            await service.review(
                admin,
                verification.id,
                VerificationReview(action=ReviewAction.START_REVIEW),
                client,
                now=NOW,
            )

    async def test_verified_cannot_be_rejected(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.VERIFIED)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        with pytest.raises(ConflictError) as exc_info:
            await service.review(
                admin,
                verification.id,
                VerificationReview(action=ReviewAction.REJECT, reason="Second thoughts"),
                client,
                now=NOW,
            )
        assert exc_info.value.extra["current_state"] == "verified"
        service.audit.fail.assert_awaited_once()

    async def test_suspend_verified_doctor(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.VERIFIED)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        result = await service.review(
            admin,
            verification.id,
            VerificationReview(action=ReviewAction.SUSPEND, reason="Under investigation"),
            client,
            now=NOW,
        )

        assert result.status == DomainStatus.SUSPENDED
        assert result.suspension_reason == "Under investigation"

    async def test_suspended_cannot_be_suspended_again(
        self,
        service: VerificationService,
        doctor: Doctor,
        admin: Principal,
        client: ClientInfo,
    ) -> None:
        verification = make_verification(doctor.id, VerificationStatus.SUSPENDED)
        service.repo.get_by_id = AsyncMock(return_value=verification)

        with pytest.raises(ConflictError):
            await service.review(
                admin,
                verification.id,
                VerificationReview(action=ReviewAction.SUSPEND, reason="Again"),
                client,
                now=NOW,
            )

    async def test_unknown_verification(
        self, service: VerificationService, admin: Principal, client: ClientInfo
    ) -> None:
        service.repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await service.review(
                admin,
                uuid.uuid4(),
                VerificationReview(action=ReviewAction.APPROVE),
                client,
                now=NOW,
            )

    async def test_non_admin_is_forbidden(
        self, service: VerificationService, client: ClientInfo
    ) -> None:
        verification_id = uuid.uuid4()
        service.repo.get_by_id = AsyncMock()

        with pytest.raises(ForbiddenError):
            await service.review(
                Principal(actor_id=uuid.uuid4(), role=ActorRole.DOCTOR),
                verification_id,
                VerificationReview(action=ReviewAction.APPROVE),
                client,
            )

        failed = service.audit.fail.await_args.args[0]
        assert failed.target_id == verification_id
        assert failed.details.kind == "DOCTOR_VERIFICATION_APPROVED"
        service.repo.get_by_id.assert_not_awaited()


class TestGetStatus:
    """Tests for get_status."""

    async def test_never_submitted(self, service: VerificationService) -> None:
        doctor_id = uuid.uuid4()
        service.repo.get_by_doctor = AsyncMock(return_value=None)

        result = await service.get_status(doctor_id)

        assert result.status == DomainStatus.NOT_SUBMITTED
        assert result.id is None
        assert result.doctor_id == doctor_id
