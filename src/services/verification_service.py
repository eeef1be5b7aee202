"""Service for the doctor verification gate.

A doctor may request patient access only once their verification record is
``verified``. Doctors submit documents; admins review them.

    not_submitted -> submitted                   (doctor submits)
    submitted -> under_review                    (admin starts review)
    submitted | under_review -> verified         (admin approves)
    submitted | under_review -> rejected         (admin rejects, reason required)
    submitted | under_review -> need_resubmission (admin asks for changes)
    verified | rejected | need_resubmission -> submitted (doctor resubmits)
    any state except suspended -> suspended      (admin suspends, reason required)
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from src.core.pagination import OffsetPage, PageParams, create_offset_page
from src.models.db.verification import DocumentType, DoctorVerification, VerificationStatus
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.models.domain.audit import (
    AuditEntryCreate,
    AuditSeverity,
    AuditTargetType,
    VerificationApprovedDetails,
    VerificationRejectedDetails,
    VerificationResubmissionRequestedDetails,
    VerificationStatusChangedDetails,
    VerificationSubmittedDetails,
    VerificationSuspendedDetails,
)
from src.models.domain.verification import (
    DocumentUpload,
    ReviewAction,
    SubmissionHistoryEntry,
    VerificationDocument,
    VerificationRead,
    VerificationReview,
    VerificationSubmit,
    VerificationSubmitResult,
    VerificationSummary,
)
from src.models.domain.verification import VerificationStatus as DomainVerificationStatus
from src.repositories.actor_repo import ActorRepository
from src.repositories.verification_repo import VerificationRepository
from src.services.audit_service import AuditService, actor_role_of

logger = logging.getLogger(__name__)

# States a doctor may submit from. Resubmitting from these two archives the
# current round into the submission history first.
SUBMITTABLE_STATES = frozenset(
    {
        VerificationStatus.NOT_SUBMITTED,
        VerificationStatus.SUBMITTED,
        VerificationStatus.VERIFIED,
        VerificationStatus.REJECTED,
        VerificationStatus.NEED_RESUBMISSION,
    }
)
ARCHIVED_ON_RESUBMIT = frozenset(
    {VerificationStatus.REJECTED, VerificationStatus.NEED_RESUBMISSION}
)
REVIEWABLE_STATES = frozenset({VerificationStatus.SUBMITTED, VerificationStatus.UNDER_REVIEW})

_REVIEW_DETAILS = {
    ReviewAction.START_REVIEW: VerificationStatusChangedDetails,
    ReviewAction.APPROVE: VerificationApprovedDetails,
    ReviewAction.REJECT: VerificationRejectedDetails,
    ReviewAction.REQUEST_RESUBMISSION: VerificationResubmissionRequestedDetails,
    ReviewAction.SUSPEND: VerificationSuspendedDetails,
}


class VerificationService:
    """Service for doctor verification submissions and admin reviews."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = VerificationRepository(session)
        self.actors = ActorRepository(session)
        self.audit = AuditService(session, self.settings)

    def check_document(self, document: DocumentUpload) -> str | None:
        """Validate one submitted document.

        Returns:
            A warning describing why the document was dropped, or None if
            it is acceptable
        """
        if document.document_type.upper() not in {t.value for t in DocumentType}:
            return f"{document.file_name}: unsupported document type '{document.document_type}'"
        if document.file_size > self.settings.verification_max_document_size:
            return f"{document.file_name}: file exceeds the maximum size"
        if document.mime_type.lower() not in self.settings.allowed_mime_types:
            return f"{document.file_name}: file type '{document.mime_type}' is not allowed"
        return None

    def missing_documents(self, verification: DoctorVerification) -> list[str]:
        """Required document types not present in the current round."""
        present = {d.get("document_type") for d in verification.documents}
        return sorted(self.settings.required_document_types - present)

    async def submit(
        self,
        principal: Principal,
        submission: VerificationSubmit,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> VerificationSubmitResult:
        """Submit or resubmit verification documents.

        Invalid documents are dropped with a warning; the submission is
        accepted as long as one document is valid. Completeness is checked
        at review time, not here.

        Raises:
            ForbiddenError: If the caller is not a doctor
            ValidationError: If no submitted document is valid
            ConflictError: If the record is under review or suspended
        """
        now = now or datetime.now(UTC)
        if principal.role != ActorRole.DOCTOR or principal.actor_id is None:
            await self.audit.fail(
                AuditEntryCreate(
                    actor_id=principal.actor_id,
                    actor_role=actor_role_of(principal),
                    target_type=AuditTargetType.VERIFICATION,
                    description="Doctor submitted verification documents",
                    details=VerificationSubmittedDetails(
                        document_count=len(submission.documents)
                    ),
                    severity=AuditSeverity.MEDIUM,
                    ip_address=client.ip_address,
                    user_agent=client.user_agent,
                ),
                ForbiddenError("Only doctors can submit verification documents"),
            )

        doctor = await self.actors.get_doctor(principal.actor_id)
        if doctor is None:
            raise NotFoundError(resource="Doctor", resource_id=str(principal.actor_id))

        verification = await self.repo.get_by_doctor(doctor.id, for_update=True)
        previous = verification.status if verification else VerificationStatus.NOT_SUBMITTED

        accepted: list[dict[str, Any]] = []
        warnings: list[str] = []
        for document in submission.documents:
            warning = self.check_document(document)
            if warning is not None:
                warnings.append(warning)
                continue
            accepted.append(
                VerificationDocument(
                    document_type=document.document_type.upper(),
                    file_name=document.file_name,
                    file_url=document.file_url,
                    file_size=document.file_size,
                    mime_type=document.mime_type.lower(),
                    uploaded_at=now,
                ).model_dump(mode="json")
            )

        entry = AuditEntryCreate(
            actor_id=doctor.id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.VERIFICATION,
            target_id=verification.id if verification else None,
            description="Doctor submitted verification documents",
            details=VerificationSubmittedDetails(
                document_types=[d["document_type"] for d in accepted],
                document_count=len(accepted),
                previous_status=previous.value,
                warnings=warnings,
            ),
            severity=AuditSeverity.MEDIUM,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        if not accepted:
            await self.audit.fail(
                entry,
                ValidationError(
                    "No valid documents were submitted",
                    errors=[{"msg": w} for w in warnings],
                ),
            )
        if previous not in SUBMITTABLE_STATES:
            await self.audit.fail(
                entry,
                ConflictError(
                    f"Documents cannot be submitted while verification is {previous.value}",
                    current_state=previous.value,
                ),
            )

        if verification is None:
            verification = await self.repo.create(
                DoctorVerification(
                    doctor=doctor,
                    status=VerificationStatus.SUBMITTED,
                    documents=accepted,
                    submission_history=[],
                    submitted_at=now,
                )
            )
        else:
            if previous in ARCHIVED_ON_RESUBMIT:
                archived = SubmissionHistoryEntry(
                    submitted_at=verification.submitted_at,
                    archived_at=now,
                    status=DomainVerificationStatus(previous.value),
                    documents=[VerificationDocument(**d) for d in verification.documents],
                    rejection_reason=verification.rejection_reason,
                    reviewer_notes=verification.reviewer_notes,
                )
                verification.submission_history = [
                    *verification.submission_history,
                    archived.model_dump(mode="json"),
                ]
                verification.rejection_reason = None
                verification.reviewer_notes = None
            verification.status = VerificationStatus.SUBMITTED
            verification.documents = accepted
            verification.submitted_at = now
            verification = await self.repo.save(verification)

        await self.audit.append(entry.model_copy(update={"target_id": verification.id}))
        logger.info(
            "Verification documents submitted",
            extra={
                "doctor_id": str(doctor.id),
                "previous_status": previous.value,
                "accepted": len(accepted),
                "dropped": len(warnings),
            },
        )
        return VerificationSubmitResult(
            verification=self._to_read(verification, doctor.id),
            accepted_count=len(accepted),
            warnings=warnings,
        )

    async def get_status(self, doctor_id: uuid.UUID) -> VerificationRead:
        """Get a doctor's verification record, ``not_submitted`` if none exists."""
        verification = await self.repo.get_by_doctor(doctor_id)
        return self._to_read(verification, doctor_id)

    async def list_verifications(
        self,
        status: DomainVerificationStatus | None,
        params: PageParams,
    ) -> OffsetPage[VerificationSummary]:
        """List verification records for the admin queue."""
        db_status = VerificationStatus(status.value) if status else None
        rows = await self.repo.list_by_status(db_status, limit=params.limit, offset=params.offset)
        total = await self.repo.count_by_status(db_status)
        return create_offset_page([self._to_summary(v) for v in rows], params, total)

    async def review(
        self,
        principal: Principal,
        verification_id: uuid.UUID,
        review: VerificationReview,
        client: ClientInfo,
        now: datetime | None = None,
    ) -> VerificationRead:
        """Apply an admin review decision.

        Raises:
            ForbiddenError: If the caller is not an admin
            NotFoundError: If the verification record does not exist
            ConflictError: If the decision is not allowed from the current state
            ValidationError: If approval or review start is attempted with
                required documents missing
        """
        now = now or datetime.now(UTC)
        is_admin = principal.role == ActorRole.ADMIN and principal.actor_id is not None
        verification = (
            await self.repo.get_by_id(verification_id, for_update=True) if is_admin else None
        )
        previous = verification.status if verification else None
        details_cls = _REVIEW_DETAILS[review.action]
        details_fields: dict[str, Any] = {
            "previous_status": previous.value if previous else None,
        }
        if review.action in (ReviewAction.REJECT, ReviewAction.SUSPEND):
            details_fields["reason"] = review.reason
        elif review.action == ReviewAction.START_REVIEW:
            details_fields["new_status"] = VerificationStatus.UNDER_REVIEW.value
        else:
            details_fields["notes"] = review.notes

        entry = AuditEntryCreate(
            actor_id=principal.actor_id,
            actor_role=actor_role_of(principal),
            target_type=AuditTargetType.VERIFICATION,
            target_id=verification_id,
            description=f"Admin review: {review.action.value.replace('_', ' ')}",
            details=details_cls(**details_fields),
            severity=AuditSeverity.HIGH,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

        if not is_admin:
            await self.audit.fail(
                entry, ForbiddenError("Only administrators can review verifications")
            )
        if verification is None or previous is None:
            await self.audit.fail(
                entry,
                NotFoundError(resource="Verification", resource_id=str(verification_id)),
            )

        if review.action == ReviewAction.SUSPEND:
            allowed = previous != VerificationStatus.SUSPENDED
        elif review.action == ReviewAction.START_REVIEW:
            allowed = previous == VerificationStatus.SUBMITTED
        else:
            allowed = previous in REVIEWABLE_STATES
        if not allowed:
            await self.audit.fail(
                entry,
                ConflictError(
                    f"Cannot {review.action.value.replace('_', ' ')} a verification "
                    f"that is {previous.value}",
                    current_state=previous.value,
                ),
            )

        if review.action in (ReviewAction.APPROVE, ReviewAction.START_REVIEW):
            missing = self.missing_documents(verification)
            if missing:
                await self.audit.fail(
                    entry,
                    ValidationError(
                        f"Required documents missing: {', '.join(missing)}",
                        errors=[{"document_type": m, "msg": "missing"} for m in missing],
                    ),
                )

        self._apply_review(verification, review, principal.actor_id, now)
        verification = await self.repo.save(verification)
        await self.audit.append(entry)

        logger.info(
            "Verification reviewed",
            extra={
                "verification_id": str(verification.id),
                "action": review.action.value,
                "previous_status": previous.value,
                "new_status": verification.status.value,
            },
        )
        return self._to_read(verification, verification.doctor_id)

    def _apply_review(
        self,
        verification: DoctorVerification,
        review: VerificationReview,
        admin_id: uuid.UUID,
        now: datetime,
    ) -> None:
        if review.action == ReviewAction.START_REVIEW:
            verification.status = VerificationStatus.UNDER_REVIEW
        elif review.action == ReviewAction.APPROVE:
            verification.status = VerificationStatus.VERIFIED
            verification.verified_at = now
            verification.verified_by = admin_id
            verification.rejection_reason = None
            verification.suspension_reason = None
        elif review.action == ReviewAction.REJECT:
            verification.status = VerificationStatus.REJECTED
            verification.rejection_reason = review.reason
            verification.rejected_at = now
            verification.rejected_by = admin_id
        elif review.action == ReviewAction.REQUEST_RESUBMISSION:
            verification.status = VerificationStatus.NEED_RESUBMISSION
        elif review.action == ReviewAction.SUSPEND:
            verification.status = VerificationStatus.SUSPENDED
            verification.suspension_reason = review.reason
            verification.suspended_at = now

        if review.notes:
            verification.reviewer_notes = review.notes
        verification.last_reviewed_at = now
        verification.last_reviewed_by = admin_id

    def _to_read(
        self,
        verification: DoctorVerification | None,
        doctor_id: uuid.UUID,
    ) -> VerificationRead:
        """Convert a DoctorVerification DB model to VerificationRead schema."""
        if verification is None:
            return VerificationRead(
                doctor_id=doctor_id,
                status=DomainVerificationStatus.NOT_SUBMITTED,
            )
        return VerificationRead(
            id=verification.id,
            doctor_id=verification.doctor_id,
            status=DomainVerificationStatus(verification.status.value),
            documents=[VerificationDocument(**d) for d in verification.documents],
            submission_history=[
                SubmissionHistoryEntry(**h) for h in verification.submission_history
            ],
            submitted_at=verification.submitted_at,
            reviewer_notes=verification.reviewer_notes,
            rejection_reason=verification.rejection_reason,
            suspension_reason=verification.suspension_reason,
            verified_at=verification.verified_at,
            rejected_at=verification.rejected_at,
            suspended_at=verification.suspended_at,
            last_reviewed_at=verification.last_reviewed_at,
            last_reviewed_by=verification.last_reviewed_by,
        )

    def _to_summary(self, verification: DoctorVerification) -> VerificationSummary:
        doctor = verification.doctor
        return VerificationSummary(
            id=verification.id,
            doctor_id=verification.doctor_id,
            doctor_email=doctor.email,
            doctor_name=doctor.display_name,
            specialization=doctor.specialization,
            hospital=doctor.hospital,
            status=DomainVerificationStatus(verification.status.value),
            document_count=len(verification.documents),
            submitted_at=verification.submitted_at,
            last_reviewed_at=verification.last_reviewed_at,
        )
