"""Doctor verification API endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.v1.dependencies import (
    AdminPrincipal,
    Client,
    CurrentPrincipal,
    DoctorPrincipal,
    actor_id_of,
)
from src.core.config import get_settings
from src.core.database import DbSession
from src.core.pagination import DEFAULT_PAGE_SIZE, OffsetPage, PageParams
from src.models.domain.verification import (
    VerificationRead,
    VerificationReview,
    VerificationStatus,
    VerificationSubmit,
    VerificationSubmitResult,
    VerificationSummary,
)
from src.services.verification_service import VerificationService

router = APIRouter()


def get_verification_service(session: DbSession) -> VerificationService:
    """Get verification service instance."""
    return VerificationService(session, get_settings())


VerificationSvc = Annotated[VerificationService, Depends(get_verification_service)]


@router.post("", response_model=VerificationSubmitResult)
async def submit_documents(
    submission: VerificationSubmit,
    principal: CurrentPrincipal,
    client: Client,
    service: VerificationSvc,
) -> VerificationSubmitResult:
    """Submit or resubmit verification documents.

    Documents with a disallowed type, MIME type or size are dropped and
    reported in ``warnings``. Returns 422 if no document is valid and 409
    while the record is under review or suspended.
    """
    return await service.submit(principal, submission, client)


@router.get("/me", response_model=VerificationRead)
async def get_my_verification(
    principal: DoctorPrincipal,
    service: VerificationSvc,
) -> VerificationRead:
    """Get the calling doctor's verification status.

    Returns status ``not_submitted`` when no documents were ever submitted.
    """
    return await service.get_status(actor_id_of(principal))


@router.get("", response_model=OffsetPage[VerificationSummary])
async def list_verifications(
    principal: AdminPrincipal,  # noqa: ARG001
    service: VerificationSvc,
    status: Annotated[
        VerificationStatus | None, Query(description="Filter by verification status")
    ] = None,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Items per page")] = DEFAULT_PAGE_SIZE,
) -> OffsetPage[VerificationSummary]:
    """List verification records, most recently submitted first. Admin only."""
    return await service.list_verifications(status, PageParams(page=page, limit=limit))


@router.get("/doctors/{doctor_id}", response_model=VerificationRead)
async def get_doctor_verification(
    doctor_id: uuid.UUID,
    principal: AdminPrincipal,  # noqa: ARG001
    service: VerificationSvc,
) -> VerificationRead:
    """Get a doctor's verification record including its history. Admin only."""
    return await service.get_status(doctor_id)


@router.post("/{verification_id}/review", response_model=VerificationRead)
async def review_verification(
    verification_id: uuid.UUID,
    review: VerificationReview,
    principal: CurrentPrincipal,
    client: Client,
    service: VerificationSvc,
) -> VerificationRead:
    """Apply a review decision to a verification record. Admin only; other
    callers are refused and the refusal is audited.

    ``reject`` and ``suspend`` require a reason, ``request_resubmission``
    requires notes. Returns 409 when the decision is not allowed from the
    current state.
    """
    return await service.review(principal, verification_id, review, client)
