"""Access request (consent ledger) API endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.v1.dependencies import Client, CurrentPrincipal, PatientPrincipal
from src.core.config import get_settings
from src.core.database import DbSession
from src.core.pagination import DEFAULT_PAGE_SIZE, OffsetPage, PageParams
from src.models.domain.access_request import (
    AccessRequestApprove,
    AccessRequestCreate,
    AccessRequestCreated,
    AccessRequestRead,
    AccessRequestReject,
    AccessRequestStatus,
)
from src.services.access_request_service import AccessRequestService

router = APIRouter()


def get_access_request_service(session: DbSession) -> AccessRequestService:
    """Get access request service instance."""
    return AccessRequestService(session, get_settings())


AccessRequestSvc = Annotated[AccessRequestService, Depends(get_access_request_service)]

Page = Annotated[int, Query(ge=1, description="Page number")]
Limit = Annotated[int, Query(ge=1, le=100, description="Items per page")]


@router.post("", response_model=AccessRequestCreated, status_code=201)
async def create_access_request(
    data: AccessRequestCreate,
    principal: CurrentPrincipal,
    client: Client,
    service: AccessRequestSvc,
) -> AccessRequestCreated:
    """Request access to a patient's records.

    Only verified doctors succeed; other callers are refused and the
    refusal is audited. If the doctor is on the patient's trust list
    the request is approved immediately. Returns 409 if an identical request
    is already pending within the duplicate window.
    """
    return await service.create_request(principal, data, client)


@router.get("", response_model=OffsetPage[AccessRequestRead])
async def list_access_requests(
    principal: CurrentPrincipal,
    service: AccessRequestSvc,
    status: Annotated[
        AccessRequestStatus | None, Query(description="Filter by effective status")
    ] = None,
    page: Page = 1,
    limit: Limit = DEFAULT_PAGE_SIZE,
) -> OffsetPage[AccessRequestRead]:
    """List access requests visible to the caller, newest first.

    Doctors see requests they made, patients requests addressed to them and
    admins every request.
    """
    return await service.list_requests(principal, PageParams(page=page, limit=limit), status)


@router.get("/pending", response_model=OffsetPage[AccessRequestRead])
async def list_pending_requests(
    principal: PatientPrincipal,
    service: AccessRequestSvc,
    page: Page = 1,
    limit: Limit = DEFAULT_PAGE_SIZE,
) -> OffsetPage[AccessRequestRead]:
    """List pending requests awaiting the calling patient's decision."""
    return await service.list_requests(
        principal,
        PageParams(page=page, limit=limit),
        AccessRequestStatus.PENDING,
    )


@router.get("/{request_id}", response_model=AccessRequestRead)
async def get_access_request(
    request_id: uuid.UUID,
    principal: CurrentPrincipal,
    service: AccessRequestSvc,
) -> AccessRequestRead:
    """Get one access request. Only its doctor, its patient or an admin may read it."""
    return await service.get_request(principal, request_id)


@router.post("/{request_id}/approve", response_model=AccessRequestRead)
async def approve_access_request(
    request_id: uuid.UUID,
    data: AccessRequestApprove,
    principal: CurrentPrincipal,
    client: Client,
    service: AccessRequestSvc,
) -> AccessRequestRead:
    """Approve a pending request addressed to the calling patient.

    Returns 409 with the current state if the request is no longer pending.
    """
    return await service.approve(principal, request_id, data, client)


@router.post("/{request_id}/reject", response_model=AccessRequestRead)
async def reject_access_request(
    request_id: uuid.UUID,
    data: AccessRequestReject,
    principal: CurrentPrincipal,
    client: Client,
    service: AccessRequestSvc,
) -> AccessRequestRead:
    """Reject a pending request addressed to the calling patient."""
    return await service.reject(principal, request_id, data, client)


@router.post("/{request_id}/revoke", response_model=AccessRequestRead)
async def revoke_access_request(
    request_id: uuid.UUID,
    principal: CurrentPrincipal,
    client: Client,
    service: AccessRequestSvc,
) -> AccessRequestRead:
    """Withdraw an approved, unexpired grant from the calling patient."""
    return await service.revoke(principal, request_id, client)
