"""Audit trail API endpoints."""

from datetime import date
from typing import Annotated

import pydantic
from fastapi import APIRouter, Depends, Query

from src.api.v1.dependencies import AdminPrincipal, Client
from src.core.config import get_settings
from src.core.database import DbSession
from src.core.exceptions import ValidationError
from src.core.pagination import DEFAULT_PAGE_SIZE, OffsetPage, PageParams
from src.models.domain.audit import (
    AdminNoteCreate,
    AuditAction,
    AuditActorRole,
    AuditEntryRead,
    AuditQuery,
    AuditSeverity,
    AuditTargetType,
)
from src.services.audit_service import AuditService

router = APIRouter()


def get_audit_service(session: DbSession) -> AuditService:
    """Get audit service instance."""
    return AuditService(session, get_settings())


AuditSvc = Annotated[AuditService, Depends(get_audit_service)]


@router.get("", response_model=OffsetPage[AuditEntryRead])
async def query_audit_log(
    principal: AdminPrincipal,  # noqa: ARG001
    service: AuditSvc,
    action: Annotated[AuditAction | None, Query(description="Filter by action")] = None,
    actor_role: Annotated[
        AuditActorRole | None, Query(description="Filter by actor role")
    ] = None,
    target_type: Annotated[
        AuditTargetType | None, Query(description="Filter by target type")
    ] = None,
    severity: Annotated[AuditSeverity | None, Query(description="Filter by severity")] = None,
    start_date: Annotated[date | None, Query(description="First day, inclusive")] = None,
    end_date: Annotated[date | None, Query(description="Last day, inclusive")] = None,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    limit: Annotated[int, Query(ge=1, description="Items per page")] = DEFAULT_PAGE_SIZE,
) -> OffsetPage[AuditEntryRead]:
    """Query the audit trail, newest first. Admin only.

    The page size is capped at the configured maximum.
    """
    try:
        filters = AuditQuery(
            action=action,
            actor_role=actor_role,
            target_type=target_type,
            severity=severity,
            start_date=start_date,
            end_date=end_date,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid audit query",
            errors=[{"msg": err["msg"]} for err in e.errors()],
        ) from e
    return await service.query(filters, PageParams(page=page, limit=limit))


@router.post("", response_model=AuditEntryRead, status_code=201)
async def add_admin_note(
    note: AdminNoteCreate,
    principal: AdminPrincipal,
    client: Client,
    service: AuditSvc,
) -> AuditEntryRead:
    """Append a manual ``ADMIN_ACTION`` entry. Admin only."""
    return await service.record_admin_note(principal, note, client)
