"""Service for the append-only audit trail."""

import logging
import uuid
from typing import NoReturn

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.exceptions import AppError, InternalError
from src.core.pagination import OffsetPage, PageParams, create_offset_page
from src.models.db.audit import (
    AuditAction,
    AuditActorRole,
    AuditEntry,
    AuditOutcome,
    AuditSeverity,
    AuditTargetType,
)
from src.models.domain.actor import ClientInfo, Principal
from src.models.domain.audit import (
    AdminActionDetails,
    AdminNoteCreate,
    AuditEntryCreate,
    AuditEntryRead,
    AuditQuery,
    audit_details_adapter,
)
from src.models.domain.audit import AuditAction as DomainAuditAction
from src.models.domain.audit import AuditActorRole as DomainAuditActorRole
from src.models.domain.audit import AuditOutcome as DomainAuditOutcome
from src.models.domain.audit import AuditSeverity as DomainAuditSeverity
from src.models.domain.audit import AuditTargetType as DomainAuditTargetType
from src.repositories.audit_repo import AuditRepository

logger = logging.getLogger(__name__)


def actor_role_of(principal: Principal) -> DomainAuditActorRole:
    """Audit role for a principal."""
    return DomainAuditActorRole(principal.role.value)


class AuditService:
    """Appends and queries audit entries.

    Appends never fail silently: a storage error surfaces as InternalError,
    since a lost entry is a gap in the compliance trail.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = AuditRepository(session)

    async def append(self, entry: AuditEntryCreate) -> uuid.UUID:
        """Append an entry to the trail.

        Args:
            entry: The entry to append

        Returns:
            ID of the stored entry

        Raises:
            InternalError: If the entry could not be stored
        """
        created = await self._store(entry)
        return created.id

    async def _store(self, entry: AuditEntryCreate) -> AuditEntry:
        db_entry = AuditEntry(
            action=AuditAction(entry.action.value),
            actor_id=entry.actor_id,
            actor_role=AuditActorRole(entry.actor_role.value) if entry.actor_role else None,
            target_type=AuditTargetType(entry.target_type.value) if entry.target_type else None,
            target_id=entry.target_id,
            description=entry.description,
            details=entry.details.model_dump(mode="json"),
            severity=AuditSeverity(entry.severity.value),
            status=AuditOutcome(entry.status.value),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
        )
        try:
            created = await self.repo.create(db_entry)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append audit entry",
                exc_info=e,
                extra={"action": entry.action.value, "outcome": entry.status.value},
            )
            raise InternalError("The audit trail could not be written") from e

        logger.info(
            "Audit entry appended",
            extra={
                "audit_id": str(created.id),
                "action": entry.action.value,
                "outcome": entry.status.value,
                "severity": entry.severity.value,
            },
        )
        return created

    async def fail(self, entry: AuditEntryCreate, error: AppError) -> NoReturn:
        """Record a refused decision, then raise ``error``.

        The failure entry is committed before raising so it survives the
        rollback the request session performs on error. Callers must not
        have made other changes in the session before calling this.

        Raises:
            AppError: Always ``error``, or InternalError if the entry
                could not be stored
        """
        failure = entry.model_copy(
            update={
                "status": DomainAuditOutcome.FAILURE,
                "details": entry.details.model_copy(update={"error": error.detail}),
            }
        )
        await self.append(failure)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to commit audit entry", exc_info=e)
            raise InternalError("The audit trail could not be written") from e
        raise error

    async def record_admin_note(
        self,
        principal: Principal,
        note: AdminNoteCreate,
        client: ClientInfo,
    ) -> AuditEntryRead:
        """Append a manual ADMIN_ACTION entry written by an administrator."""
        stored = await self._store(
            AuditEntryCreate(
                actor_id=principal.actor_id,
                actor_role=actor_role_of(principal),
                target_type=note.target_type or DomainAuditTargetType.ADMIN,
                target_id=note.target_id,
                description=note.description,
                details=AdminActionDetails(note=note.description, extra=note.extra),
                severity=note.severity,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
        )
        return self._to_read(stored)

    async def query(
        self,
        filters: AuditQuery,
        params: PageParams,
    ) -> OffsetPage[AuditEntryRead]:
        """Query the trail newest first.

        The page size is capped by ``audit_page_size_max``. The total is
        counted separately from the page fetch.
        """
        params = params.clamp(self.settings.audit_page_size_max)
        entries = await self.repo.query(filters, limit=params.limit, offset=params.offset)
        total = await self.repo.count(filters)
        return create_offset_page([self._to_read(e) for e in entries], params, total)

    def _to_read(self, entry: AuditEntry) -> AuditEntryRead:
        """Convert an AuditEntry DB model to AuditEntryRead schema."""
        return AuditEntryRead(
            id=entry.id,
            action=DomainAuditAction(entry.action.value),
            actor_id=entry.actor_id,
            actor_role=DomainAuditActorRole(entry.actor_role.value) if entry.actor_role else None,
            target_type=(
                DomainAuditTargetType(entry.target_type.value) if entry.target_type else None
            ),
            target_id=entry.target_id,
            description=entry.description,
            details=audit_details_adapter.validate_python(
                {**entry.details, "kind": entry.action.value}
            ),
            severity=DomainAuditSeverity(entry.severity.value),
            status=DomainAuditOutcome(entry.status.value),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            timestamp=entry.timestamp,
        )
