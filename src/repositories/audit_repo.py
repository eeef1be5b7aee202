"""Repository for the audit trail.

Only inserts and reads are offered. There is deliberately no update or
delete method.
"""

from datetime import UTC, datetime, time, timedelta

from sqlalchemy import ColumnElement, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.db.actor import Actor
from src.models.db.audit import (
    AuditAction,
    AuditActorRole,
    AuditEntry,
    AuditSeverity,
    AuditTargetType,
)
from src.models.domain.audit import AuditQuery


class AuditRepository:
    """Repository for audit entry database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry.

        Args:
            entry: The entry to append

        Returns:
            The stored entry with its ID and timestamp
        """
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry)
        return entry

    def _conditions(self, filters: AuditQuery) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if filters.action is not None:
            conditions.append(AuditEntry.action == AuditAction(filters.action.value))
        if filters.actor_role is not None:
            conditions.append(
                AuditEntry.actor_role == AuditActorRole(filters.actor_role.value)
            )
        if filters.target_type is not None:
            conditions.append(
                AuditEntry.target_type == AuditTargetType(filters.target_type.value)
            )
        if filters.severity is not None:
            conditions.append(AuditEntry.severity == AuditSeverity(filters.severity.value))
        if filters.start_date is not None:
            start = datetime.combine(filters.start_date, time.min, tzinfo=UTC)
            conditions.append(AuditEntry.timestamp >= start)
        if filters.end_date is not None:
            # End date is inclusive of the whole day
            end = datetime.combine(filters.end_date, time.min, tzinfo=UTC) + timedelta(days=1)
            conditions.append(AuditEntry.timestamp < end)
        return conditions

    async def query(
        self,
        filters: AuditQuery,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEntry]:
        """Query entries newest first.

        Args:
            filters: Filter criteria
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            List of audit entries
        """
        query = select(AuditEntry)
        conditions = self._conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))
        query = (
            query.order_by(AuditEntry.timestamp.desc(), AuditEntry.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, filters: AuditQuery) -> int:
        """Count entries matching the filters, independently of any page fetch."""
        query = select(func.count(AuditEntry.id))
        conditions = self._conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def list_severe(self, limit: int = 10) -> list[tuple[AuditEntry, Actor | None]]:
        """Newest high and critical entries with their actor, when one exists."""
        result = await self.session.execute(
            select(AuditEntry, Actor)
            .outerjoin(Actor, Actor.id == AuditEntry.actor_id)
            .where(AuditEntry.severity.in_((AuditSeverity.HIGH, AuditSeverity.CRITICAL)))
            .order_by(AuditEntry.timestamp.desc(), AuditEntry.id)
            .limit(limit)
        )
        return [(entry, actor) for entry, actor in result.all()]
