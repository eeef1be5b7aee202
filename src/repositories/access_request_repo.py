"""Repository for access request operations."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.db.access_request import AccessRequest, AccessRequestStatus
from src.models.db.actor import Doctor


def effective_status_condition(
    status: AccessRequestStatus,
    now: datetime,
) -> ColumnElement[bool]:
    """SQL condition matching requests whose effective status is ``status``.

    Approved requests past their expiry are matched as expired, not approved.
    """
    if status == AccessRequestStatus.APPROVED:
        return and_(
            AccessRequest.status == AccessRequestStatus.APPROVED,
            or_(AccessRequest.expires_at.is_(None), AccessRequest.expires_at > now),
        )
    if status == AccessRequestStatus.EXPIRED:
        return or_(
            AccessRequest.status == AccessRequestStatus.EXPIRED,
            and_(
                AccessRequest.status == AccessRequestStatus.APPROVED,
                AccessRequest.expires_at <= now,
            ),
        )
    return AccessRequest.status == status


class AccessRequestRepository:
    """Repository for access request database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, access_request: AccessRequest) -> AccessRequest:
        """Create a new access request.

        Args:
            access_request: The access request to create

        Returns:
            The created access request
        """
        self.session.add(access_request)
        await self.session.flush()
        await self.session.refresh(access_request)
        return access_request

    async def get_by_id(
        self,
        request_id: uuid.UUID,
        populate_existing: bool = False,
    ) -> AccessRequest | None:
        """Get an access request by ID.

        Args:
            request_id: The access request ID
            populate_existing: Overwrite any copy already in the session,
                needed after a bulk UPDATE

        Returns:
            The access request if found, None otherwise
        """
        query = select(AccessRequest).where(AccessRequest.id == request_id)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_recent_pending(
        self,
        doctor_id: uuid.UUID,
        patient_id: uuid.UUID,
        since: datetime,
    ) -> AccessRequest | None:
        """Get the newest pending request for a pair created strictly after ``since``."""
        result = await self.session.execute(
            select(AccessRequest)
            .where(
                and_(
                    AccessRequest.doctor_id == doctor_id,
                    AccessRequest.patient_id == patient_id,
                    AccessRequest.status == AccessRequestStatus.PENDING,
                    AccessRequest.requested_at > since,
                )
            )
            .order_by(AccessRequest.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        request_id: uuid.UUID,
        from_status: AccessRequestStatus,
        values: dict[str, Any],
        extra_conditions: list[ColumnElement[bool]] | None = None,
    ) -> AccessRequest | None:
        """Atomically move a request out of ``from_status``.

        The UPDATE only matches while the stored status is still
        ``from_status``, so of two concurrent transitions exactly one wins.

        Args:
            request_id: The access request ID
            from_status: Status the row must currently have
            values: Columns to set, including the new status
            extra_conditions: Further conditions the row must satisfy

        Returns:
            The updated request, or None if no row matched
        """
        conditions = [
            AccessRequest.id == request_id,
            AccessRequest.status == from_status,
            *(extra_conditions or []),
        ]
        result = await self.session.execute(
            update(AccessRequest)
            .where(and_(*conditions))
            .values(**values)
            .returning(AccessRequest.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            return None
        return await self.get_by_id(request_id, populate_existing=True)

    def _filters(
        self,
        now: datetime,
        doctor_id: uuid.UUID | None,
        patient_id: uuid.UUID | None,
        status: AccessRequestStatus | None,
    ) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if doctor_id is not None:
            conditions.append(AccessRequest.doctor_id == doctor_id)
        if patient_id is not None:
            conditions.append(AccessRequest.patient_id == patient_id)
        if status is not None:
            conditions.append(effective_status_condition(status, now))
        return conditions

    async def list_requests(
        self,
        now: datetime,
        doctor_id: uuid.UUID | None = None,
        patient_id: uuid.UUID | None = None,
        status: AccessRequestStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[AccessRequest]:
        """List access requests newest first.

        Args:
            now: Reference time for effective status filtering
            doctor_id: Filter by requesting doctor
            patient_id: Filter by target patient
            status: Filter by effective status
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            List of access requests
        """
        query = select(AccessRequest)
        conditions = self._filters(now, doctor_id, patient_id, status)
        if conditions:
            query = query.where(and_(*conditions))
        query = (
            query.order_by(AccessRequest.requested_at.desc(), AccessRequest.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_requests(
        self,
        now: datetime,
        doctor_id: uuid.UUID | None = None,
        patient_id: uuid.UUID | None = None,
        status: AccessRequestStatus | None = None,
    ) -> int:
        """Count access requests with the same filters as ``list_requests``."""
        query = select(func.count(AccessRequest.id))
        conditions = self._filters(now, doctor_id, patient_id, status)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def list_active_for_patient(
        self,
        patient_id: uuid.UUID,
        now: datetime,
    ) -> list[AccessRequest]:
        """Approved, unexpired requests against a patient, oldest first."""
        result = await self.session.execute(
            select(AccessRequest)
            .where(
                and_(
                    AccessRequest.patient_id == patient_id,
                    effective_status_condition(AccessRequestStatus.APPROVED, now),
                )
            )
            .order_by(AccessRequest.approved_at)
        )
        return list(result.scalars().all())

    async def count_by_effective_status(self, now: datetime) -> dict[AccessRequestStatus, int]:
        """Count requests per effective status. Empty statuses are absent.

        Approved requests past their expiry are counted as expired.
        """
        lapsed = func.count(AccessRequest.id).filter(AccessRequest.expires_at <= now)
        result = await self.session.execute(
            select(AccessRequest.status, func.count(AccessRequest.id), lapsed).group_by(
                AccessRequest.status
            )
        )
        counts: dict[AccessRequestStatus, int] = {}
        for status, count, lapsed_count in result.all():
            if status == AccessRequestStatus.APPROVED and lapsed_count:
                expired = AccessRequestStatus.EXPIRED
                counts[expired] = counts.get(expired, 0) + lapsed_count
                count -= lapsed_count
            if count:
                counts[status] = counts.get(status, 0) + count
        return counts

    async def doctors_with_rejections(
        self,
        min_count: int,
        limit: int = 5,
    ) -> list[tuple[Doctor, int]]:
        """Doctors with at least ``min_count`` rejected requests.

        Returns:
            (doctor, rejection count) pairs, most rejected first
        """
        rejections = (
            select(
                AccessRequest.doctor_id,
                func.count(AccessRequest.id).label("rejection_count"),
            )
            .where(AccessRequest.status == AccessRequestStatus.REJECTED)
            .group_by(AccessRequest.doctor_id)
            .having(func.count(AccessRequest.id) >= min_count)
            .subquery()
        )
        result = await self.session.execute(
            select(Doctor, rejections.c.rejection_count)
            .join(rejections, rejections.c.doctor_id == Doctor.id)
            .order_by(rejections.c.rejection_count.desc(), Doctor.id)
            .limit(limit)
        )
        return [(doctor, count) for doctor, count in result.all()]
