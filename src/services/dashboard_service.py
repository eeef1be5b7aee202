"""Admin dashboard service: counts and short review queues."""

from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.models.db.access_request import AccessRequestStatus
from src.models.db.verification import VerificationStatus
from src.models.domain.access_request import AccessRequestStatus as DomainAccessRequestStatus
from src.models.domain.audit import AuditAction as DomainAuditAction
from src.models.domain.audit import AuditSeverity as DomainAuditSeverity
from src.models.domain.dashboard import (
    AccessRequestStats,
    CriticalAuditItem,
    DashboardStats,
    FlaggedDoctor,
    PendingAccessRequestItem,
    PendingVerificationItem,
    VerificationStats,
)
from src.models.domain.verification import VerificationStatus as DomainVerificationStatus
from src.repositories.access_request_repo import AccessRequestRepository
from src.repositories.audit_repo import AuditRepository
from src.repositories.verification_repo import VerificationRepository

PENDING_VERIFICATIONS_SHOWN = 5
PENDING_REQUESTS_SHOWN = 10
FLAGGED_DOCTORS_SHOWN = 5
CRITICAL_ENTRIES_SHOWN = 10


class DashboardService:
    """Service layer for the admin dashboard."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.verifications = VerificationRepository(session)
        self.requests = AccessRequestRepository(session)
        self.audit = AuditRepository(session)

    async def get_stats(self, now: datetime | None = None) -> DashboardStats:
        """Build the dashboard snapshot.

        Every status appears in the count maps, zero when no row has it.
        """
        now = now or datetime.now(UTC)
        return DashboardStats(
            verifications=await self._verification_stats(now),
            access_requests=await self._access_request_stats(now),
            pending_verifications=await self._pending_verifications(),
            pending_access_requests=await self._pending_access_requests(now),
            flagged_doctors=await self._flagged_doctors(),
            critical_audit_entries=await self._critical_entries(),
            generated_at=now,
        )

    async def _verification_stats(self, now: datetime) -> VerificationStats:
        counts = await self.verifications.count_grouped_by_status()
        never_submitted = await self.verifications.count_doctors_without_record()
        by_status = {
            DomainVerificationStatus(status.value): counts.get(status, 0)
            for status in VerificationStatus
        }
        by_status[DomainVerificationStatus.NOT_SUBMITTED] += never_submitted

        month_start = now.astimezone(UTC).replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )
        return VerificationStats(
            total=sum(by_status.values()),
            by_status=by_status,
            submitted_this_month=await self.verifications.count_submitted_since(month_start),
        )

    async def _access_request_stats(self, now: datetime) -> AccessRequestStats:
        counts = await self.requests.count_by_effective_status(now)
        by_status = {
            DomainAccessRequestStatus(status.value): counts.get(status, 0)
            for status in AccessRequestStatus
        }
        return AccessRequestStats(total=sum(by_status.values()), by_status=by_status)

    async def _pending_verifications(self) -> list[PendingVerificationItem]:
        rows = await self.verifications.list_awaiting_review(limit=PENDING_VERIFICATIONS_SHOWN)
        return [
            PendingVerificationItem(
                id=v.id,
                doctor_id=v.doctor_id,
                doctor_name=v.doctor.display_name,
                doctor_email=v.doctor.email,
                status=DomainVerificationStatus(v.status.value),
                submitted_at=v.submitted_at,
                document_count=len(v.documents),
            )
            for v in rows
        ]

    async def _pending_access_requests(self, now: datetime) -> list[PendingAccessRequestItem]:
        rows = await self.requests.list_requests(
            now, status=AccessRequestStatus.PENDING, limit=PENDING_REQUESTS_SHOWN
        )
        return [
            PendingAccessRequestItem(
                id=r.id,
                doctor_id=r.doctor_id,
                doctor_name=r.doctor.display_name if r.doctor else None,
                patient_id=r.patient_id,
                patient_name=r.patient.display_name if r.patient else None,
                reason=r.reason,
                requested_at=r.requested_at,
            )
            for r in rows
        ]

    async def _flagged_doctors(self) -> list[FlaggedDoctor]:
        rows = await self.requests.doctors_with_rejections(
            self.settings.dashboard_rejection_threshold, limit=FLAGGED_DOCTORS_SHOWN
        )
        return [
            FlaggedDoctor(
                doctor_id=doctor.id,
                doctor_name=doctor.display_name,
                doctor_email=doctor.email,
                rejection_count=count,
            )
            for doctor, count in rows
        ]

    async def _critical_entries(self) -> list[CriticalAuditItem]:
        rows = await self.audit.list_severe(limit=CRITICAL_ENTRIES_SHOWN)
        return [
            CriticalAuditItem(
                id=entry.id,
                action=DomainAuditAction(entry.action.value),
                actor_id=entry.actor_id,
                actor_name=actor.display_name if actor else "System",
                description=entry.description,
                severity=DomainAuditSeverity(entry.severity.value),
                timestamp=entry.timestamp,
            )
            for entry, actor in rows
        ]
