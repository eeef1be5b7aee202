"""Admin dashboard API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.v1.dependencies import AdminPrincipal
from src.core.config import get_settings
from src.core.database import DbSession
from src.models.domain.dashboard import DashboardStats
from src.services.dashboard_service import DashboardService

router = APIRouter()


def get_dashboard_service(session: DbSession) -> DashboardService:
    """Get dashboard service instance."""
    return DashboardService(session, get_settings())


DashboardSvc = Annotated[DashboardService, Depends(get_dashboard_service)]


@router.get("/dashboard-stats", response_model=DashboardStats)
async def get_dashboard_stats(
    principal: AdminPrincipal,  # noqa: ARG001
    service: DashboardSvc,
) -> DashboardStats:
    """Verification and access request counts, review queues, flagged doctors
    and recent high severity audit entries. Admin only.
    """
    return await service.get_stats()
