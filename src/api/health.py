"""Health check endpoints. No authentication is required."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.core.config import get_settings
from src.core.database import DbSession
from src.core.health import HealthCheckService, HealthStatus

SERVICE_NAME = "medaccess"

router = APIRouter(prefix="/health", tags=["health"])


def get_health_service(session: DbSession) -> HealthCheckService:
    """Get health check service instance."""
    return HealthCheckService(db_session=session, settings=get_settings())


HealthSvc = Annotated[HealthCheckService, Depends(get_health_service)]


@router.get("")
async def health_check() -> dict[str, str]:
    """Liveness without touching any dependency."""
    return {"status": "healthy"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is up."""
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(service: HealthSvc) -> JSONResponse:
    """Ready unless the database or the audit trail is unhealthy.

    A degraded usage meter store still answers 200: record access keeps
    working, only advisory metering is affected.
    """
    result = await service.check_readiness()
    status_code = 503 if result.status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=result.to_dict(), status_code=status_code)


@router.get("/detailed")
async def detailed_health_check(service: HealthSvc) -> dict[str, Any]:
    """Every component with its status and latency."""
    result = await service.check_all()
    return result.to_dict()
