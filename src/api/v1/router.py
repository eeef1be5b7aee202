"""API v1 router configuration."""

from fastapi import APIRouter

from src.api.v1.endpoints import (
    access_requests,
    actors,
    admin,
    audit,
    records,
    usage,
    verification,
)

router = APIRouter(prefix="/api/v1")

router.include_router(actors.router, prefix="/actors", tags=["actors"])
router.include_router(verification.router, prefix="/verifications", tags=["verification"])
router.include_router(
    access_requests.router, prefix="/access-requests", tags=["access-requests"]
)
router.include_router(records.router, tags=["records"])
router.include_router(audit.router, prefix="/audit", tags=["audit"])
router.include_router(usage.router, prefix="/usage", tags=["usage"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
