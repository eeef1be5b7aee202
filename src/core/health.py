"""Health checks for the database, the audit trail and the usage meter store."""

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from redis import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Without these the service cannot authorize or audit anything
CRITICAL_COMPONENTS = frozenset({"database", "audit_trail"})


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    """Health status for a single component."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None


@dataclass
class HealthCheckResult:
    """Overall health check result."""

    status: HealthStatus
    components: list[ComponentHealth]
    version: str = "0.1.0"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "status": self.status.value,
            "version": self.version,
            "components": {
                c.name: {
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                }
                for c in self.components
            },
        }


def overall_status(components: list[ComponentHealth]) -> HealthStatus:
    """Unhealthy if a critical component is down, degraded if any other is."""
    if all(c.status == HealthStatus.HEALTHY for c in components):
        return HealthStatus.HEALTHY
    if any(
        c.status == HealthStatus.UNHEALTHY and c.name in CRITICAL_COMPONENTS for c in components
    ):
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


class HealthCheckService:
    """Service for checking health of application dependencies."""

    def __init__(
        self,
        db_session: AsyncSession | None = None,
        settings: Settings | None = None,
        redis_client: Redis | None = None,  # type: ignore[type-arg]
    ) -> None:
        self.db_session = db_session
        self.settings = settings or get_settings()
        self._redis = redis_client

    async def _check_sql(self, name: str, statement: str) -> ComponentHealth:
        if self.db_session is None:
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message="No database session available",
            )

        start = time.perf_counter()
        try:
            result = await self.db_session.execute(text(statement))
            result.scalar()
        except Exception as e:
            logger.warning(f"{name} health check failed: {e}")
            return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY, message=str(e))
        latency = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY,
            message="Connected",
            latency_ms=round(latency, 2),
        )

    async def check_database(self) -> ComponentHealth:
        """Check database connectivity."""
        return await self._check_sql("database", "SELECT 1")

    async def check_audit_trail(self) -> ComponentHealth:
        """Check that the audit table exists and is readable.

        Every authorization decision writes an audit entry, so a missing
        table makes the service unable to serve requests.
        """
        return await self._check_sql(
            "audit_trail", "SELECT count(*) FROM audit_entries WHERE false"
        )

    async def check_redis(self) -> ComponentHealth:
        """Check connectivity to the Redis instance backing the usage meter."""
        start = time.perf_counter()
        redis_client = self._redis or Redis.from_url(
            str(self.settings.redis_url),
            socket_timeout=5,
        )
        try:
            redis_client.ping()
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return ComponentHealth(
                name="redis",
                status=HealthStatus.UNHEALTHY,
                message=str(e),
            )
        finally:
            if self._redis is None:
                redis_client.close()
        latency = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="redis",
            status=HealthStatus.HEALTHY,
            message="Connected",
            latency_ms=round(latency, 2),
        )

    async def check_all(self) -> HealthCheckResult:
        """Check all dependencies.

        Redis only backs advisory metering, so losing it degrades the
        service without making it unhealthy.
        """
        components = [
            await self.check_database(),
            await self.check_audit_trail(),
            await self.check_redis(),
        ]
        return HealthCheckResult(status=overall_status(components), components=components)

    async def check_readiness(self) -> HealthCheckResult:
        """Check if the application is ready to serve traffic."""
        return await self.check_all()
