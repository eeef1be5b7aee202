"""Tests for health endpoints and application wiring."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, status
from httpx import ASGITransport, AsyncClient

from src.api.health import get_health_service
from src.core.config import Settings
from src.core.database import get_db_session
from src.core.health import ComponentHealth, HealthCheckResult, HealthStatus
from src.main import create_app


@pytest.fixture
def health_service() -> MagicMock:
    """Create a mock health check service."""
    return MagicMock()


@pytest.fixture
def test_app(health_service: MagicMock) -> FastAPI:
    """Create test application."""
    app = create_app()
    app.dependency_overrides[get_db_session] = lambda: AsyncMock()
    app.dependency_overrides[get_health_service] = lambda: health_service
    return app


def _result(status_value: HealthStatus) -> HealthCheckResult:
    return HealthCheckResult(
        status=status_value,
        components=[
            ComponentHealth(name="database", status=HealthStatus.HEALTHY),
            ComponentHealth(name="audit_trail", status=status_value),
        ],
    )


async def _get(app: FastAPI, path: str, **kwargs):  # noqa: ANN003, ANN202
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path, **kwargs)


class TestHealthEndpoints:
    """Tests for the health check endpoints."""

    async def test_health_returns_healthy(self, test_app: FastAPI) -> None:
        """Test that health endpoint returns healthy status."""
        response = await _get(test_app, "/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}

    async def test_liveness(self, test_app: FastAPI) -> None:
        response = await _get(test_app, "/health/live")

        assert response.json() == {"status": "healthy", "service": "medaccess"}

    async def test_readiness_unhealthy_returns_503(
        self, test_app: FastAPI, health_service: MagicMock
    ) -> None:
        health_service.check_readiness = AsyncMock(return_value=_result(HealthStatus.UNHEALTHY))

        response = await _get(test_app, "/health/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["components"]["audit_trail"]["status"] == "unhealthy"

    async def test_readiness_degraded_is_still_ready(
        self, test_app: FastAPI, health_service: MagicMock
    ) -> None:
        health_service.check_readiness = AsyncMock(return_value=_result(HealthStatus.DEGRADED))

        response = await _get(test_app, "/health/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "degraded"

    async def test_detailed_lists_components(
        self, test_app: FastAPI, health_service: MagicMock
    ) -> None:
        health_service.check_all = AsyncMock(return_value=_result(HealthStatus.HEALTHY))

        response = await _get(test_app, "/health/detailed")

        assert set(response.json()["components"]) == {"database", "audit_trail"}


class TestCreateApp:
    """Tests for application wiring."""

    def test_routes_are_mounted(self) -> None:
        paths = {route.path for route in create_app().routes}

        assert "/health/ready" in paths
        assert "/api/v1/admin/dashboard-stats" in paths
        assert "/api/v1/access-requests" in paths

    def test_docs_are_hidden_in_production(self) -> None:
        app = create_app(Settings(app_env="production"))  # type: ignore[call-arg]

        assert app.docs_url is None
        assert app.redoc_url is None

    async def test_cors_preflight_admits_emergency_token_header(self) -> None:
        app = create_app(Settings(cors_origins="https://clinic.example"))  # type: ignore[call-arg]

        response = await _get(app, "/health", headers={"Origin": "https://clinic.example"})
        preflight = await _options(app)

        assert response.headers["access-control-allow-origin"] == "https://clinic.example"
        assert response.headers["access-control-allow-credentials"] == "true"
        assert "x-emergency-token" in preflight.headers["access-control-allow-headers"].lower()


async def _options(app: FastAPI):  # noqa: ANN202
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.options(
            "/health",
            headers={
                "Origin": "https://clinic.example",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "X-Emergency-Token",
            },
        )
