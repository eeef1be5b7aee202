"""Tests for health check service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.health import (
    ComponentHealth,
    HealthCheckResult,
    HealthCheckService,
    HealthStatus,
    overall_status,
)


@pytest.fixture
def mock_settings() -> MagicMock:
    """Create mock settings."""
    settings = MagicMock()
    settings.redis_url = "redis://localhost:6379"
    return settings


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.execute.return_value = MagicMock(scalar=MagicMock(return_value=1))
    return session


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create mock Redis client."""
    return MagicMock()


class TestHealthCheckResult:
    """Tests for HealthCheckResult dataclass."""

    def test_to_dict(self) -> None:
        """Test conversion to dictionary."""
        result = HealthCheckResult(
            status=HealthStatus.HEALTHY,
            components=[
                ComponentHealth(
                    name="database",
                    status=HealthStatus.HEALTHY,
                    message="OK",
                    latency_ms=5.0,
                )
            ],
        )

        data = result.to_dict()

        assert data["status"] == "healthy"
        assert data["components"]["database"]["latency_ms"] == 5.0


class TestOverallStatus:
    """Tests for overall_status."""

    def test_all_healthy(self) -> None:
        """Test healthy when every component is."""
        components = [ComponentHealth("database", HealthStatus.HEALTHY)]
        assert overall_status(components) == HealthStatus.HEALTHY

    def test_audit_trail_down_is_unhealthy(self) -> None:
        """Test that the audit table is critical."""
        components = [
            ComponentHealth("database", HealthStatus.HEALTHY),
            ComponentHealth("audit_trail", HealthStatus.UNHEALTHY),
        ]
        assert overall_status(components) == HealthStatus.UNHEALTHY

    def test_redis_down_is_degraded(self) -> None:
        """Test that losing the usage meter only degrades the service."""
        components = [
            ComponentHealth("database", HealthStatus.HEALTHY),
            ComponentHealth("audit_trail", HealthStatus.HEALTHY),
            ComponentHealth("redis", HealthStatus.UNHEALTHY),
        ]
        assert overall_status(components) == HealthStatus.DEGRADED


class TestHealthCheckService:
    """Tests for HealthCheckService."""

    async def test_database_healthy(
        self, mock_db_session: AsyncMock, mock_settings: MagicMock
    ) -> None:
        """Test healthy database check."""
        service = HealthCheckService(db_session=mock_db_session, settings=mock_settings)

        result = await service.check_database()

        assert result.status == HealthStatus.HEALTHY
        assert result.latency_ms is not None

    async def test_database_without_session(self, mock_settings: MagicMock) -> None:
        """Test database check without a session."""
        service = HealthCheckService(settings=mock_settings)

        result = await service.check_database()

        assert result.status == HealthStatus.UNHEALTHY

    async def test_audit_trail_missing_table(
        self, mock_db_session: AsyncMock, mock_settings: MagicMock
    ) -> None:
        """Test audit trail check when the table is missing."""
        mock_db_session.execute.side_effect = Exception('relation "audit_entries" does not exist')
        service = HealthCheckService(db_session=mock_db_session, settings=mock_settings)

        result = await service.check_audit_trail()

        assert result.name == "audit_trail"
        assert result.status == HealthStatus.UNHEALTHY
        assert "audit_entries" in (result.message or "")

    async def test_redis_healthy(self, mock_settings: MagicMock, mock_redis: MagicMock) -> None:
        """Test healthy Redis check with an injected client."""
        service = HealthCheckService(settings=mock_settings, redis_client=mock_redis)

        result = await service.check_redis()

        assert result.status == HealthStatus.HEALTHY
        mock_redis.ping.assert_called_once()
        mock_redis.close.assert_not_called()

    async def test_redis_unreachable(self, mock_settings: MagicMock, mock_redis: MagicMock) -> None:
        """Test failed Redis check."""
        mock_redis.ping.side_effect = ConnectionError("refused")
        service = HealthCheckService(settings=mock_settings, redis_client=mock_redis)

        result = await service.check_redis()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.message == "refused"

    async def test_check_all_degraded_without_redis(
        self,
        mock_db_session: AsyncMock,
        mock_settings: MagicMock,
        mock_redis: MagicMock,
    ) -> None:
        """Test overall result with Redis down."""
        mock_redis.ping.side_effect = ConnectionError("refused")
        service = HealthCheckService(
            db_session=mock_db_session, settings=mock_settings, redis_client=mock_redis
        )

        result = await service.check_all()

        assert result.status == HealthStatus.DEGRADED
        assert [c.name for c in result.components] == ["database", "audit_trail", "redis"]
