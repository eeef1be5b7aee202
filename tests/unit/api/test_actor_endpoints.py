"""Unit tests for actor API endpoints."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.v1.dependencies import get_current_principal
from src.api.v1.endpoints.actors import get_identity_service, router
from src.core.database import get_db_session
from src.core.exceptions import ConflictError, NotFoundError, setup_exception_handlers
from src.models.domain.actor import (
    ActorRead,
    ActorRole,
    DoctorCreate,
    Principal,
    TrustedDoctorRead,
)


def make_actor_read(role: ActorRole, email: str = "someone@example.com") -> ActorRead:
    return ActorRead(
        id=uuid.uuid4(),
        email=email,
        role=role,
        is_verified=False,
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def principal_holder() -> dict[str, Principal]:
    return {"principal": Principal(actor_id=uuid.uuid4(), role=ActorRole.PATIENT)}


@pytest.fixture
def mock_service() -> MagicMock:
    """Create a mock identity service."""
    return MagicMock()


@pytest.fixture
def app(principal_holder: dict[str, Principal], mock_service: MagicMock) -> FastAPI:
    """Create test app with mocked dependencies."""
    test_app = FastAPI()
    test_app.include_router(router, prefix="/actors")
    setup_exception_handlers(test_app)

    test_app.dependency_overrides[get_current_principal] = lambda: principal_holder["principal"]
    test_app.dependency_overrides[get_db_session] = lambda: AsyncMock()
    test_app.dependency_overrides[get_identity_service] = lambda: mock_service
    return test_app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestRegister:
    """Tests for POST /actors/register."""

    def test_doctor_self_registers(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.create_actor = AsyncMock(
            return_value=make_actor_read(ActorRole.DOCTOR, "dr.kim@example.com")
        )

        response = client.post(
            "/actors/register",
            json={"role": "doctor", "email": "dr.kim@example.com", "hospital": "St. Mary"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "doctor"
        data = mock_service.create_actor.await_args.args[0]
        assert isinstance(data, DoctorCreate)
        assert data.hospital == "St. Mary"

    def test_admin_cannot_self_register(
        self, client: TestClient, mock_service: MagicMock
    ) -> None:
        mock_service.create_actor = AsyncMock()

        response = client.post(
            "/actors/register", json={"role": "admin", "email": "root@example.com"}
        )

        assert response.status_code == 403
        mock_service.create_actor.assert_not_awaited()

    def test_unknown_role(self, client: TestClient) -> None:
        response = client.post(
            "/actors/register", json={"role": "nurse", "email": "n@example.com"}
        )

        assert response.status_code == 422

    def test_duplicate_email(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.create_actor = AsyncMock(
            side_effect=ConflictError("An actor with email 'a@example.com' already exists")
        )

        response = client.post(
            "/actors/register", json={"role": "patient", "email": "a@example.com"}
        )

        assert response.status_code == 409


class TestCreateActor:
    """Tests for POST /actors (admin)."""

    def test_admin_creates_emergency_responder(
        self,
        client: TestClient,
        mock_service: MagicMock,
        principal_holder: dict[str, Principal],
    ) -> None:
        principal_holder["principal"] = Principal(actor_id=uuid.uuid4(), role=ActorRole.ADMIN)
        mock_service.create_actor = AsyncMock(return_value=make_actor_read(ActorRole.EMERGENCY))

        response = client.post(
            "/actors",
            json={"role": "emergency", "email": "medic@example.com", "badge_number": "B-12"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "emergency"

    def test_patient_cannot_create_actors(self, client: TestClient) -> None:
        response = client.post("/actors", json={"role": "patient", "email": "x@example.com"})

        assert response.status_code == 403


class TestTrustedDoctors:
    """Tests for /actors/me/trusted-doctors."""

    def test_add_trusted_doctor(self, client: TestClient, mock_service: MagicMock) -> None:
        doctor_id = uuid.uuid4()
        mock_service.add_trusted_doctor = AsyncMock(
            return_value=TrustedDoctorRead(
                doctor_id=doctor_id,
                email="dr.kim@example.com",
                name="Dr Kim",
                added_at=datetime.now(UTC),
            )
        )

        response = client.post("/actors/me/trusted-doctors", json={"doctor_id": str(doctor_id)})

        assert response.status_code == 201
        assert response.json()["doctor_id"] == str(doctor_id)

    def test_unknown_doctor(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.add_trusted_doctor = AsyncMock(side_effect=NotFoundError(resource="Doctor"))

        response = client.post(
            "/actors/me/trusted-doctors", json={"doctor_id": str(uuid.uuid4())}
        )

        assert response.status_code == 404

    def test_doctor_has_no_trust_list(
        self, client: TestClient, principal_holder: dict[str, Principal]
    ) -> None:
        principal_holder["principal"] = Principal(actor_id=uuid.uuid4(), role=ActorRole.DOCTOR)

        response = client.get("/actors/me/trusted-doctors")

        assert response.status_code == 403


class TestGetMe:
    """Tests for GET /actors/me."""

    def test_returns_caller(
        self,
        client: TestClient,
        mock_service: MagicMock,
        principal_holder: dict[str, Principal],
    ) -> None:
        mock_service.get_actor = AsyncMock(return_value=make_actor_read(ActorRole.PATIENT))

        response = client.get("/actors/me")

        assert response.status_code == 200
        mock_service.get_actor.assert_awaited_once_with(principal_holder["principal"].actor_id)
