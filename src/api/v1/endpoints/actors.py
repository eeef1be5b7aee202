"""Actor and trust list API endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Body, Depends

from src.api.v1.dependencies import (
    AdminPrincipal,
    Client,
    CurrentPrincipal,
    PatientPrincipal,
    actor_id_of,
)
from src.core.database import DbSession
from src.core.exceptions import ForbiddenError
from src.models.domain.actor import (
    ActorCreate,
    ActorRead,
    ActorRole,
    TrustedDoctorAdd,
    TrustedDoctorRead,
)
from src.services.identity_service import IdentityService

router = APIRouter()

SELF_REGISTRATION_ROLES = {ActorRole.PATIENT, ActorRole.DOCTOR}


def get_identity_service(session: DbSession) -> IdentityService:
    """Get identity service instance."""
    return IdentityService(session)


IdentitySvc = Annotated[IdentityService, Depends(get_identity_service)]


@router.post("/register", response_model=ActorRead, status_code=201)
async def register(
    data: Annotated[ActorCreate, Body()],
    service: IdentitySvc,
) -> ActorRead:
    """Self-register as a patient or doctor.

    Emergency responders and administrators are created by an administrator.
    """
    if data.role not in SELF_REGISTRATION_ROLES:
        raise ForbiddenError("Only patients and doctors can self-register")
    return await service.create_actor(data)


@router.post("", response_model=ActorRead, status_code=201)
async def create_actor(
    data: Annotated[ActorCreate, Body()],
    principal: AdminPrincipal,  # noqa: ARG001
    service: IdentitySvc,
) -> ActorRead:
    """Create an actor of any role. Admin only."""
    return await service.create_actor(data)


@router.get("/me", response_model=ActorRead)
async def get_me(
    principal: CurrentPrincipal,
    service: IdentitySvc,
) -> ActorRead:
    """Get the calling actor."""
    return await service.get_actor(actor_id_of(principal))


@router.get("/me/trusted-doctors", response_model=list[TrustedDoctorRead])
async def list_trusted_doctors(
    principal: PatientPrincipal,
    service: IdentitySvc,
) -> list[TrustedDoctorRead]:
    """List the calling patient's trusted doctors."""
    return await service.list_trusted_doctors(principal)


@router.post("/me/trusted-doctors", response_model=TrustedDoctorRead, status_code=201)
async def add_trusted_doctor(
    data: TrustedDoctorAdd,
    principal: PatientPrincipal,
    client: Client,
    service: IdentitySvc,
) -> TrustedDoctorRead:
    """Add a doctor to the calling patient's trust list.

    Future access requests from this doctor are approved automatically.
    Existing requests are unaffected.
    """
    return await service.add_trusted_doctor(principal, data.doctor_id, client)


@router.get("/{actor_id}", response_model=ActorRead)
async def get_actor(
    actor_id: uuid.UUID,
    principal: AdminPrincipal,  # noqa: ARG001
    service: IdentitySvc,
) -> ActorRead:
    """Get any actor by ID. Admin only."""
    return await service.get_actor(actor_id)
