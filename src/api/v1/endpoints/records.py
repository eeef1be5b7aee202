"""Medical record API endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.v1.dependencies import (
    Client,
    CurrentPrincipal,
    PatientPrincipal,
    RecordPrincipal,
)
from src.api.v1.endpoints.usage import UsageMeterDep
from src.core.config import get_settings
from src.core.database import DbSession
from src.models.domain.medical_record import FileAccess, MedicalRecordCreate, MedicalRecordRead
from src.models.domain.usage import AdvisoryRequest, AdvisorySummary
from src.services.advisory_service import AdvisoryService
from src.services.record_access_service import RecordAccessService

router = APIRouter()


def get_record_access_service(session: DbSession) -> RecordAccessService:
    """Get record access service instance."""
    return RecordAccessService(session, get_settings())


RecordSvc = Annotated[RecordAccessService, Depends(get_record_access_service)]


def get_advisory_service(records: RecordSvc, meter: UsageMeterDep) -> AdvisoryService:
    """Get advisory service instance."""
    return AdvisoryService(records, meter)


AdvisorySvc = Annotated[AdvisoryService, Depends(get_advisory_service)]


@router.post("/records", response_model=MedicalRecordRead, status_code=201)
async def create_record(
    data: MedicalRecordCreate,
    principal: PatientPrincipal,
    client: Client,
    service: RecordSvc,
) -> MedicalRecordRead:
    """Register a medical record for the calling patient.

    Files are references into the blob store. Doctors already holding an
    active grant covering the record's category can read it immediately.
    """
    return await service.create_record(principal, data, client)


@router.get("/records", response_model=list[MedicalRecordRead])
async def list_my_records(
    principal: PatientPrincipal,
    service: RecordSvc,
) -> list[MedicalRecordRead]:
    """List the calling patient's records with their permission entries."""
    return await service.list_own_records(principal)


@router.get("/patients/{patient_id}/records", response_model=list[MedicalRecordRead])
async def list_patient_records(
    patient_id: uuid.UUID,
    principal: CurrentPrincipal,
    client: Client,
    service: RecordSvc,
) -> list[MedicalRecordRead]:
    """List a patient's records the calling doctor currently has access to.

    Returns 403 if the caller is not a doctor or holds no active grant on
    any of them. Both refusals are audited.
    """
    return await service.list_patient_records(principal, patient_id, client)


@router.get("/records/{record_id}", response_model=MedicalRecordRead)
async def get_record(
    record_id: uuid.UUID,
    principal: RecordPrincipal,
    client: Client,
    service: RecordSvc,
) -> MedicalRecordRead:
    """Get a record's metadata.

    Accepts a bearer token or an emergency token. Missing and forbidden
    records both return 403.
    """
    return await service.get_record(principal, record_id, client)


@router.get("/records/{record_id}/files/{file_name}/view", response_model=FileAccess)
async def view_file(
    record_id: uuid.UUID,
    file_name: str,
    principal: RecordPrincipal,
    client: Client,
    service: RecordSvc,
) -> FileAccess:
    """Get a file reference for inline viewing."""
    return await service.view_file(principal, record_id, file_name, client)


@router.get("/records/{record_id}/files/{file_name}/download", response_model=FileAccess)
async def download_file(
    record_id: uuid.UUID,
    file_name: str,
    principal: RecordPrincipal,
    client: Client,
    service: RecordSvc,
) -> FileAccess:
    """Get a file reference for download."""
    return await service.download_file(principal, record_id, file_name, client)


@router.post("/records/{record_id}/advisory-summary", response_model=AdvisorySummary)
async def summarize_record(
    record_id: uuid.UUID,
    data: AdvisoryRequest,
    principal: RecordPrincipal,
    client: Client,
    service: AdvisorySvc,
) -> AdvisorySummary:
    """Produce a non-authoritative summary of a record the caller can read.

    Counts against the caller's daily advisory allowance. Returns 429 once
    the allowance is used up.
    """
    return await service.summarize_record(principal, record_id, client, extra_text=data.text)
