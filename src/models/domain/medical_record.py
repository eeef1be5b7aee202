"""Medical record Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.models.domain.access_request import AccessLevel, RecordCategory


class RecordFile(BaseModel):
    """A blob store reference attached to a record."""

    file_name: str = Field(..., min_length=1, max_length=255, description="Stored file name")
    original_name: str | None = Field(None, max_length=255, description="Name as uploaded")
    file_url: str = Field(..., min_length=1, max_length=1024, description="Blob store reference")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str = Field(..., description="MIME type")


class MedicalRecordCreate(BaseModel):
    """Schema for a patient registering record metadata."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=4000)
    category: RecordCategory = Field(RecordCategory.GENERAL)
    record_date: datetime | None = Field(None, description="Clinical date; defaults to now")
    is_emergency_visible: bool = Field(False, description="Readable with an emergency token")
    files: list[RecordFile] = Field(default_factory=list)


class RecordPermissionRead(BaseModel):
    """A doctor's grant on a record."""

    model_config = ConfigDict(from_attributes=True)

    doctor_id: UUID
    granted: bool
    granted_at: datetime | None = None
    expires_at: datetime | None = None
    access_level: AccessLevel
    active: bool = Field(..., description="Granted and not yet expired")


class MedicalRecordRead(BaseModel):
    """Schema for reading a medical record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    title: str
    description: str | None = None
    category: RecordCategory
    record_date: datetime
    is_emergency_visible: bool
    files: list[RecordFile] = Field(default_factory=list)
    created_at: datetime
    permissions: list[RecordPermissionRead] | None = Field(
        None,
        description="Only returned to the owning patient",
    )


class FileAccess(BaseModel):
    """Outcome of a successful view or download: the file reference."""

    record_id: UUID
    file: RecordFile
    disposition: str = Field(..., description="inline or attachment")
    emergency_access: bool = False
