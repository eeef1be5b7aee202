"""Usage metering and advisory summary schemas."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field


class UsageStats(BaseModel):
    """Daily advisory usage for one actor."""

    daily_limit: int
    used: int
    remaining: int
    reset_at: datetime = Field(..., description="Next UTC midnight")
    percentage: int = Field(..., ge=0, le=100)


class FindingSeverity(StrEnum):
    """Severity attached to an advisory finding."""

    INFO = "info"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class AdvisoryFinding(BaseModel):
    """One keyword hit from the advisory summarizer."""

    label: str
    severity: FindingSeverity
    matched_terms: list[str] = Field(default_factory=list)


class AdvisorySummary(BaseModel):
    """Opaque, display-only analysis of a record.

    Never consulted for any access decision.
    """

    record_id: UUID
    summary: str
    findings: list[AdvisoryFinding] = Field(default_factory=list)
    overall_severity: FindingSeverity = FindingSeverity.INFO
    confidence: float = Field(..., ge=0.0, le=1.0)
    authoritative: bool = False
    generated_at: datetime
    usage: UsageStats


class AdvisoryRequest(BaseModel):
    """Optional extra text to analyse alongside the record metadata."""

    text: str | None = Field(None, max_length=20000, description="Extracted record text")
