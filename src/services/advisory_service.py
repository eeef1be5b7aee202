"""Advisory record summaries.

Summaries are display-only. They are produced by a pluggable summarizer and
never feed into any access decision.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from src.core.exceptions import ForbiddenError, RateLimitError
from src.models.domain.actor import ClientInfo, Principal
from src.models.domain.medical_record import MedicalRecordRead
from src.models.domain.usage import (
    AdvisoryFinding,
    AdvisorySummary,
    FindingSeverity,
    UsageStats,
)
from src.services.record_access_service import RecordAccessService
from src.services.usage_meter import UsageLimitExceeded, UsageMeter

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = [
    FindingSeverity.INFO,
    FindingSeverity.LOW,
    FindingSeverity.MODERATE,
    FindingSeverity.HIGH,
]


@dataclass
class SummaryResult:
    """What a summarizer returns."""

    summary: str
    findings: list[AdvisoryFinding] = field(default_factory=list)
    confidence: float = 0.5


class Summarizer(Protocol):
    """Anything that can turn record text into an advisory result."""

    def summarize(self, category: str, text: str) -> SummaryResult: ...


@dataclass(frozen=True)
class KeywordRule:
    label: str
    severity: FindingSeverity
    terms: tuple[str, ...]


DEFAULT_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("Abnormal values mentioned", FindingSeverity.MODERATE, ("abnormal", "elevated")),
    KeywordRule(
        "Acute or severe condition",
        FindingSeverity.HIGH,
        ("acute", "severe", "critical"),
    ),
    KeywordRule("Chronic condition", FindingSeverity.MODERATE, ("chronic",)),
    KeywordRule("Infection markers", FindingSeverity.MODERATE, ("infection", "inflammation")),
    KeywordRule("Drug interaction warning", FindingSeverity.MODERATE, ("interaction", "warning")),
    KeywordRule("Dosage instructions", FindingSeverity.INFO, ("dosage", "dose")),
    KeywordRule(
        "Vital signs recorded",
        FindingSeverity.INFO,
        ("blood pressure", "heart rate", "temperature"),
    ),
    KeywordRule("Within normal range", FindingSeverity.LOW, ("normal", "no abnormalities")),
)

_GLUCOSE = re.compile(r"glucose[:\s]*(\d+)", re.IGNORECASE)
_CHOLESTEROL = re.compile(r"cholesterol[:\s]*(\d+)", re.IGNORECASE)


class KeywordSummarizer:
    """Summarizer that matches medical keywords and a few lab thresholds."""

    def __init__(self, rules: tuple[KeywordRule, ...] = DEFAULT_RULES) -> None:
        self.rules = rules

    def summarize(self, category: str, text: str) -> SummaryResult:
        lowered = text.lower()
        findings: list[AdvisoryFinding] = []
        for rule in self.rules:
            # "normal" also occurs inside "abnormal"
            matched = [t for t in rule.terms if re.search(rf"\b{re.escape(t)}\b", lowered)]
            if matched:
                findings.append(
                    AdvisoryFinding(label=rule.label, severity=rule.severity, matched_terms=matched)
                )

        glucose = _GLUCOSE.search(text)
        if glucose:
            value = int(glucose.group(1))
            if value > 126:
                findings.append(
                    AdvisoryFinding(
                        label=f"Elevated glucose level: {value} mg/dL",
                        severity=FindingSeverity.MODERATE,
                        matched_terms=["glucose"],
                    )
                )
            elif value < 70:
                findings.append(
                    AdvisoryFinding(
                        label=f"Low glucose level: {value} mg/dL",
                        severity=FindingSeverity.MODERATE,
                        matched_terms=["glucose"],
                    )
                )
        cholesterol = _CHOLESTEROL.search(text)
        if cholesterol and int(cholesterol.group(1)) > 240:
            findings.append(
                AdvisoryFinding(
                    label=f"High cholesterol: {cholesterol.group(1)} mg/dL",
                    severity=FindingSeverity.MODERATE,
                    matched_terms=["cholesterol"],
                )
            )

        if findings:
            summary = (
                f"{category.replace('-', ' ').capitalize()} record with "
                f"{len(findings)} notable item(s): " + "; ".join(f.label for f in findings)
            )
        else:
            summary = f"{category.replace('-', ' ').capitalize()} record with no notable keywords"

        # More matched text means a slightly more confident (still advisory) summary
        confidence = min(0.9, 0.5 + 0.05 * len(findings) + min(len(text), 2000) / 10000)
        return SummaryResult(summary=summary, findings=findings, confidence=round(confidence, 2))


def overall_severity(findings: list[AdvisoryFinding]) -> FindingSeverity:
    """Highest severity among findings, ``info`` when there are none."""
    if not findings:
        return FindingSeverity.INFO
    return max((f.severity for f in findings), key=_SEVERITY_ORDER.index)


class AdvisoryService:
    """Produces metered, access-checked advisory summaries of records."""

    def __init__(
        self,
        records: RecordAccessService,
        meter: UsageMeter,
        summarizer: Summarizer | None = None,
    ) -> None:
        self.records = records
        self.meter = meter
        self.summarizer: Summarizer = summarizer or KeywordSummarizer()

    async def summarize_record(
        self,
        principal: Principal,
        record_id: uuid.UUID,
        client: ClientInfo,
        extra_text: str | None = None,
        now: datetime | None = None,
    ) -> AdvisorySummary:
        """Summarize a record the caller may read.

        The allowance is checked first, then the record read is authorized
        and audited, and only then is the call counted. Refused reads do not
        use up the allowance.

        Raises:
            ForbiddenError: If the caller may not read the record
            RateLimitError: If today's allowance is used up
        """
        now = now or datetime.now(UTC)
        actor_id = await self._ensure_allowance(principal, now)
        record = await self.records.get_record(principal, record_id, client, now=now)
        usage = await self._consume(actor_id, now)

        text = self._text_of(record, extra_text)
        result = self.summarizer.summarize(record.category.value, text)
        logger.info(
            "Advisory summary generated",
            extra={"record_id": str(record_id), "findings": len(result.findings)},
        )
        return AdvisorySummary(
            record_id=record.id,
            summary=result.summary,
            findings=result.findings,
            overall_severity=overall_severity(result.findings),
            confidence=result.confidence,
            authoritative=False,
            generated_at=now,
            usage=usage,
        )

    async def _ensure_allowance(self, principal: Principal, now: datetime) -> uuid.UUID:
        if principal.actor_id is None:
            raise ForbiddenError("Advisory summaries require a signed-in actor")
        usage = await self.meter.get_usage(principal.actor_id, now)
        if usage.remaining <= 0:
            raise self._limit_error(usage, now)
        return principal.actor_id

    async def _consume(self, actor_id: uuid.UUID, now: datetime) -> UsageStats:
        try:
            return await self.meter.consume(actor_id, now)
        except UsageLimitExceeded as e:
            raise self._limit_error(e.stats, now) from e

    def _limit_error(self, usage: UsageStats, now: datetime) -> RateLimitError:
        retry_after = int((usage.reset_at - now).total_seconds())
        return RateLimitError(
            detail=f"Daily limit of {usage.daily_limit} advisory requests reached",
            retry_after=max(1, retry_after),
        )

    @staticmethod
    def _text_of(record: MedicalRecordRead, extra_text: str | None) -> str:
        parts = [record.title, record.description or "", extra_text or ""]
        parts.extend(f.original_name or f.file_name for f in record.files)
        return "\n".join(p for p in parts if p)
