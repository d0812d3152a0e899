"""
Report models produced by the correlation engine.
A report is created exactly once per job and never modified.
"""

import hashlib
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .content import canonical_json


SECTION_OK = "ok"
SECTION_INSUFFICIENT = "insufficient_data"


class ResolvedFact(BaseModel):
    """
    A fact reported by more than one source, after conflict resolution.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: Any
    source: str
    fetched_at: datetime
    alternatives: list[dict] = Field(default_factory=list, description="Superseded values with their source")


class SignalIndicator(BaseModel):
    """One buying-signal indicator before weighting."""

    model_config = ConfigDict(frozen=True)

    name: str
    raw_count: float
    normalized: float = Field(..., ge=0.0, le=1.0)
    weight: float
    evidence: list[str] = Field(default_factory=list)


class ReportSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    status: str = SECTION_OK
    contributing_sources: list[str] = Field(default_factory=list)
    content: dict = Field(default_factory=dict)

    @property
    def is_insufficient(self) -> bool:
        return self.status == SECTION_INSUFFICIENT


class CorrelatedReport(BaseModel):
    """
    Final multi-section intelligence report for one job.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    company: str
    technical_intelligence: ReportSection
    buying_signals: ReportSection
    talking_points: ReportSection

    buying_signal_score: Optional[float] = Field(default=None, description="0..scale_max, None when insufficient")
    score_scale: float = 100.0
    score_breakdown: list[SignalIndicator] = Field(default_factory=list)
    resolved_facts: list[ResolvedFact] = Field(default_factory=list)

    contributing_sources: list[str] = Field(default_factory=list)
    failed_sources: dict[str, str] = Field(default_factory=dict)
    generated_at: datetime

    @property
    def sections(self) -> list[ReportSection]:
        return [self.technical_intelligence, self.buying_signals, self.talking_points]

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_sources)

    def to_json(self) -> str:
        """Canonical encoding: equal reports serialize to identical bytes."""
        return canonical_json(self.model_dump(mode="json"))

    def fingerprint(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()
