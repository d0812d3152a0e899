"""Data models for the research engine."""

from .content import (
    SourceKey,
    SourceConfig,
    CompanyTarget,
    FetchResult,
    CacheEntry,
    canonical_json,
    compute_content_hash,
)
from .report import (
    CorrelatedReport,
    ReportSection,
    ResolvedFact,
    SignalIndicator,
    SECTION_OK,
    SECTION_INSUFFICIENT,
)
from .job import (
    TaskKind,
    TaskState,
    JobState,
    Task,
    ResearchJob,
    FETCH_KINDS,
    TERMINAL_TASK_STATES,
    make_task_id,
    new_job_id,
)

__all__ = [
    # Content models
    "SourceKey",
    "SourceConfig",
    "CompanyTarget",
    "FetchResult",
    "CacheEntry",
    "canonical_json",
    "compute_content_hash",
    # Report models
    "CorrelatedReport",
    "ReportSection",
    "ResolvedFact",
    "SignalIndicator",
    "SECTION_OK",
    "SECTION_INSUFFICIENT",
    # Job models
    "TaskKind",
    "TaskState",
    "JobState",
    "Task",
    "ResearchJob",
    "FETCH_KINDS",
    "TERMINAL_TASK_STATES",
    "make_task_id",
    "new_job_id",
]
