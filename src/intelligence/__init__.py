"""
Company Research Engine

Turns a (company name, contact email) pair into a scored, multi-section
intelligence report.

Pipeline stages:
1. Graph - Expand the request into a task DAG (fetch, summarize, correlate)
2. Fetch - Rate-limited, cached calls to the source adapters
   (company site, job boards, code repositories, news)
3. Summarize - Optional per-source summaries with Gemini
4. Correlate - Conflict resolution, buying-signal score, final report

The engine itself lives in the subpackages (orchestration, correlation,
store) and is wired together by `pipeline.ResearchPipeline`.
"""

# Core models
from .models.content import CompanyTarget, FetchResult, SourceConfig, SourceKey
from .models.job import JobState, ResearchJob, Task, TaskKind, TaskState
from .models.report import CorrelatedReport, ReportSection

# Errors
from .errors import (
    ResearchError,
    SourceError,
    RetryableSourceError,
    PermanentSourceError,
    ExhaustedRetries,
    InvalidRequest,
    CorrelationError,
    InvalidTransition,
    JobNotFound,
    GateClosedError,
)

__all__ = [
    # Models
    "CompanyTarget",
    "FetchResult",
    "SourceConfig",
    "SourceKey",
    "JobState",
    "ResearchJob",
    "Task",
    "TaskKind",
    "TaskState",
    "CorrelatedReport",
    "ReportSection",
    # Errors
    "ResearchError",
    "SourceError",
    "RetryableSourceError",
    "PermanentSourceError",
    "ExhaustedRetries",
    "InvalidRequest",
    "CorrelationError",
    "InvalidTransition",
    "JobNotFound",
    "GateClosedError",
]
