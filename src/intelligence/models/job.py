"""
Job and task models for the research engine.

Task lifecycle:
    PENDING -> READY -> RUNNING -> SUCCEEDED | FAILED
    RUNNING -> READY          (retry, bounded by the attempt ceiling)
    PENDING -> SKIPPED        (a dependency failed or was skipped)
    READY   -> FAILED         (cancellation or recovery exhaustion)
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import InvalidTransition
from .content import CompanyTarget, FetchResult, SourceKey, utcnow
from .report import CorrelatedReport


class TaskKind(str, Enum):
    FETCH_SITE = "fetch_site"
    FETCH_JOBS = "fetch_jobs"
    FETCH_REPOS = "fetch_repos"
    FETCH_NEWS = "fetch_news"
    AI_SUMMARIZE = "ai_summarize"
    CORRELATE = "correlate"

    @property
    def is_fetch(self) -> bool:
        return self in FETCH_KINDS.values()


FETCH_KINDS = {
    SourceKey.SITE: TaskKind.FETCH_SITE,
    SourceKey.JOBS: TaskKind.FETCH_JOBS,
    SourceKey.REPOS: TaskKind.FETCH_REPOS,
    SourceKey.NEWS: TaskKind.FETCH_NEWS,
}


class TaskState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TASK_STATES


TERMINAL_TASK_STATES = frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.SKIPPED})

TASK_TRANSITIONS = {
    TaskState.PENDING: {TaskState.READY, TaskState.SKIPPED},
    TaskState.READY: {TaskState.RUNNING, TaskState.FAILED},
    TaskState.RUNNING: {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.READY},
    TaskState.SUCCEEDED: set(),
    TaskState.FAILED: set(),
    TaskState.SKIPPED: set(),
}


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETE, JobState.PARTIAL, JobState.FAILED)


JOB_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING, JobState.FAILED},
    JobState.RUNNING: {JobState.COMPLETE, JobState.PARTIAL, JobState.FAILED},
    JobState.COMPLETE: set(),
    JobState.PARTIAL: set(),
    JobState.FAILED: set(),
}


def can_transition(current: TaskState, target: TaskState) -> bool:
    return target in TASK_TRANSITIONS[current]


class Task(BaseModel):
    """
    One node of a job's DAG. Identity is (job_id, kind, source).
    """

    job_id: str
    kind: TaskKind
    source: Optional[str] = Field(default=None, description="Source key; None for CORRELATE")
    seq: int = Field(..., description="Creation order, used as the ready-queue tie-break")
    dependencies: list[str] = Field(default_factory=list)

    state: TaskState = TaskState.PENDING
    attempts: int = 0
    last_error: Optional[str] = None

    # Results
    result: Optional[FetchResult] = None
    summary: Optional[str] = None
    result_ref: Optional[str] = None

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def task_id(self) -> str:
        return make_task_id(self.kind, self.source)

    @property
    def tolerates_failed_dependencies(self) -> bool:
        """CORRELATE always runs with whatever partial results exist."""
        return self.kind == TaskKind.CORRELATE

    def transition(self, target: TaskState, **changes) -> "Task":
        """Return a copy in the target state; the original is left untouched."""
        if not can_transition(self.state, target):
            raise InvalidTransition(self.task_id, self.state.value, target.value)
        return self.model_copy(update={"state": target, "updated_at": utcnow(), **changes})


def make_task_id(kind: TaskKind, source: Optional[str] = None) -> str:
    if source is None:
        return kind.value
    return f"{kind.value}:{source}"


def new_job_id() -> str:
    return f"job-{uuid.uuid4().hex[:12]}"


class ResearchJob(BaseModel):
    """
    A research request and its DAG snapshot.
    Immutable once its state is terminal.
    """

    job_id: str = Field(default_factory=new_job_id)
    company: CompanyTarget
    requester: Optional[str] = None
    sources: list[SourceKey] = Field(default_factory=list)
    include_summaries: bool = True

    state: JobState = JobState.PENDING
    tasks: list[Task] = Field(default_factory=list)
    report: Optional[CorrelatedReport] = None
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def task(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        raise KeyError(task_id)

    @property
    def task_map(self) -> dict[str, Task]:
        return {t.task_id: t for t in self.tasks}

    @property
    def all_tasks_terminal(self) -> bool:
        return all(t.state.is_terminal for t in self.tasks)

    def source_outcomes(self) -> dict[str, str]:
        """Per-source outcome of the FETCH tasks, for provenance."""
        return {
            t.source: t.state.value
            for t in sorted(self.tasks, key=lambda t: t.seq)
            if t.kind.is_fetch
        }

    def to_status(self) -> dict:
        """Status view exposed to the API layer."""
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "company": self.company.name,
            "error": self.error,
            "sources": self.source_outcomes(),
            "tasks": {
                t.task_id: {
                    "state": t.state.value,
                    "attempts": t.attempts,
                    "last_error": t.last_error,
                }
                for t in sorted(self.tasks, key=lambda t: t.seq)
            },
            "report": self.report.model_dump(mode="json") if self.report else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
