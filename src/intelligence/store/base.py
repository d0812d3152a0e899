"""
Job State Store.

The single source of truth for a job's DAG. Task updates are
compare-and-swap: a write only lands if the stored task is still in the
state the writer last saw, so two workers can never both run an attempt.
"""

import threading
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..errors import InvalidTransition, JobNotFound
from ..models.content import utcnow
from ..models.job import JOB_TRANSITIONS, JobState, ResearchJob, Task, TaskState, can_transition
from ..models.report import CorrelatedReport


def check_task_write(expected_state: TaskState, task: Task) -> None:
    """Reject writes that do not follow the task state machine."""
    if task.state != expected_state and not can_transition(expected_state, task.state):
        raise InvalidTransition(task.task_id, expected_state.value, task.state.value)


def check_job_write(current: JobState, target: JobState, job_id: str) -> None:
    if target != current and target not in JOB_TRANSITIONS[current]:
        raise InvalidTransition(job_id, current.value, target.value)


class JobStore(ABC):
    """Storage contract used by the scheduler and the status API."""

    @abstractmethod
    def create(self, job: ResearchJob) -> None:
        """Persist a new job with its full DAG."""

    @abstractmethod
    def get(self, job_id: str) -> ResearchJob:
        """Load a job snapshot. Raises JobNotFound."""

    @abstractmethod
    def list_jobs(self, states: Optional[Iterable[JobState]] = None) -> list[str]:
        """Job ids, oldest first, optionally filtered by state."""

    @abstractmethod
    def compare_and_set_task(self, job_id: str, expected_state: TaskState, task: Task) -> bool:
        """
        Replace the stored task only if its state is still `expected_state`.
        Returns False when another writer got there first or the job is terminal.
        """

    @abstractmethod
    def set_job_state(self, job_id: str, expected: JobState, target: JobState) -> bool:
        """Move a non-terminal job between states (PENDING -> RUNNING)."""

    @abstractmethod
    def finalize(
        self,
        job_id: str,
        state: JobState,
        report: Optional[CorrelatedReport] = None,
        error: Optional[str] = None,
    ) -> bool:
        """
        Make the job terminal and write its report. Succeeds exactly once;
        later calls return False and change nothing.
        """


class InMemoryJobStore(JobStore):
    """Thread-safe in-process store. Snapshots are copies; stored tasks are replaced, never mutated."""

    def __init__(self):
        self._jobs: dict[str, ResearchJob] = {}
        self._lock = threading.Lock()

    def _require(self, job_id: str) -> ResearchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def create(self, job: ResearchJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job already exists: {job.job_id}")
            self._jobs[job.job_id] = job.model_copy(update={"tasks": list(job.tasks)})

    def get(self, job_id: str) -> ResearchJob:
        with self._lock:
            job = self._require(job_id)
            return job.model_copy(update={"tasks": list(job.tasks)})

    def list_jobs(self, states: Optional[Iterable[JobState]] = None) -> list[str]:
        wanted = set(states) if states is not None else None
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: (j.created_at, j.job_id))
            return [j.job_id for j in jobs if wanted is None or j.state in wanted]

    def compare_and_set_task(self, job_id: str, expected_state: TaskState, task: Task) -> bool:
        check_task_write(expected_state, task)
        with self._lock:
            job = self._require(job_id)
            if job.state.is_terminal:
                return False
            tasks = list(job.tasks)
            for i, current in enumerate(tasks):
                if current.task_id == task.task_id:
                    if current.state != expected_state:
                        return False
                    tasks[i] = task
                    self._jobs[job_id] = job.model_copy(update={"tasks": tasks, "updated_at": utcnow()})
                    return True
            raise KeyError(f"{job_id} has no task {task.task_id}")

    def set_job_state(self, job_id: str, expected: JobState, target: JobState) -> bool:
        check_job_write(expected, target, job_id)
        with self._lock:
            job = self._require(job_id)
            if job.state != expected:
                return False
            self._jobs[job_id] = job.model_copy(update={"state": target, "updated_at": utcnow()})
            return True

    def finalize(
        self,
        job_id: str,
        state: JobState,
        report: Optional[CorrelatedReport] = None,
        error: Optional[str] = None,
    ) -> bool:
        if not state.is_terminal:
            raise ValueError(f"finalize needs a terminal state, got {state.value}")
        with self._lock:
            job = self._require(job_id)
            if job.state.is_terminal:
                return False
            check_job_write(job.state, state, job_id)
            self._jobs[job_id] = job.model_copy(
                update={"state": state, "report": report, "error": error, "updated_at": utcnow()}
            )
            return True
