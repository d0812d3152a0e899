"""
SQLAlchemy-backed job store.

Every task transition is checkpointed as a conditional UPDATE, which is
what a recovering process reloads to resume or finalize in-flight jobs.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import sessionmaker

from ..errors import JobNotFound
from ..models.content import CompanyTarget, FetchResult, SourceKey
from ..models.job import JobState, ResearchJob, Task, TaskKind, TaskState
from ..models.report import CorrelatedReport
from .base import JobStore, check_job_write, check_task_write
from .models import ResearchJobRecord, ResearchTaskRecord, init_db


logger = logging.getLogger(__name__)

TERMINAL_JOB_STATES = [JobState.COMPLETE.value, JobState.PARTIAL.value, JobState.FAILED.value]


def _naive_utc(value: datetime) -> datetime:
    """SQLite DateTime columns hold naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _task_columns(task: Task) -> dict:
    return {
        "state": task.state.value,
        "attempts": task.attempts,
        "last_error": task.last_error,
        "result": task.result.model_dump(mode="json") if task.result else None,
        "summary": task.summary,
        "result_ref": task.result_ref,
        "updated_at": _naive_utc(task.updated_at),
    }


def _task_from_record(record: ResearchTaskRecord) -> Task:
    return Task(
        job_id=record.job_id,
        kind=TaskKind(record.kind),
        source=record.source,
        seq=record.seq,
        dependencies=list(record.dependencies or []),
        state=TaskState(record.state),
        attempts=record.attempts or 0,
        last_error=record.last_error,
        result=FetchResult.model_validate(record.result) if record.result else None,
        summary=record.summary,
        result_ref=record.result_ref,
        updated_at=_aware(record.updated_at),
    )


def _job_from_record(record: ResearchJobRecord) -> ResearchJob:
    return ResearchJob(
        job_id=record.job_id,
        company=CompanyTarget.model_validate(record.company),
        requester=record.requester,
        sources=[SourceKey(s) for s in (record.sources or [])],
        include_summaries=bool(record.include_summaries),
        state=JobState(record.state),
        tasks=[_task_from_record(t) for t in sorted(record.tasks, key=lambda t: t.seq)],
        report=CorrelatedReport.model_validate(record.report) if record.report else None,
        error=record.error,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


class SqlJobStore(JobStore):
    """Durable store on SQLite through SQLAlchemy sessions."""

    def __init__(self, engine=None, db_path: str = "prospect_research.db"):
        self.engine = engine if engine is not None else init_db(db_path)
        self.Session = sessionmaker(bind=self.engine)

    def create(self, job: ResearchJob) -> None:
        session = self.Session()
        try:
            record = ResearchJobRecord(
                job_id=job.job_id,
                state=job.state.value,
                error=job.error,
                company=job.company.model_dump(mode="json"),
                requester=job.requester,
                sources=[s.value for s in job.sources],
                include_summaries=job.include_summaries,
                created_at=_naive_utc(job.created_at),
                updated_at=_naive_utc(job.updated_at),
            )
            for task in job.tasks:
                record.tasks.append(ResearchTaskRecord(
                    task_id=task.task_id,
                    kind=task.kind.value,
                    source=task.source,
                    seq=task.seq,
                    dependencies=list(task.dependencies),
                    **_task_columns(task),
                ))
            session.add(record)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, job_id: str) -> ResearchJob:
        session = self.Session()
        try:
            record = session.get(ResearchJobRecord, job_id)
            if record is None:
                raise JobNotFound(job_id)
            return _job_from_record(record)
        finally:
            session.close()

    def list_jobs(self, states: Optional[Iterable[JobState]] = None) -> list[str]:
        session = self.Session()
        try:
            query = session.query(ResearchJobRecord.job_id)
            if states is not None:
                query = query.filter(ResearchJobRecord.state.in_([s.value for s in states]))
            rows = query.order_by(ResearchJobRecord.created_at, ResearchJobRecord.job_id).all()
            return [row.job_id for row in rows]
        finally:
            session.close()

    def _job_is_open(self, session, job_id: str) -> bool:
        state = session.query(ResearchJobRecord.state).filter_by(job_id=job_id).scalar()
        if state is None:
            raise JobNotFound(job_id)
        return state not in TERMINAL_JOB_STATES

    def compare_and_set_task(self, job_id: str, expected_state: TaskState, task: Task) -> bool:
        check_task_write(expected_state, task)
        session = self.Session()
        try:
            if not self._job_is_open(session, job_id):
                return False
            updated = (
                session.query(ResearchTaskRecord)
                .filter_by(job_id=job_id, task_id=task.task_id, state=expected_state.value)
                .update(_task_columns(task), synchronize_session=False)
            )
            if updated == 1:
                session.query(ResearchJobRecord).filter_by(job_id=job_id).update(
                    {"updated_at": _naive_utc(task.updated_at)}, synchronize_session=False
                )
            elif session.get(ResearchTaskRecord, (job_id, task.task_id)) is None:
                raise KeyError(f"{job_id} has no task {task.task_id}")
            session.commit()
            return updated == 1
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def set_job_state(self, job_id: str, expected: JobState, target: JobState) -> bool:
        check_job_write(expected, target, job_id)
        session = self.Session()
        try:
            updated = (
                session.query(ResearchJobRecord)
                .filter_by(job_id=job_id, state=expected.value)
                .update({"state": target.value, "updated_at": datetime.utcnow()}, synchronize_session=False)
            )
            session.commit()
            if updated == 0 and session.get(ResearchJobRecord, job_id) is None:
                raise JobNotFound(job_id)
            return updated == 1
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def finalize(
        self,
        job_id: str,
        state: JobState,
        report: Optional[CorrelatedReport] = None,
        error: Optional[str] = None,
    ) -> bool:
        if not state.is_terminal:
            raise ValueError(f"finalize needs a terminal state, got {state.value}")
        session = self.Session()
        try:
            current = session.query(ResearchJobRecord.state).filter_by(job_id=job_id).scalar()
            if current is None:
                raise JobNotFound(job_id)
            if current in TERMINAL_JOB_STATES:
                return False
            check_job_write(JobState(current), state, job_id)

            updated = (
                session.query(ResearchJobRecord)
                .filter(ResearchJobRecord.job_id == job_id)
                .filter(ResearchJobRecord.state.notin_(TERMINAL_JOB_STATES))
                .update({
                    "state": state.value,
                    "error": error,
                    "report": report.model_dump(mode="json") if report else None,
                    "report_ref": report.fingerprint() if report else None,
                    "updated_at": datetime.utcnow(),
                }, synchronize_session=False)
            )
            session.commit()
            if updated == 1:
                logger.info(f"Job {job_id} finalized as {state.value}")
            return updated == 1
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
