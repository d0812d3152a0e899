"""
Worker Pool / Scheduler - executes one job's task DAG.

Ready tasks are pulled in creation order by a fixed pool of worker
coroutines. Each worker runs exactly one attempt and goes back to the
queue. Retry backoff is a loop timer that re-queues the task, so no worker
sits idle waiting for it. After a task turns terminal its dependents are
re-evaluated; that is the only point where the DAG advances.

Every state change goes through the job store's compare-and-swap, which
is also the checkpoint a restarted process resumes from.
"""

import asyncio
import logging
from typing import Optional

from ..correlation import CorrelationEngine
from ..errors import CorrelationError, ExhaustedRetries, RetryableSourceError, SourceError, PermanentSourceError
from ..models.job import JobState, ResearchJob, Task, TaskKind, TaskState
from ..models.report import CorrelatedReport
from ..store.base import JobStore
from ..synthesis.summarizer import Summarizer, build_prompt
from .fetch_gate import FetchGate
from .graph_builder import correlate_task_id, dependents_index
from .retry import RetryPolicy


logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
AI_GATE_KEY = "ai"


def describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class JobScheduler:
    """
    Runs a single research job to a terminal state.

    Usage:
        scheduler = JobScheduler(job_id, store, gate, sources, engine)
        job = await scheduler.run()
    """

    def __init__(
        self,
        job_id: str,
        store: JobStore,
        gate: FetchGate,
        sources,
        engine: CorrelationEngine,
        summarizer: Optional[Summarizer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        workers: int = 4,
    ):
        self.job_id = job_id
        self.store = store
        self.gate = gate
        self.sources = sources
        self.engine = engine
        self.summarizer = summarizer
        self.retry_policy = retry_policy or RetryPolicy()
        self.workers = max(1, workers)

        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._settled = asyncio.Event()
        self._dependents: dict[str, list[str]] = {}
        self._report: Optional[CorrelatedReport] = None
        self._running = False
        self._finished = False
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> ResearchJob:
        """Drive the job to COMPLETE, PARTIAL or FAILED and return the final snapshot."""
        job = self.store.get(self.job_id)
        if job.state.is_terminal or self._finished:
            self._finished = True
            return job

        self._running = True
        self._dependents = dependents_index(job.tasks)
        if job.state == JobState.PENDING:
            self.store.set_job_state(self.job_id, JobState.PENDING, JobState.RUNNING)
        logger.info(f"Job {self.job_id} running {len(job.tasks)} tasks for {job.company.name}")

        self._recover_interrupted()
        self._scan_pending()
        self._enqueue_ready()
        self._check_settled()

        pool = [asyncio.create_task(self._worker(), name=f"{self.job_id}-worker-{n}") for n in range(self.workers)]
        settled = asyncio.create_task(self._settled.wait())
        try:
            done, _ = await asyncio.wait([settled, *pool], return_when=asyncio.FIRST_COMPLETED)
            for finished in done:
                # A worker only exits on an internal error; leave the job for recovery
                if finished is not settled and not finished.cancelled() and finished.exception():
                    raise finished.exception()
        finally:
            settled.cancel()
            self._cancel_timers()
            for worker in pool:
                worker.cancel()
            await asyncio.gather(*pool, return_exceptions=True)
            self._running = False

        if self._cancelled:
            self._settle_cancelled()
        else:
            self._finalize()
        self._finished = True
        return self.store.get(self.job_id)

    def cancel(self) -> bool:
        """
        Abandon the job: in-flight and queued attempts fail with "cancelled",
        waiting tasks are skipped and the job ends FAILED.
        """
        if self._finished or self._cancelled:
            return False
        self._cancelled = True
        if self._running:
            self._settled.set()
        else:
            self._settle_cancelled()
            self._finished = True
        return True

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    def _snapshot(self) -> ResearchJob:
        return self.store.get(self.job_id)

    def _enqueue(self, task: Task) -> None:
        self._queue.put_nowait((task.seq, task.task_id))

    def _enqueue_ready(self) -> None:
        for task in sorted(self._snapshot().tasks, key=lambda t: t.seq):
            if task.state == TaskState.READY:
                self._enqueue(task)

    def _requeue(self, task_id: str) -> None:
        self._timers.pop(task_id, None)
        if self._cancelled:
            return
        task = self._snapshot().task(task_id)
        if task.state == TaskState.READY:
            self._enqueue(task)

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _check_settled(self) -> None:
        if self._snapshot().all_tasks_terminal:
            self._settled.set()

    # ------------------------------------------------------------------
    # DAG evaluation
    # ------------------------------------------------------------------

    def _recover_interrupted(self) -> None:
        """A task left RUNNING by a previous process counts as a failed attempt."""
        for task in self._snapshot().tasks:
            if task.state != TaskState.RUNNING:
                continue
            if self.retry_policy.should_retry(task.attempts):
                updated = task.transition(TaskState.READY, last_error="interrupted")
            else:
                error = ExhaustedRetries("interrupted", task.source, task.attempts)
                updated = task.transition(TaskState.FAILED, last_error=describe_error(error))
            if self.store.compare_and_set_task(self.job_id, TaskState.RUNNING, updated):
                logger.info(f"Recovered {task.task_id} of {self.job_id} as {updated.state.value}")

    def _evaluate(self, task: Task, tasks: dict[str, Task]) -> Optional[Task]:
        """Promote a PENDING task whose dependencies are all terminal."""
        if task.state != TaskState.PENDING:
            return None
        deps = [tasks[d] for d in task.dependencies]
        if not all(d.state.is_terminal for d in deps):
            return None

        blocked = [d for d in deps if d.state in (TaskState.FAILED, TaskState.SKIPPED)]
        if blocked and not task.tolerates_failed_dependencies:
            updated = task.transition(
                TaskState.SKIPPED,
                last_error=f"dependency {blocked[0].task_id} {blocked[0].state.value}",
            )
        else:
            updated = task.transition(TaskState.READY)

        if not self.store.compare_and_set_task(self.job_id, TaskState.PENDING, updated):
            return None
        if updated.state == TaskState.READY:
            self._enqueue(updated)
        return updated

    def _scan_pending(self) -> None:
        """One pass in creation order; dependencies always precede dependents."""
        tasks = self._snapshot().task_map
        for task in sorted(tasks.values(), key=lambda t: t.seq):
            updated = self._evaluate(task, tasks)
            if updated is not None:
                tasks[updated.task_id] = updated

    def _release_dependents(self, task_id: str) -> None:
        released = [task_id]
        while released:
            current = released.pop(0)
            for dependent_id in self._dependents.get(current, []):
                tasks = self._snapshot().task_map
                updated = self._evaluate(tasks[dependent_id], tasks)
                if updated is not None and updated.state == TaskState.SKIPPED:
                    released.append(dependent_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while True:
            _, task_id = await self._queue.get()
            try:
                await self._execute(task_id)
            finally:
                self._queue.task_done()

    async def _execute(self, task_id: str) -> None:
        job = self._snapshot()
        task = job.task(task_id)
        if task.state != TaskState.READY or self._cancelled:
            return

        running = task.transition(TaskState.RUNNING, attempts=task.attempts + 1)
        if not self.store.compare_and_set_task(self.job_id, TaskState.READY, running):
            # Another worker claimed it
            return

        try:
            changes = await self._dispatch(running, job)
        except asyncio.CancelledError:
            raise
        except SourceError as e:
            self._on_failure(running, e)
            return
        except CorrelationError as e:
            logger.warning(f"Correlation failed for {self.job_id}: {e}")
            self._commit(running.transition(TaskState.FAILED, last_error=describe_error(e)))
            return
        except Exception as e:
            logger.exception(f"Unexpected error in {task_id} of {self.job_id}")
            self._commit(running.transition(TaskState.FAILED, last_error=describe_error(e)))
            return

        self._commit(running.transition(TaskState.SUCCEEDED, last_error=None, **changes))

    async def _dispatch(self, task: Task, job: ResearchJob) -> dict:
        if task.kind.is_fetch:
            adapter = self.sources.adapter_for(task.source)
            result = await self.gate.fetch(task.source, job.company, adapter)
            return {"result": result, "result_ref": result.content_hash}

        if task.kind == TaskKind.AI_SUMMARIZE:
            return await self._summarize(task, job)

        report = self.engine.correlate(job)
        self._report = report
        return {"result_ref": report.fingerprint()}

    async def _summarize(self, task: Task, job: ResearchJob) -> dict:
        if self.summarizer is None:
            raise PermanentSourceError("no summarizer configured", AI_GATE_KEY)
        inputs = [job.task(dep).result for dep in task.dependencies]
        inputs = [r for r in inputs if r is not None]
        prompt = build_prompt(task.source, job.company.name)
        timeout = self.gate.config_for(AI_GATE_KEY).timeout_seconds

        async with self.gate.acquire(AI_GATE_KEY):
            try:
                summary = await asyncio.wait_for(self.summarizer.summarize(inputs, prompt), timeout=timeout)
            except asyncio.TimeoutError:
                raise RetryableSourceError(f"summary timed out after {timeout}s", AI_GATE_KEY) from None
        return {"summary": summary}

    def _on_failure(self, task: Task, error: SourceError) -> None:
        if error.retryable and self.retry_policy.should_retry(task.attempts):
            delay = self.retry_policy.delay_for(task.attempts)
            retry = task.transition(TaskState.READY, last_error=describe_error(error))
            if self.store.compare_and_set_task(self.job_id, TaskState.RUNNING, retry):
                logger.info(
                    f"Retrying {task.task_id} of {self.job_id} in {delay:.2f}s "
                    f"(attempt {task.attempts}/{self.retry_policy.max_attempts}): {error}"
                )
                handle = asyncio.get_running_loop().call_later(delay, self._requeue, task.task_id)
                self._timers[task.task_id] = handle
            return

        if error.retryable:
            error = ExhaustedRetries(error.detail, error.source, task.attempts)
        logger.warning(f"Task {task.task_id} of {self.job_id} failed: {error}")
        self._commit(task.transition(TaskState.FAILED, last_error=describe_error(error)))

    def _commit(self, updated: Task) -> None:
        """Write a terminal transition and advance the DAG."""
        if not self.store.compare_and_set_task(self.job_id, TaskState.RUNNING, updated):
            return
        self._release_dependents(updated.task_id)
        self._check_settled()

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _finalize(self) -> None:
        job = self._snapshot()
        correlate = job.task(correlate_task_id())

        if correlate.state != TaskState.SUCCEEDED:
            error = correlate.last_error or "correlation did not run"
            self.store.finalize(self.job_id, JobState.FAILED, error=error)
            logger.warning(f"Job {self.job_id} failed: {error}")
            return

        report = self._report
        if report is None:
            # Finished by a previous process; correlation is deterministic
            report = self.engine.correlate(job)

        others = [t for t in job.tasks if t.kind != TaskKind.CORRELATE]
        if all(t.state == TaskState.SUCCEEDED for t in others):
            state = JobState.COMPLETE
        else:
            state = JobState.PARTIAL
        self.store.finalize(self.job_id, state, report=report)
        logger.info(f"Job {self.job_id} {state.value} (score={report.buying_signal_score})")

    def _settle_cancelled(self) -> None:
        self._cancel_timers()
        for task in self._snapshot().tasks:
            if task.state in (TaskState.RUNNING, TaskState.READY):
                updated = task.transition(TaskState.FAILED, last_error=CANCELLED)
            elif task.state == TaskState.PENDING:
                updated = task.transition(TaskState.SKIPPED, last_error=CANCELLED)
            else:
                continue
            self.store.compare_and_set_task(self.job_id, task.state, updated)
        self.store.finalize(self.job_id, JobState.FAILED, error=CANCELLED)
        logger.info(f"Job {self.job_id} cancelled")
