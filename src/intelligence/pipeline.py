"""
Research Pipeline - process-wide wiring of the research engine.

Owns the state every job shares: result cache, fetch gate (token buckets
and global ceiling), source adapters, correlation engine and job store.
Build it once with `ResearchPipeline.from_settings()`, inject it where
needed and call `shutdown()` on the way out.

Usage:
    pipeline = ResearchPipeline.from_settings()
    job_id = await pipeline.submit("Acme Corp", "jane@acme.io")
    job = await pipeline.wait(job_id)
    print(job.report.to_json())
"""

import asyncio
import logging
from typing import Iterable, Optional

from config.settings import AI_LIMITS, SOURCE_DEFAULTS, Settings, get_settings
from .aggregation.source_manager import SourceManager
from .correlation import CorrelationEngine, ScoringConfig
from .errors import JobNotFound
from .models.content import CompanyTarget, SourceConfig
from .models.job import JobState, ResearchJob, new_job_id
from .orchestration.fetch_gate import FetchGate
from .orchestration.graph_builder import build_task_graph
from .orchestration.retry import RetryPolicy
from .orchestration.scheduler import AI_GATE_KEY, JobScheduler
from .store.base import JobStore
from .store.sql import SqlJobStore
from .synthesis.summarizer import GeminiSummarizer, Summarizer
from src.utils.cache import ResultCache, create_cache_backend
from src.utils.validation import validate_company_name, validate_contact_email, validate_job_id


logger = logging.getLogger(__name__)


class ResearchPipeline:
    """Submit, observe and cancel research jobs. All coroutines run on one event loop."""

    def __init__(
        self,
        store: JobStore,
        gate: FetchGate,
        sources: SourceManager,
        engine: Optional[CorrelationEngine] = None,
        summarizer: Optional[Summarizer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        workers_per_job: int = 4,
        max_active_jobs: int = 4,
        include_summaries: bool = True,
    ):
        self.store = store
        self.gate = gate
        self.sources = sources
        self.engine = engine or CorrelationEngine()
        self.summarizer = summarizer
        self.retry_policy = retry_policy or RetryPolicy()
        self.workers_per_job = workers_per_job
        self.include_summaries = include_summaries and summarizer is not None

        self._active = asyncio.Semaphore(max_active_jobs)
        self._schedulers: dict[str, JobScheduler] = {}
        self._runs: dict[str, asyncio.Task] = {}
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[JobStore] = None,
        connectors: Optional[dict] = None,
        summarizer: Optional[Summarizer] = None,
    ) -> "ResearchPipeline":
        """Construct the process-wide engine state from configuration."""
        settings = settings or get_settings()

        sources = SourceManager.from_defaults(SOURCE_DEFAULTS, connectors=connectors)
        gate_configs = {key.value: config for key, config in sources.configs.items()}
        gate_configs[AI_GATE_KEY] = SourceConfig(source=AI_GATE_KEY, **AI_LIMITS)

        cache = ResultCache(create_cache_backend(
            settings.cache_backend,
            cache_dir=settings.cache_dir,
            max_size=settings.cache_max_entries,
        ))
        gate = FetchGate(cache, gate_configs, global_limit=settings.global_fetch_limit)

        if summarizer is None and settings.include_summaries:
            if settings.gemini_api_key:
                summarizer = GeminiSummarizer(model=settings.summary_model, api_key=settings.gemini_api_key)
            else:
                logger.warning("No Gemini API key configured; AI summaries disabled")

        return cls(
            store=store or SqlJobStore(db_path=settings.database_path),
            gate=gate,
            sources=sources,
            engine=CorrelationEngine(ScoringConfig.from_settings(settings)),
            summarizer=summarizer,
            retry_policy=RetryPolicy.from_settings(settings),
            workers_per_job=settings.workers_per_job,
            max_active_jobs=settings.max_active_jobs,
            include_summaries=settings.include_summaries,
        )

    # ------------------------------------------------------------------
    # Job submission interface
    # ------------------------------------------------------------------

    async def submit(
        self,
        company_name: str,
        contact_email: str,
        sources: Optional[Iterable[str]] = None,
        requester: Optional[str] = None,
    ) -> str:
        """
        Validate a request, persist its DAG and start it in the background.

        Raises:
            InvalidRequest: Bad company name, email or source set
        """
        if self._closed:
            raise RuntimeError("Pipeline is shut down")

        company = CompanyTarget.from_contact(
            validate_company_name(company_name),
            validate_contact_email(contact_email),
        )
        job_id = new_job_id()
        tasks = build_task_graph(job_id, sources, include_summaries=self.include_summaries)
        job = ResearchJob(
            job_id=job_id,
            company=company,
            requester=requester,
            sources=[t.source for t in tasks if t.kind.is_fetch],
            include_summaries=self.include_summaries,
            tasks=tasks,
        )
        self.store.create(job)
        logger.info(f"Submitted {job_id} for {company.name} ({company.domain or 'no domain'})")

        self._spawn(job_id)
        return job_id

    def get_status(self, job_id: str) -> dict:
        job = self.store.get(validate_job_id(job_id))
        return job.to_status()

    async def wait(self, job_id: str) -> ResearchJob:
        """Wait for a job started by this process to reach a terminal state."""
        run = self._runs.get(job_id)
        if run is not None:
            await asyncio.shield(run)
        return self.store.get(job_id)

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a job. Returns False if the job had already finished.

        Raises:
            JobNotFound: Unknown job id
        """
        job = self.store.get(validate_job_id(job_id))
        if job.state.is_terminal:
            return False

        scheduler = self._schedulers.get(job_id)
        if scheduler is None:
            # Persisted by another run of the process
            scheduler = self._scheduler_for(job_id)
        accepted = scheduler.cancel()

        # A job still queued for a slot settles inside cancel()
        run = self._runs.get(job_id)
        if run is not None and scheduler.running:
            await asyncio.shield(run)
        return accepted

    async def recover(self) -> list[str]:
        """Resume every job a previous process left PENDING or RUNNING."""
        resumed = []
        for job_id in self.store.list_jobs(states=[JobState.PENDING, JobState.RUNNING]):
            if job_id in self._runs:
                continue
            self._spawn(job_id)
            resumed.append(job_id)
        if resumed:
            logger.info(f"Recovering {len(resumed)} interrupted jobs")
        return resumed

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop running jobs and drain the fetch gate. Interrupted jobs keep
        their checkpointed state and are picked up by `recover()`.
        """
        self._closed = True
        runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        await asyncio.gather(*runs, return_exceptions=True)
        await self.gate.close(timeout)
        logger.info(f"Pipeline shut down ({len(runs)} jobs interrupted)")

    def get_stats(self) -> dict:
        return {
            "active_jobs": len(self._runs),
            "gate": self.gate.get_stats(),
            "cache": self.gate.cache.stats(),
            "sources": self.sources.get_stats(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scheduler_for(self, job_id: str) -> JobScheduler:
        return JobScheduler(
            job_id,
            store=self.store,
            gate=self.gate,
            sources=self.sources,
            engine=self.engine,
            summarizer=self.summarizer,
            retry_policy=self.retry_policy,
            workers=self.workers_per_job,
        )

    def _spawn(self, job_id: str) -> None:
        scheduler = self._scheduler_for(job_id)
        self._schedulers[job_id] = scheduler
        run = asyncio.create_task(self._run(scheduler), name=f"research-{job_id}")
        self._runs[job_id] = run
        run.add_done_callback(lambda _, j=job_id: self._forget(j))

    def _forget(self, job_id: str) -> None:
        self._runs.pop(job_id, None)
        self._schedulers.pop(job_id, None)

    async def _run(self, scheduler: JobScheduler) -> Optional[ResearchJob]:
        async with self._active:
            try:
                return await scheduler.run()
            except JobNotFound:
                logger.error(f"Job {scheduler.job_id} disappeared from the store")
                raise
