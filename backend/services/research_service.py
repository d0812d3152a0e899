"""
Research Service
Synchronous facade over the research pipeline for callers that are not
async (CLI, web handlers, scripts). The pipeline lives on one event loop
running in a background daemon thread; every call is marshalled onto it.
"""

import asyncio
import threading
from typing import Callable, Iterable, Optional

from backend.utils.logger import get_logger
from config.settings import Settings, get_settings
from src.intelligence.errors import InvalidRequest, JobNotFound
from src.intelligence.pipeline import ResearchPipeline

logger = get_logger(__name__)


class ResearchService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        pipeline_factory: Optional[Callable[[], ResearchPipeline]] = None,
    ):
        self.settings = settings or get_settings()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="research-loop", daemon=True)
        self._thread.start()

        factory = pipeline_factory or (lambda: ResearchPipeline.from_settings(self.settings))
        self.pipeline: ResearchPipeline = self._call(self._build(factory))
        self._closed = False

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @staticmethod
    async def _build(factory):
        # Constructed on the loop thread so its primitives bind to that loop
        return factory()

    def _call(self, coro, timeout: Optional[float] = None):
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def start_research(
        self,
        company_name: str,
        contact_email: str,
        sources: Optional[Iterable[str]] = None,
        requester: Optional[str] = None,
    ) -> str:
        """
        Validates the request, creates the job and starts it in the background.
        Returns the new job_id. Raises InvalidRequest on bad input.
        """
        job_id = self._call(self.pipeline.submit(company_name, contact_email, sources, requester))
        logger.info(f"Started research job for {company_name}", extra={"job_id": job_id})
        return job_id

    def get_job_status(self, job_id: str) -> Optional[dict]:
        """Returns the full status dict for a job, or None if it does not exist."""
        try:
            return self.pipeline.get_status(job_id)
        except (JobNotFound, InvalidRequest):
            return None

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> dict:
        """Blocks until the job is terminal and returns its status."""
        job = self._call(self.pipeline.wait(job_id), timeout)
        return job.to_status()

    def cancel_job(self, job_id: str) -> bool:
        """Cancels a job. Returns False if it was unknown or already finished."""
        try:
            cancelled = self._call(self.pipeline.cancel(job_id))
        except (JobNotFound, InvalidRequest):
            return False
        if cancelled:
            logger.info("Research job cancelled", extra={"job_id": job_id})
        return cancelled

    def recover_jobs(self) -> list:
        """Resumes jobs left unfinished by a previous process."""
        resumed = self._call(self.pipeline.recover())
        for job_id in resumed:
            logger.info("Resuming interrupted research job", extra={"job_id": job_id})
        return resumed

    def get_stats(self) -> dict:
        async def collect():
            return self.pipeline.get_stats()
        return self._call(collect())

    def shutdown(self, timeout: Optional[float] = 30.0):
        """Stops running jobs, drains the fetch gate and stops the loop thread."""
        if self._closed:
            return
        self._closed = True
        try:
            self._call(self.pipeline.shutdown(timeout))
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            logger.info("Research service stopped")
