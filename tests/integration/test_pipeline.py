"""
Integration tests for the ResearchPipeline submission interface.
"""

import asyncio
import pytest

from conftest import FakeAdapter


@pytest.mark.integration
class TestSubmission:
    """Tests for ResearchPipeline.submit."""

    @pytest.mark.asyncio
    async def test_submit_persists_dag(self, make_pipeline, store):
        pipeline = make_pipeline()

        job_id = await pipeline.submit("  Acme   Corp ", "Jane@Acme.io", sources=["news", "site"], requester="sdr-7")
        job = store.get(job_id)

        assert job.company.name == "Acme Corp"
        assert job.company.domain == "acme.io"
        assert job.requester == "sdr-7"
        assert [s.value for s in job.sources] == ["site", "news"]
        assert [t.task_id for t in job.tasks] == ["fetch_site:site", "fetch_news:news", "correlate"]

        await asyncio.wait_for(pipeline.wait(job_id), timeout=5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,email,sources,message", [
        ("", "jane@acme.io", None, "Company name"),
        ("Acme", "not-an-email", None, "email"),
        ("Acme", "jane@acme.io", [], "empty"),
        ("Acme", "jane@acme.io", ["site", "crunchbase"], "Unknown source"),
    ])
    async def test_invalid_requests_rejected(self, make_pipeline, store, name, email, sources, message):
        """Invalid requests never reach the store."""
        from src.intelligence.errors import InvalidRequest

        pipeline = make_pipeline()

        with pytest.raises(InvalidRequest, match=message):
            await pipeline.submit(name, email, sources=sources)
        assert store.list_jobs() == []

    @pytest.mark.asyncio
    async def test_submit_after_shutdown(self, make_pipeline):
        pipeline = make_pipeline()
        await pipeline.shutdown(timeout=1.0)

        with pytest.raises(RuntimeError, match="shut down"):
            await pipeline.submit("Acme", "jane@acme.io")


@pytest.mark.integration
class TestStatus:
    """Tests for status reporting."""

    @pytest.mark.asyncio
    async def test_status_while_running_and_after(self, make_pipeline):
        slow = FakeAdapter("jobs", delay=0.1)
        pipeline = make_pipeline(adapters={"jobs": slow})

        job_id = await pipeline.submit("Acme Corp", "jane@acme.io", sources=["site", "jobs"])
        await asyncio.wait_for(slow.started.wait(), timeout=5)

        running = pipeline.get_status(job_id)
        assert running["state"] == "running"
        assert running["tasks"]["fetch_jobs:jobs"]["state"] == "running"
        assert running["report"] is None

        await asyncio.wait_for(pipeline.wait(job_id), timeout=5)
        final = pipeline.get_status(job_id)

        assert final["state"] == "complete"
        assert final["sources"] == {"site": "succeeded", "jobs": "succeeded"}
        assert final["report"]["company"] == "Acme Corp"
        assert final["report"]["buying_signals"]["status"] == "ok"

    def test_status_of_unknown_job(self, make_pipeline):
        from src.intelligence.errors import JobNotFound

        with pytest.raises(JobNotFound):
            make_pipeline().get_status("job-ffffffffffff")

    def test_status_with_malformed_id(self, make_pipeline):
        from src.intelligence.errors import InvalidRequest

        with pytest.raises(InvalidRequest):
            make_pipeline().get_status("../../etc/passwd")

    @pytest.mark.asyncio
    async def test_stats(self, make_pipeline):
        pipeline = make_pipeline()
        job_id = await pipeline.submit("Acme Corp", "jane@acme.io", sources=["site"])
        await asyncio.wait_for(pipeline.wait(job_id), timeout=5)

        stats = pipeline.get_stats()
        assert stats["active_jobs"] == 0
        assert stats["gate"]["adapter_calls"] == 1
        assert stats["sources"]["site"]["fetch_count"] == 1
        assert set(stats["cache"]) == {"hits", "misses"}


@pytest.mark.integration
class TestFromSettings:
    """Process-wide wiring from configuration."""

    def test_builds_from_settings(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        from config.settings import Settings
        from src.intelligence.models.content import SourceKey
        from src.intelligence.pipeline import ResearchPipeline
        from src.intelligence.store.sql import SqlJobStore

        settings = Settings(
            gemini_api_key=None,
            database_path=str(tmp_path / "jobs.db"),
            global_fetch_limit=3,
            max_attempts=5,
            score_scale=10,
        )
        connectors = {key: FakeAdapter(key.value) for key in SourceKey}
        pipeline = ResearchPipeline.from_settings(settings, connectors=connectors)

        assert isinstance(pipeline.store, SqlJobStore)
        assert pipeline.summarizer is None
        assert pipeline.include_summaries is False
        assert pipeline.retry_policy.max_attempts == 5
        assert pipeline.engine.config.scale == 10
        assert pipeline.gate.ceiling.limit == 3
        assert set(pipeline.gate.configs) == {"site", "jobs", "repos", "news", "ai"}
        assert pipeline.gate.config_for("jobs").weight == 2
        assert pipeline.sources.adapter_for("news") is connectors[SourceKey.NEWS]

    def test_gemini_summarizer_when_key_present(self, tmp_path):
        from config.settings import Settings
        from src.intelligence.pipeline import ResearchPipeline
        from src.intelligence.synthesis.summarizer import GeminiSummarizer

        settings = Settings(gemini_api_key="test-key", database_path=str(tmp_path / "jobs.db"))
        pipeline = ResearchPipeline.from_settings(settings)

        assert isinstance(pipeline.summarizer, GeminiSummarizer)
        assert pipeline.include_summaries is True

    @pytest.mark.asyncio
    async def test_file_cache_backend(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        from config.settings import Settings
        from src.intelligence.models.content import SourceKey
        from src.intelligence.pipeline import ResearchPipeline
        from src.utils.cache import FileCache

        settings = Settings(
            gemini_api_key=None,
            database_path=str(tmp_path / "jobs.db"),
            cache_backend="file",
            cache_dir=str(tmp_path / "cache"),
        )
        connectors = {key: FakeAdapter(key.value) for key in SourceKey}
        pipeline = ResearchPipeline.from_settings(settings, connectors=connectors)

        assert isinstance(pipeline.gate.cache._backend, FileCache)
        job_id = await pipeline.submit("Acme Corp", "jane@acme.io", sources=["site"])
        job = await asyncio.wait_for(pipeline.wait(job_id), timeout=5)

        assert job.report is not None
        assert list((tmp_path / "cache").glob("*.json"))
