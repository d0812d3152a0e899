"""
Pytest configuration and fixtures for ProspectOS tests.
"""

import os
import sys
import asyncio
import pytest
from pathlib import Path
from datetime import datetime, timezone

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment
os.environ['TESTING'] = '1'


FIXED_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


SAMPLE_PAYLOADS = {
    "site": {
        "title": "Acme - Industrial Widgets",
        "technologies": ["React", "Stripe"],
        "facts": {
            "headcount": 120,
            "headquarters": "Berlin",
            "description": "Acme makes industrial widgets.",
        },
        "text_excerpt": "Acme makes industrial widgets for factories worldwide.",
    },
    "jobs": {
        "board": "greenhouse",
        "postings": [
            {
                "title": "Senior Backend Engineer",
                "department": "Engineering",
                "location": "Remote",
                "posted_at": "2024-05-25T09:00:00+00:00",
                "url": "https://boards.greenhouse.io/acme/jobs/1",
                "description": "Urgent hire to migrate our legacy monolith to services.",
            },
            {
                "title": "Platform Engineer",
                "department": "Engineering",
                "location": "Berlin",
                "posted_at": "2024-05-20T09:00:00+00:00",
                "url": "https://boards.greenhouse.io/acme/jobs/2",
                "description": "Own our Kubernetes platform.",
            },
            {
                "title": "Account Executive",
                "department": "Sales",
                "location": "London",
                "posted_at": "2024-01-10T09:00:00+00:00",
                "url": "https://boards.greenhouse.io/acme/jobs/3",
                "description": "Grow our enterprise accounts.",
            },
        ],
        "facts": {},
    },
    "repos": {
        "organization": "acme",
        "repositories": [
            {"name": "widget-sdk", "language": "Python", "stars": 340, "pushed_at": "2024-05-30T00:00:00Z", "description": ""},
            {"name": "infra", "language": "Go", "stars": 12, "pushed_at": "2024-04-01T00:00:00Z", "description": ""},
        ],
        "languages": [["Python", 1], ["Go", 1]],
        "topics": [["sdk", 1]],
        "facts": {"description": "Open source tools from Acme", "headquarters": "Berlin, Germany"},
    },
    "news": {
        "articles": [
            {
                "title": "Acme raises $20M Series B to expand widget platform",
                "summary": "The funding will be used to hire engineers.",
                "link": "https://news.example.com/acme-series-b",
                "published_at": "2024-05-28T08:00:00+00:00",
            },
        ],
        "facts": {"headcount": 150},
    },
}


class FakeAdapter:
    """
    Source adapter double. Each call consumes the next entry of `outcomes`
    (an exception to raise, or None for success); once they run out every
    call behaves like `error` (or succeeds when it is None).
    """

    def __init__(self, source, payload=None, error=None, outcomes=None, delay=0.0, fetched_at=FIXED_TIME):
        self.source = source
        self.payload = payload if payload is not None else SAMPLE_PAYLOADS.get(source, {})
        self.error = error
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.fetched_at = fetched_at
        self.calls = 0
        self.started = asyncio.Event()

    async def fetch(self, company, config, timeout):
        from src.intelligence.models.content import FetchResult

        self.calls += 1
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else self.error
        if outcome is not None:
            raise outcome
        return FetchResult.create(self.source, company.fingerprint, self.payload, fetched_at=self.fetched_at)

    def get_stats(self):
        return {"source": self.source, "fetch_count": self.calls}


class FakeSummarizer:
    """Summarizer double returning a canned text per call."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def summarize(self, results, prompt):
        self.calls.append((tuple(r.source for r in results), prompt))
        if self.error is not None:
            raise self.error
        return f"Summary of {', '.join(r.source for r in results)}"


def fast_configs():
    """Source configs with rates high enough that tests never wait on tokens."""
    from src.intelligence.models.content import SourceConfig

    configs = {
        name: SourceConfig(source=name, capacity=100, refill_per_second=1000, ttl_seconds=3600, timeout_seconds=5.0)
        for name in ("site", "jobs", "repos", "news")
    }
    configs["ai"] = SourceConfig(source="ai", capacity=100, refill_per_second=1000, ttl_seconds=0, timeout_seconds=5.0)
    return configs


# ============================================================
# Domain Fixtures
# ============================================================

@pytest.fixture
def company():
    """A company with a corporate contact domain."""
    from src.intelligence.models.content import CompanyTarget

    return CompanyTarget.from_contact("Acme Corp", "jane@acme.io")


@pytest.fixture
def sample_payloads():
    return SAMPLE_PAYLOADS


@pytest.fixture
def adapters():
    """One successful fake adapter per source."""
    return {name: FakeAdapter(name) for name in ("site", "jobs", "repos", "news")}


@pytest.fixture
def fake_adapter_class():
    return FakeAdapter


@pytest.fixture
def source_configs():
    return fast_configs()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


# ============================================================
# Engine Fixtures
# ============================================================

@pytest.fixture
def store():
    from src.intelligence.store.base import InMemoryJobStore

    return InMemoryJobStore()


@pytest.fixture
def result_cache():
    from src.utils.cache import ResultCache

    return ResultCache()


@pytest.fixture
def gate(result_cache):
    from src.intelligence.orchestration.fetch_gate import FetchGate

    return FetchGate(result_cache, fast_configs(), global_limit=4)


@pytest.fixture
def retry_policy():
    from src.intelligence.orchestration.retry import RetryPolicy

    return RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False)


@pytest.fixture
def make_pipeline(store, gate, retry_policy):
    """Factory for a pipeline wired to fakes. Adapters default to all-success."""
    from src.intelligence.aggregation.source_manager import SourceManager
    from src.intelligence.models.content import SourceKey
    from src.intelligence.pipeline import ResearchPipeline

    def factory(adapters=None, summarizer=None, include_summaries=False, max_active_jobs=4, workers_per_job=4):
        adapters = adapters or {}
        connectors = {
            key: adapters.get(key.value) or FakeAdapter(key.value)
            for key in SourceKey
        }
        sources = SourceManager(connectors=connectors)
        return ResearchPipeline(
            store=store,
            gate=gate,
            sources=sources,
            summarizer=summarizer,
            retry_policy=retry_policy,
            workers_per_job=workers_per_job,
            max_active_jobs=max_active_jobs,
            include_summaries=include_summaries,
        )

    return factory


# ============================================================
# Database Fixtures
# ============================================================

@pytest.fixture(scope="function")
def test_db(tmp_path):
    """Create a fresh test database for each test."""
    from src.intelligence.store.models import init_db

    db_path = tmp_path / "test_jobs.sqlite"
    engine = init_db(str(db_path))

    yield engine

    engine.dispose()


@pytest.fixture
def sql_store(test_db):
    from src.intelligence.store.sql import SqlJobStore

    return SqlJobStore(engine=test_db)
