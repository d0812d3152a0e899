"""
Unit tests for the correlation and scoring engine.
"""

import random
import pytest
from datetime import timedelta

from conftest import FIXED_TIME, SAMPLE_PAYLOADS


JOB_ID = "job-00000000c0de"


def make_result(company, source, payload=None, fetched_at=FIXED_TIME):
    from src.intelligence.models.content import FetchResult

    return FetchResult.create(
        source,
        company.fingerprint,
        payload if payload is not None else SAMPLE_PAYLOADS[source],
        fetched_at=fetched_at,
    )


def make_job(company, results, failed=(), summaries=None):
    """A job whose FETCH tasks already reached their terminal states."""
    from src.intelligence.models.job import ResearchJob, TaskKind, TaskState
    from src.intelligence.orchestration.graph_builder import build_task_graph

    sources = list(results) + list(failed)
    tasks = []
    for task in build_task_graph(JOB_ID, sources, include_summaries=bool(summaries)):
        if task.kind.is_fetch and task.source in results:
            task = task.model_copy(update={"state": TaskState.SUCCEEDED, "result": results[task.source]})
        elif task.kind.is_fetch:
            task = task.model_copy(update={
                "state": TaskState.FAILED,
                "last_error": f"PermanentSourceError: {task.source}: not found",
            })
        elif task.kind == TaskKind.AI_SUMMARIZE and (summaries or {}).get(task.source):
            task = task.model_copy(update={"state": TaskState.SUCCEEDED, "summary": summaries[task.source]})
        tasks.append(task)
    return ResearchJob(job_id=JOB_ID, company=company, sources=sources, tasks=tasks)


def all_results(company, **overrides):
    results = {s: make_result(company, s) for s in ("site", "jobs", "repos", "news")}
    results.update(overrides)
    return results


@pytest.mark.unit
class TestCorrelationEngine:
    """Tests for CorrelationEngine.correlate."""

    def test_full_report(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        report = CorrelationEngine().correlate(make_job(company, all_results(company)))

        assert report.job_id == JOB_ID
        assert report.company == "Acme Corp"
        assert report.contributing_sources == ["jobs", "news", "repos", "site"]
        assert report.failed_sources == {}
        assert all(not s.is_insufficient for s in report.sections)
        assert report.generated_at == FIXED_TIME

    def test_deterministic_output(self, company):
        """Same task results, in any order, give byte-identical reports."""
        from src.intelligence.correlation.engine import CorrelationEngine

        job = make_job(company, all_results(company), failed=())
        shuffled = list(job.tasks)
        random.Random(7).shuffle(shuffled)

        first = CorrelationEngine().correlate(job)
        second = CorrelationEngine().correlate(job, tasks=shuffled)

        assert first.to_json() == second.to_json()
        assert first.fingerprint() == second.fingerprint()

    def test_zero_successes_raise(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine
        from src.intelligence.errors import CorrelationError

        job = make_job(company, {}, failed=("site", "jobs"))

        with pytest.raises(CorrelationError, match="Acme Corp"):
            CorrelationEngine().correlate(job)

    def test_failed_sources_recorded(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        results = {"site": make_result(company, "site")}
        report = CorrelationEngine().correlate(make_job(company, results, failed=("news",)))

        assert report.failed_sources == {"news": "PermanentSourceError: news: not found"}
        assert report.is_partial

    def test_generated_at_is_newest_fetch(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        later = FIXED_TIME + timedelta(hours=2)
        results = all_results(company, news=make_result(company, "news", fetched_at=later))

        report = CorrelationEngine().correlate(make_job(company, results))
        assert report.generated_at == later


@pytest.mark.unit
class TestSections:
    """Section partitioning and insufficient-data marking."""

    def test_buying_section_insufficient_without_jobs_or_news(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        results = {"site": make_result(company, "site"), "repos": make_result(company, "repos")}
        report = CorrelationEngine().correlate(make_job(company, results, failed=("jobs",)))

        assert report.buying_signals.status == "insufficient_data"
        assert report.buying_signal_score is None
        assert report.score_breakdown == []
        assert report.technical_intelligence.status == "ok"

    def test_technical_section_insufficient_without_site_or_repos(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        results = {"jobs": make_result(company, "jobs")}
        report = CorrelationEngine().correlate(make_job(company, results, failed=("site",)))

        assert report.technical_intelligence.is_insufficient
        assert report.buying_signals.contributing_sources == ["jobs"]
        assert report.talking_points.contributing_sources == ["jobs"]

    def test_technical_content(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        report = CorrelationEngine().correlate(make_job(company, all_results(company)))
        content = report.technical_intelligence.content

        assert content["technologies"] == ["React", "Stripe"]
        assert content["repository_count"] == 2
        assert content["languages"] == [{"name": "Python", "count": 1}, {"name": "Go", "count": 1}]
        assert [r["name"] for r in content["top_repositories"]] == ["widget-sdk", "infra"]

    def test_buying_content(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        report = CorrelationEngine().correlate(make_job(company, all_results(company)))
        content = report.buying_signals.content

        assert content["open_roles"] == 3
        assert content["departments"] == [{"name": "Engineering", "count": 2}, {"name": "Sales", "count": 1}]
        assert content["recent_postings"][0]["title"] == "Senior Backend Engineer"
        assert content["job_board"] == "greenhouse"
        assert content["headlines"][0]["title"].startswith("Acme raises")

    def test_summaries_attached_to_their_sections(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        job = make_job(company, all_results(company), summaries={"site": "Widget maker.", "news": "Raised a B."})
        report = CorrelationEngine().correlate(job)

        assert report.technical_intelligence.content["summaries"] == {"site": "Widget maker."}
        assert report.buying_signals.content["summaries"] == {"news": "Raised a B."}
        assert report.talking_points.content["summaries"] == {"news": "Raised a B.", "site": "Widget maker."}

    def test_talking_points(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        report = CorrelationEngine().correlate(make_job(company, all_results(company)))
        points = report.talking_points.content["points"]

        assert "Team size: about 150 people" in points
        assert "Website runs on React, Stripe" in points
        assert "2 roles posted in the last 30 days" in points
        assert any(p.startswith("In the news: Acme raises") for p in points)


@pytest.mark.unit
class TestFactResolution:
    """Conflicting facts across sources."""

    def test_priority_breaks_ties(self, company):
        """Same fetch time: repos > jobs > news > site."""
        from src.intelligence.correlation.engine import CorrelationEngine

        facts = {f.name: f for f in CorrelationEngine().resolve_facts(all_results(company))}

        assert facts["headcount"].value == 150
        assert facts["headcount"].source == "news"
        assert facts["headcount"].alternatives == [
            {"source": "site", "value": 120, "fetched_at": FIXED_TIME.isoformat()}
        ]
        assert facts["headquarters"].value == "Berlin, Germany"
        assert facts["headquarters"].source == "repos"

    def test_newest_value_wins(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        later = FIXED_TIME + timedelta(minutes=5)
        results = all_results(company, site=make_result(company, "site", fetched_at=later))
        facts = {f.name: f for f in CorrelationEngine().resolve_facts(results)}

        assert facts["headcount"].value == 120
        assert facts["headquarters"].value == "Berlin"
        assert facts["description"].source == "site"

    def test_missing_facts_omitted(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        facts = CorrelationEngine().resolve_facts({"jobs": make_result(company, "jobs")})
        assert facts == []


@pytest.mark.unit
class TestSignalScoring:
    """Tests for SignalScorer and ScoringConfig."""

    def test_sample_indicators(self, company):
        from src.intelligence.correlation.scoring import ScoringConfig, SignalScorer

        scorer = SignalScorer(ScoringConfig())
        indicators = {
            i.name: i
            for i in scorer.indicators(
                SAMPLE_PAYLOADS["jobs"]["postings"], SAMPLE_PAYLOADS["news"]["articles"], FIXED_TIME
            )
        }

        assert indicators["hiring_velocity"].raw_count == 2
        assert indicators["urgent_keyword_density"].raw_count == 0.25
        assert indicators["leadership_funding"].raw_count == 1
        assert indicators["technical_debt"].raw_count == 3
        assert indicators["urgent_keyword_density"].normalized == 0.5

    def test_sample_score(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine

        report = CorrelationEngine().correlate(make_job(company, all_results(company)))

        assert report.buying_signal_score == 40.3
        assert [i.name for i in report.score_breakdown] == [
            "hiring_velocity", "urgent_keyword_density", "leadership_funding", "technical_debt",
        ]

    def test_score_saturates_at_scale(self):
        from src.intelligence.correlation.scoring import ScoringConfig, SignalScorer

        postings = [
            {"title": f"Engineer {i}", "description": "Urgent: migrate the legacy monolith",
             "posted_at": (FIXED_TIME - timedelta(days=1)).isoformat()}
            for i in range(20)
        ]
        articles = [{"title": f"Acme raises round {i}", "summary": "new CTO appointed"} for i in range(5)]
        scorer = SignalScorer(ScoringConfig())

        indicators = scorer.indicators(postings, articles, FIXED_TIME)
        assert all(i.normalized == 1.0 for i in indicators)
        assert scorer.score(indicators) == 100.0

    def test_empty_inputs_score_zero(self):
        from src.intelligence.correlation.scoring import ScoringConfig, SignalScorer

        scorer = SignalScorer(ScoringConfig())
        assert scorer.score(scorer.indicators([], [], FIXED_TIME)) == 0.0

    def test_custom_scale(self, company):
        from src.intelligence.correlation.engine import CorrelationEngine
        from src.intelligence.correlation.scoring import ScoringConfig

        engine = CorrelationEngine(ScoringConfig(scale=10.0))
        report = engine.correlate(make_job(company, all_results(company)))

        assert report.score_scale == 10.0
        assert 0.0 <= report.buying_signal_score <= 10.0

    def test_keywords_match_whole_words(self):
        from src.intelligence.correlation.scoring import _keyword_patterns, count_hits

        patterns = _keyword_patterns(["ipo"])
        assert count_hits("Planning an IPO next year", patterns) == 1
        assert count_hits("Ship the tipoff feature", patterns) == 0

    def test_evidence_capped_and_sorted(self):
        from src.intelligence.correlation.scoring import ScoringConfig, SignalScorer

        postings = [
            {"title": f"Role {i:02d}", "posted_at": FIXED_TIME.isoformat()}
            for i in range(12)
        ]
        hiring = SignalScorer(ScoringConfig()).indicators(postings, [], FIXED_TIME)[0]

        assert hiring.evidence == ["Role 00", "Role 01", "Role 02", "Role 03", "Role 04"]

    @pytest.mark.parametrize("kwargs", [
        {"weights": {"hiring_velocity": 1.0}},
        {"weights": {"hiring_velocity": -0.1, "urgent_keyword_density": 0.2,
                     "leadership_funding": 0.2, "technical_debt": 0.2}},
        {"scale": 0},
    ])
    def test_invalid_config_rejected(self, kwargs):
        from src.intelligence.correlation.scoring import ScoringConfig

        with pytest.raises(ValueError):
            ScoringConfig(**kwargs)

    def test_unparseable_timestamps_ignored(self):
        from src.intelligence.correlation.scoring import parse_timestamp

        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("2024-05-30T00:00:00Z").tzinfo is not None
