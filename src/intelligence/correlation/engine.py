"""
Correlation & Scoring Engine.

Merges the terminal task results of one job into a CorrelatedReport.
Steps run in a fixed order:

1. Partition results by section: technical intelligence from site and
   repos, buying signals from jobs and news, talking points from all.
2. Resolve overlapping facts: newest fetch wins; on a tie the source
   priority order (repos > jobs > news > site) decides. Losing values are
   kept as alternatives.
3. Score buying signals from the jobs and news data.
4. Mark any section without a successful contributor as insufficient.

Given the same task results the output is byte-identical: the reference
time is the newest fetch among the inputs and every list is sorted.
"""

import logging
from typing import Optional

from ..errors import CorrelationError
from ..models.content import FetchResult, SourceKey
from ..models.job import ResearchJob, Task, TaskKind, TaskState
from ..models.report import (
    SECTION_INSUFFICIENT,
    SECTION_OK,
    CorrelatedReport,
    ReportSection,
    ResolvedFact,
)
from .scoring import ScoringConfig, SignalScorer


logger = logging.getLogger(__name__)

TECHNICAL_SOURCES = [SourceKey.SITE.value, SourceKey.REPOS.value]
BUYING_SOURCES = [SourceKey.JOBS.value, SourceKey.NEWS.value]
TALKING_POINT_SOURCES = [s.value for s in SourceKey]

FACT_NAMES = ["headcount", "headquarters", "description", "founded_year"]

TOP_REPOSITORIES = 5
TOP_POSTINGS = 10
TOP_ARTICLES = 5


def _pairs(items) -> list[dict]:
    """(name, count) pairs; JSON round trips turn tuples into lists."""
    return [{"name": name, "count": count} for name, count in (items or [])]


class CorrelationEngine:
    """Stateless; safe to share across jobs."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()
        self.scorer = SignalScorer(self.config)

    def correlate(self, job: ResearchJob, tasks: Optional[list[Task]] = None) -> CorrelatedReport:
        """
        Build the report for a job.

        Args:
            job: Job snapshot with its DAG
            tasks: Task states to correlate; defaults to the job's own

        Raises:
            CorrelationError: If no FETCH task succeeded
        """
        tasks = sorted(tasks if tasks is not None else job.tasks, key=lambda t: t.seq)
        fetches = [t for t in tasks if t.kind.is_fetch]

        results: dict[str, FetchResult] = {
            t.source: t.result for t in fetches if t.state == TaskState.SUCCEEDED and t.result is not None
        }
        if not results:
            raise CorrelationError(f"no source produced data for {job.company.name}")

        failed = {
            t.source: t.last_error or t.state.value
            for t in fetches if t.source not in results
        }
        summaries = {
            t.source: t.summary
            for t in tasks
            if t.kind == TaskKind.AI_SUMMARIZE and t.state == TaskState.SUCCEEDED and t.summary
        }
        reference = max(r.fetched_at for r in results.values())

        facts = self.resolve_facts(results)
        technical = self._technical_section(results, summaries)
        buying, indicators, score = self._buying_section(results, summaries, reference)
        talking = self._talking_points(results, facts, indicators, summaries)

        report = CorrelatedReport(
            job_id=job.job_id,
            company=job.company.name,
            technical_intelligence=technical,
            buying_signals=buying,
            talking_points=talking,
            buying_signal_score=score,
            score_scale=self.config.scale,
            score_breakdown=indicators,
            resolved_facts=facts,
            contributing_sources=sorted(results),
            failed_sources=dict(sorted(failed.items())),
            generated_at=reference,
        )
        logger.info(
            f"Correlated {job.job_id}: {len(results)} sources, {len(failed)} failed, score={score}"
        )
        return report

    # ------------------------------------------------------------------
    # Conflict resolution
    # ------------------------------------------------------------------

    def resolve_facts(self, results: dict[str, FetchResult]) -> list[ResolvedFact]:
        resolved = []
        for name in FACT_NAMES:
            candidates = []
            for source, result in results.items():
                value = (result.payload.get("facts") or {}).get(name)
                if value is None or value == "":
                    continue
                candidates.append((source, value, result.fetched_at))
            if not candidates:
                continue

            # Newest first, then the documented source priority
            candidates.sort(key=lambda c: (-c[2].timestamp(), self.config.priority_rank(c[0])))
            source, value, fetched_at = candidates[0]
            resolved.append(ResolvedFact(
                name=name,
                value=value,
                source=source,
                fetched_at=fetched_at,
                alternatives=[
                    {"source": s, "value": v, "fetched_at": f.isoformat()}
                    for s, v, f in candidates[1:]
                ],
            ))
        return resolved

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def _insufficient(name: str) -> ReportSection:
        return ReportSection(name=name, status=SECTION_INSUFFICIENT)

    def _technical_section(self, results: dict, summaries: dict) -> ReportSection:
        contributors = [s for s in TECHNICAL_SOURCES if s in results]
        if not contributors:
            return self._insufficient("technical_intelligence")

        content = {}
        site = results.get(SourceKey.SITE.value)
        if site is not None:
            content["site_title"] = site.payload.get("title", "")
            content["technologies"] = sorted(site.payload.get("technologies") or [])

        repos = results.get(SourceKey.REPOS.value)
        if repos is not None:
            repositories = repos.payload.get("repositories") or []
            content["organization"] = repos.payload.get("organization")
            content["repository_count"] = len(repositories)
            content["languages"] = _pairs(repos.payload.get("languages"))
            content["topics"] = _pairs(repos.payload.get("topics"))
            content["top_repositories"] = [
                {"name": r.get("name"), "stars": r.get("stars", 0), "language": r.get("language")}
                for r in sorted(repositories, key=lambda r: (-(r.get("stars") or 0), r.get("name") or ""))[:TOP_REPOSITORIES]
            ]

        content["summaries"] = {s: summaries[s] for s in sorted(summaries) if s in contributors}
        return ReportSection(
            name="technical_intelligence",
            status=SECTION_OK,
            contributing_sources=sorted(contributors),
            content=content,
        )

    def _buying_section(self, results: dict, summaries: dict, reference):
        contributors = [s for s in BUYING_SOURCES if s in results]
        if not contributors:
            return self._insufficient("buying_signals"), [], None

        jobs = results.get(SourceKey.JOBS.value)
        news = results.get(SourceKey.NEWS.value)
        postings = sorted(
            (jobs.payload.get("postings") or []) if jobs else [],
            key=lambda p: (p.get("posted_at") or "", p.get("title") or ""),
            reverse=True,
        )
        articles = sorted(
            (news.payload.get("articles") or []) if news else [],
            key=lambda a: (a.get("published_at") or "", a.get("title") or ""),
            reverse=True,
        )

        indicators = self.scorer.indicators(postings, articles, reference)
        score = self.scorer.score(indicators)

        departments: dict[str, int] = {}
        for posting in postings:
            department = posting.get("department") or "Other"
            departments[department] = departments.get(department, 0) + 1

        content = {
            "open_roles": len(postings),
            "departments": [
                {"name": name, "count": count}
                for name, count in sorted(departments.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
            "recent_postings": [
                {"title": p.get("title"), "department": p.get("department"), "posted_at": p.get("posted_at")}
                for p in postings[:TOP_POSTINGS]
            ],
            "headlines": [
                {"title": a.get("title"), "published_at": a.get("published_at"), "link": a.get("link")}
                for a in articles[:TOP_ARTICLES]
            ],
            "summaries": {s: summaries[s] for s in sorted(summaries) if s in contributors},
        }
        if jobs is not None:
            content["job_board"] = jobs.payload.get("board")

        section = ReportSection(
            name="buying_signals",
            status=SECTION_OK,
            contributing_sources=sorted(contributors),
            content=content,
        )
        return section, indicators, score

    def _talking_points(self, results: dict, facts: list[ResolvedFact], indicators, summaries: dict) -> ReportSection:
        contributors = [s for s in TALKING_POINT_SOURCES if s in results]
        if not contributors:
            return self._insufficient("talking_points")

        points = []
        by_name = {f.name: f for f in facts}
        if "description" in by_name:
            points.append(f"About: {by_name['description'].value}")
        if "headcount" in by_name:
            points.append(f"Team size: about {by_name['headcount'].value} people")

        site = results.get(SourceKey.SITE.value)
        if site is not None and site.payload.get("technologies"):
            points.append("Website runs on " + ", ".join(sorted(site.payload["technologies"])))

        repos = results.get(SourceKey.REPOS.value)
        if repos is not None:
            languages = _pairs(repos.payload.get("languages"))[:3]
            if languages:
                points.append("Open-source work is mostly in " + ", ".join(lang["name"] for lang in languages))

        indicator_map = {i.name: i for i in indicators}
        hiring = indicator_map.get("hiring_velocity")
        if hiring is not None and hiring.raw_count:
            points.append(
                f"{int(hiring.raw_count)} roles posted in the last {self.config.hiring_window_days} days"
            )
        funding = indicator_map.get("leadership_funding")
        if funding is not None and funding.evidence:
            points.append(f"In the news: {funding.evidence[0]}")
        debt = indicator_map.get("technical_debt")
        if debt is not None and debt.raw_count:
            points.append("Postings and coverage mention modernization or legacy systems")

        return ReportSection(
            name="talking_points",
            status=SECTION_OK,
            contributing_sources=sorted(contributors),
            content={
                "points": points,
                "facts": {f.name: f.value for f in facts},
                "summaries": {s: summaries[s] for s in sorted(summaries)},
            },
        )
