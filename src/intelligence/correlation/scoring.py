"""
Buying-signal scoring.

Each indicator is a raw count normalized against its saturation point and
clamped to [0, 1]. The score is the weighted sum on a 0..scale range,
clamped and rounded to one decimal. Weights and keyword lists come from
configuration so they can be tuned and tested on their own.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.settings import (
    HIRING_WINDOW_DAYS,
    LEADERSHIP_FUNDING_KEYWORDS,
    SCORING_SATURATION,
    SCORING_WEIGHTS,
    SOURCE_PRIORITY,
    TECH_DEBT_KEYWORDS,
    URGENT_KEYWORDS,
)
from ..models.report import SignalIndicator


INDICATORS = ["hiring_velocity", "urgent_keyword_density", "leadership_funding", "technical_debt"]

MAX_EVIDENCE = 5


@dataclass(frozen=True)
class ScoringConfig:
    """Tunable inputs of the correlation engine."""

    weights: dict = field(default_factory=lambda: dict(SCORING_WEIGHTS))
    saturation: dict = field(default_factory=lambda: dict(SCORING_SATURATION))
    urgent_keywords: tuple = tuple(URGENT_KEYWORDS)
    leadership_keywords: tuple = tuple(LEADERSHIP_FUNDING_KEYWORDS)
    tech_debt_keywords: tuple = tuple(TECH_DEBT_KEYWORDS)
    hiring_window_days: int = HIRING_WINDOW_DAYS
    scale: float = 100.0
    source_priority: tuple = tuple(SOURCE_PRIORITY)

    def __post_init__(self):
        for name in INDICATORS:
            if name not in self.weights:
                raise ValueError(f"Missing weight for indicator '{name}'")
            if self.weights[name] < 0:
                raise ValueError(f"Weight for '{name}' must be non-negative")
            if self.saturation.get(name, 0) <= 0:
                raise ValueError(f"Saturation for '{name}' must be positive")
        if self.scale <= 0:
            raise ValueError("Score scale must be positive")

    @classmethod
    def from_settings(cls, settings=None) -> "ScoringConfig":
        if settings is None:
            return cls()
        return cls(scale=float(settings.score_scale))

    def priority_rank(self, source: str) -> int:
        try:
            return self.source_priority.index(source)
        except ValueError:
            return len(self.source_priority)


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string or datetime to an aware UTC datetime; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _keyword_patterns(keywords) -> list[re.Pattern]:
    return [re.compile(r"\b" + re.escape(kw.lower()) + r"\b") for kw in keywords]


def count_hits(text: str, patterns: list[re.Pattern]) -> int:
    lowered = text.lower()
    return sum(len(p.findall(lowered)) for p in patterns)


def posting_text(posting: dict) -> str:
    return f"{posting.get('title') or ''} {posting.get('description') or ''}"


def article_text(article: dict) -> str:
    return f"{article.get('title') or ''} {article.get('summary') or ''}"


class SignalScorer:
    """Turns job postings and news articles into weighted indicators."""

    def __init__(self, config: ScoringConfig):
        self.config = config
        self._urgent = _keyword_patterns(config.urgent_keywords)
        self._leadership = _keyword_patterns(config.leadership_keywords)
        self._tech_debt = _keyword_patterns(config.tech_debt_keywords)

    def _indicator(self, name: str, raw: float, evidence: list[str]) -> SignalIndicator:
        normalized = min(max(raw / self.config.saturation[name], 0.0), 1.0)
        return SignalIndicator(
            name=name,
            raw_count=round(raw, 4),
            normalized=round(normalized, 4),
            weight=self.config.weights[name],
            evidence=sorted(set(evidence))[:MAX_EVIDENCE],
        )

    def indicators(self, postings: list[dict], articles: list[dict], reference: datetime) -> list[SignalIndicator]:
        window_start = reference - timedelta(days=self.config.hiring_window_days)

        recent = []
        for posting in postings:
            posted_at = parse_timestamp(posting.get("posted_at"))
            if posted_at is not None and window_start <= posted_at <= reference:
                recent.append(posting.get("title") or "")

        documents = [posting_text(p) for p in postings] + [article_text(a) for a in articles]
        urgent_hits = 0
        urgent_evidence = []
        debt_hits = 0
        debt_evidence = []
        for text in documents:
            hits = count_hits(text, self._urgent)
            if hits:
                urgent_hits += hits
                urgent_evidence.append(text[:120].strip())
            hits = count_hits(text, self._tech_debt)
            if hits:
                debt_hits += hits
                debt_evidence.append(text[:120].strip())
        density = urgent_hits / len(documents) if documents else 0.0

        leadership = [a.get("title") or "" for a in articles if count_hits(article_text(a), self._leadership)]

        return [
            self._indicator("hiring_velocity", len(recent), recent),
            self._indicator("urgent_keyword_density", density, urgent_evidence),
            self._indicator("leadership_funding", len(leadership), leadership),
            self._indicator("technical_debt", debt_hits, debt_evidence),
        ]

    def score(self, indicators: list[SignalIndicator]) -> float:
        total = sum(i.normalized * i.weight for i in indicators) * self.config.scale
        return round(min(max(total, 0.0), self.config.scale), 1)
