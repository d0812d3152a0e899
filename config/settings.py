"""
Configuration settings for ProspectOS
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="PROSPECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Google Gemini (summarization); read without the prefix as well
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    summary_model: str = "gemini-2.0-flash"
    include_summaries: bool = True

    # Storage
    database_path: str = "prospect_jobs.db"
    cache_backend: str = "memory"  # memory, file
    cache_dir: str = "cache/results"
    cache_max_entries: int = 1000

    # Concurrency
    global_fetch_limit: int = Field(default=8, ge=1)
    workers_per_job: int = Field(default=4, ge=1)
    max_active_jobs: int = Field(default=4, ge=1)

    # Retry policy
    max_attempts: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=30.0, ge=0)
    backoff_jitter: bool = True

    # Scoring
    score_scale: float = Field(default=100.0, gt=0)

    # Output
    log_dir: str = "logs"
    log_level: str = "INFO"


# Per-source limits. Job boards refill slower than the company's own site;
# job boards and repo listings are the heavyweight scrapes.
SOURCE_DEFAULTS = {
    "site": {
        "capacity": 10,
        "refill_per_second": 2.0,
        "ttl_seconds": 24 * 3600,
        "timeout_seconds": 20.0,
        "weight": 1,
        "options": {"paths": ["/", "/about"]},
    },
    "jobs": {
        "capacity": 3,
        "refill_per_second": 0.2,
        "ttl_seconds": 6 * 3600,
        "timeout_seconds": 30.0,
        "weight": 2,
        "options": {"boards": ["greenhouse", "lever"]},
    },
    "repos": {
        "capacity": 5,
        "refill_per_second": 0.5,
        "ttl_seconds": 12 * 3600,
        "timeout_seconds": 30.0,
        "weight": 2,
        "options": {"api_base": "https://api.github.com", "per_page": 100},
    },
    "news": {
        "capacity": 5,
        "refill_per_second": 1.0,
        "ttl_seconds": 2 * 3600,
        "timeout_seconds": 20.0,
        "weight": 1,
        "options": {"feed_template": "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en",
                    "max_articles": 30},
    },
}

# Limits for the summarization service
AI_LIMITS = {
    "capacity": 4,
    "refill_per_second": 0.5,
    "ttl_seconds": 0,
    "timeout_seconds": 60.0,
    "weight": 1,
}

# Conflict resolution order when fetch timestamps tie (first wins)
SOURCE_PRIORITY = ["repos", "jobs", "news", "site"]

# Buying-signal weights; they sum to 1.0 so the score spans the full scale
SCORING_WEIGHTS = {
    "hiring_velocity": 0.35,
    "urgent_keyword_density": 0.20,
    "leadership_funding": 0.25,
    "technical_debt": 0.20,
}

# Raw counts at which an indicator saturates to 1.0
SCORING_SATURATION = {
    "hiring_velocity": 10.0,         # postings in the recency window
    "urgent_keyword_density": 0.5,   # urgent hits per document
    "leadership_funding": 3.0,       # mentions
    "technical_debt": 4.0,           # mentions
}

HIRING_WINDOW_DAYS = 30

URGENT_KEYWORDS = [
    "urgent", "urgently", "immediately", "asap", "immediate start",
    "fast-paced", "rapidly growing", "hiring now", "backfill",
]

LEADERSHIP_FUNDING_KEYWORDS = [
    "raises", "raised", "funding", "series a", "series b", "series c", "seed round",
    "investment", "acquires", "acquired", "ipo", "appoints", "appointed",
    "new ceo", "new cto", "chief technology officer", "chief executive", "hires vp",
]

TECH_DEBT_KEYWORDS = [
    "legacy", "technical debt", "tech debt", "migration", "migrate", "modernize",
    "modernization", "re-architect", "rewrite", "monolith", "deprecated",
]


def get_settings() -> Settings:
    """Get application settings"""
    return Settings()
