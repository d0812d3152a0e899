"""
Content models for the research engine.
Company targets, source configuration and raw fetch results from any source.
"""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


FREE_MAIL_DOMAINS = {
    "gmail.com", "googlemail.com", "yahoo.com", "hotmail.com", "outlook.com",
    "live.com", "icloud.com", "me.com", "aol.com", "proton.me", "protonmail.com",
    "gmx.com", "mail.com", "yandex.com", "zoho.com",
}

_LEGAL_SUFFIXES = (" inc", " inc.", " llc", " ltd", " ltd.", " gmbh", " corp", " corp.", " co.", " plc")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_json(data: Any) -> str:
    """Stable JSON encoding used for hashing and byte-identical output."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_content_hash(payload: Any) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


class SourceKey(str, Enum):
    """The fixed set of data sources. Declaration order is the default request order."""
    SITE = "site"
    JOBS = "jobs"
    REPOS = "repos"
    NEWS = "news"


class SourceConfig(BaseModel):
    """Rate, cache and adapter settings for one source."""

    source: str = Field(..., description="site, jobs, repos, news or ai")

    # Token bucket
    capacity: float = Field(default=5.0, gt=0)
    refill_per_second: float = Field(default=1.0, gt=0)

    # Cache / adapter
    ttl_seconds: float = Field(default=3600.0, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    # Lightweight (1) vs heavyweight (>1) scraping footprint
    weight: int = Field(default=1, ge=1)

    # Adapter-specific options (feed URLs, board hosts, ...)
    options: dict = Field(default_factory=dict)


class CompanyTarget(BaseModel):
    """
    The company under research.
    Domain comes from the contact email unless it is a free-mail provider.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    domain: Optional[str] = None

    @classmethod
    def from_contact(cls, name: str, email: str) -> "CompanyTarget":
        name = " ".join(name.split())
        email = email.strip().lower()
        domain = email.rsplit("@", 1)[-1] if "@" in email else None
        if domain in FREE_MAIL_DOMAINS:
            domain = None
        return cls(name=name, email=email, domain=domain)

    @property
    def normalized_name(self) -> str:
        name = self.name.lower().strip()
        for suffix in _LEGAL_SUFFIXES:
            if name.endswith(suffix):
                name = name[: -len(suffix)].rstrip(" ,")
        return name

    @property
    def slug(self) -> str:
        """Lowercase alphanumeric handle used by job boards and repo hosts."""
        return "".join(ch for ch in self.normalized_name if ch.isalnum())

    @property
    def fingerprint(self) -> str:
        key = f"{self.normalized_name}|{self.domain or ''}"
        return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


class FetchResult(BaseModel):
    """
    Raw output of one adapter call. Immutable; shared by the cache
    and by the task that requested it.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    company_fingerprint: str
    payload: dict = Field(default_factory=dict)
    fetched_at: datetime
    content_hash: str

    @classmethod
    def create(
        cls,
        source: str,
        company_fingerprint: str,
        payload: dict,
        fetched_at: Optional[datetime] = None,
    ) -> "FetchResult":
        return cls(
            source=source,
            company_fingerprint=company_fingerprint,
            payload=payload,
            fetched_at=fetched_at or utcnow(),
            content_hash=compute_content_hash(payload),
        )


class CacheEntry(BaseModel):
    """One cached FetchResult, keyed by (source, company fingerprint)."""

    model_config = ConfigDict(frozen=True)

    result: FetchResult
    expires_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.result.source, self.result.company_fingerprint)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def to_record(self) -> dict:
        """Cache record layout used by persistent backends."""
        return {
            "source": self.result.source,
            "company_fingerprint": self.result.company_fingerprint,
            "content_hash": self.result.content_hash,
            "payload": self.result.payload,
            "fetched_at": self.result.fetched_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_record(cls, record: dict) -> "CacheEntry":
        result = FetchResult(
            source=record["source"],
            company_fingerprint=record["company_fingerprint"],
            payload=record.get("payload") or {},
            fetched_at=datetime.fromisoformat(record["fetched_at"]),
            content_hash=record["content_hash"],
        )
        expires_at = record.get("expires_at")
        return cls(
            result=result,
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )
