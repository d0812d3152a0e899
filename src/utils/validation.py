"""
Input Validation Utilities for ProspectOS.

Validates research requests before anything is scheduled. Every failure
raises InvalidRequest so bad input never enters a task graph.
"""

import re
import logging
from typing import Iterable, Optional, List

from src.intelligence.errors import InvalidRequest
from src.intelligence.models.content import SourceKey

logger = logging.getLogger(__name__)


MAX_COMPANY_NAME_LENGTH = 200
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
JOB_ID_PATTERN = re.compile(r'^job-[a-f0-9]{12}$')


def validate_email(email: str) -> bool:
    """Shape check only; deliverability is not verified."""
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def validate_company_name(name: Optional[str]) -> str:
    """
    Validate a company name.

    Returns:
        The name with whitespace collapsed

    Raises:
        InvalidRequest: If the name is empty, too long or has no letters/digits
    """
    cleaned = " ".join(str(name or "").split())
    if not cleaned:
        raise InvalidRequest("Company name cannot be empty")
    if len(cleaned) > MAX_COMPANY_NAME_LENGTH:
        raise InvalidRequest(f"Company name longer than {MAX_COMPANY_NAME_LENGTH} characters")
    if not any(ch.isalnum() for ch in cleaned):
        raise InvalidRequest(f"Company name has no usable characters: {name!r}")
    return cleaned


def validate_contact_email(email: Optional[str]) -> str:
    """Validate the contact email. Returns it lowercased."""
    if not email or not validate_email(email):
        logger.warning(f"Rejected contact email: {email!r}")
        raise InvalidRequest(f"Invalid contact email: {email!r}")
    return email.strip().lower()


def validate_sources(sources: Optional[Iterable[str]]) -> List[SourceKey]:
    """
    Validate a requested source set.

    None means every known source. Duplicates collapse and the result follows
    SourceKey declaration order.

    Raises:
        InvalidRequest: If the set is empty or names an unknown source
    """
    if sources is None:
        return list(SourceKey)

    requested = set()
    for source in sources:
        value = source.value if isinstance(source, SourceKey) else str(source).strip().lower()
        try:
            requested.add(SourceKey(value))
        except ValueError:
            known = ", ".join(s.value for s in SourceKey)
            raise InvalidRequest(f"Unknown source key: {source!r} (known: {known})") from None

    if not requested:
        raise InvalidRequest("Requested source set is empty")

    return [s for s in SourceKey if s in requested]


def validate_job_id(job_id: str) -> str:
    """
    Validate a job ID format.

    Job IDs should match: job-XXXXXXXXXXXX (12 hex chars)
    """
    if not job_id:
        raise InvalidRequest("Job ID cannot be empty")

    if not JOB_ID_PATTERN.match(job_id):
        raise InvalidRequest(f"Invalid job ID format: {job_id}")

    return job_id
