"""Job board connector for Greenhouse and Lever public boards."""

import html
import re
from datetime import datetime, timezone
from typing import Optional
import logging

import httpx

from .base import BaseConnector
from ..errors import PermanentSourceError
from ..models.content import CompanyTarget, SourceConfig, SourceKey


logger = logging.getLogger(__name__)

GREENHOUSE_API = "https://boards-api.greenhouse.io/v1/boards/{slug}/jobs?content=true"
LEVER_API = "https://api.lever.co/v0/postings/{slug}?mode=json"

TAG_RE = re.compile(r"<[^>]+>")


def _plain(text: Optional[str], limit: int = 1500) -> str:
    if not text:
        return ""
    return " ".join(TAG_RE.sub(" ", html.unescape(text)).split())[:limit]


def parse_greenhouse(data: dict) -> list[dict]:
    postings = []
    for job in data.get("jobs", []):
        departments = job.get("departments") or []
        location = job.get("location") or {}
        postings.append({
            "title": job.get("title", ""),
            "department": departments[0].get("name") if departments else None,
            "location": location.get("name") if isinstance(location, dict) else str(location),
            "posted_at": job.get("first_published") or job.get("updated_at"),
            "url": job.get("absolute_url"),
            "description": _plain(job.get("content")),
        })
    return postings


def parse_lever(data: list) -> list[dict]:
    postings = []
    for job in data:
        categories = job.get("categories") or {}
        created = job.get("createdAt")
        posted_at = (
            datetime.fromtimestamp(created / 1000, tz=timezone.utc).isoformat()
            if isinstance(created, (int, float)) else None
        )
        postings.append({
            "title": job.get("text", ""),
            "department": categories.get("team"),
            "location": categories.get("location"),
            "posted_at": posted_at,
            "url": job.get("hostedUrl"),
            "description": _plain(job.get("descriptionPlain") or job.get("description")),
        })
    return postings


class JobBoardConnector(BaseConnector):
    """
    Connector for public applicant-tracking boards.
    Tries each configured board host with the company slug; a 404 moves on
    to the next host, other errors are classified and raised.
    """

    source_key = SourceKey.JOBS

    BOARDS = {
        "greenhouse": (GREENHOUSE_API, parse_greenhouse),
        "lever": (LEVER_API, parse_lever),
    }

    async def collect(self, client: httpx.AsyncClient, company: CompanyTarget, config: SourceConfig) -> dict:
        if not company.slug:
            raise PermanentSourceError("company name has no usable slug", self.source_name)

        for board in config.options.get("boards", list(self.BOARDS)):
            if board not in self.BOARDS:
                logger.warning(f"Unknown job board in config: {board}")
                continue
            template, parser = self.BOARDS[board]
            response = await client.get(template.format(slug=company.slug))
            if response.status_code == 404:
                logger.debug(f"No {board} board for {company.slug}")
                continue
            response.raise_for_status()

            postings = parser(response.json())
            postings.sort(key=lambda p: (p.get("posted_at") or "", p.get("title") or ""), reverse=True)
            logger.info(f"Found {len(postings)} postings for {company.name} on {board}")
            return {
                "board": board,
                "postings": postings,
                "facts": {},
            }

        raise PermanentSourceError(f"no public job board found for '{company.slug}'", self.source_name)
