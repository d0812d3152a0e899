"""GitHub organization connector using the public REST API."""

from collections import Counter
from typing import Optional
import logging
import os

import httpx

from .base import BaseConnector
from ..errors import PermanentSourceError
from ..models.content import CompanyTarget, SourceConfig, SourceKey


logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"


def summarize_repositories(repos: list[dict]) -> dict:
    """Reduce the raw repo listing to the fields the report needs."""
    repositories = []
    languages = Counter()
    topics = Counter()

    for repo in repos:
        if repo.get("fork") or repo.get("archived"):
            continue
        language = repo.get("language")
        if language:
            languages[language] += 1
        for topic in repo.get("topics") or []:
            topics[topic] += 1
        repositories.append({
            "name": repo.get("name", ""),
            "language": language,
            "stars": repo.get("stargazers_count", 0),
            "pushed_at": repo.get("pushed_at"),
            "description": repo.get("description") or "",
        })

    repositories.sort(key=lambda r: (-r["stars"], r["name"]))
    return {
        "repositories": repositories,
        # (name, count) pairs, most used first, ties by name
        "languages": sorted(languages.items(), key=lambda kv: (-kv[1], kv[0])),
        "topics": sorted(topics.items(), key=lambda kv: (-kv[1], kv[0]))[:20],
    }


class CodeRepoConnector(BaseConnector):
    """
    Connector for a company's GitHub organization.
    Free; GITHUB_TOKEN raises the anonymous rate limit when set.
    """

    source_key = SourceKey.REPOS

    def __init__(self, client: Optional[httpx.AsyncClient] = None, token: Optional[str] = None):
        super().__init__(client)
        self.token = token or os.getenv("GITHUB_TOKEN")

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def collect(self, client: httpx.AsyncClient, company: CompanyTarget, config: SourceConfig) -> dict:
        if not company.slug:
            raise PermanentSourceError("company name has no usable slug", self.source_name)

        api_base = config.options.get("api_base", GITHUB_API_BASE)
        org = config.options.get("org") or company.slug

        org_response = await client.get(f"{api_base}/orgs/{org}", headers=self._headers())
        if org_response.status_code == 404:
            raise PermanentSourceError(f"no GitHub organization '{org}'", self.source_name)
        org_response.raise_for_status()
        org_data = org_response.json()

        repos_response = await client.get(
            f"{api_base}/orgs/{org}/repos",
            params={"per_page": config.options.get("per_page", 100), "sort": "pushed"},
            headers=self._headers(),
        )
        repos_response.raise_for_status()

        payload = summarize_repositories(repos_response.json())
        payload["organization"] = org_data.get("login", org)

        facts = {}
        if org_data.get("description"):
            facts["description"] = org_data["description"]
        if org_data.get("location"):
            facts["headquarters"] = org_data["location"]
        payload["facts"] = facts

        logger.info(f"Found {len(payload['repositories'])} repositories for {org}")
        return payload
