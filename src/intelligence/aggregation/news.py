"""News connector reading RSS/Atom search feeds."""

import re
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import quote_plus
import logging

import feedparser
import httpx

from .base import BaseConnector
from ..errors import PermanentSourceError
from ..models.content import CompanyTarget, SourceConfig, SourceKey


logger = logging.getLogger(__name__)

DEFAULT_FEED_TEMPLATE = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"
TAG_RE = re.compile(r"<[^>]+>")
HEADCOUNT_RE = re.compile(r"(\d{1,3}(?:,\d{3})*|\d+)\s+employees\b", re.IGNORECASE)


def _parse_date(entry) -> Optional[str]:
    for field in ("published", "updated"):
        value = entry.get(field)
        if not value:
            continue
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc).isoformat()
    return None


def parse_feed(text: str, company_name: str, max_articles: int = 30) -> dict:
    """Parse feed XML into articles that mention the company."""
    feed = feedparser.parse(text)
    if feed.bozo and not feed.entries:
        raise PermanentSourceError(f"unreadable feed: {feed.bozo_exception}", SourceKey.NEWS.value)

    needle = company_name.lower()
    articles = []
    for entry in feed.entries:
        title = " ".join(entry.get("title", "").split())
        summary = " ".join(TAG_RE.sub(" ", entry.get("summary", "")).split())
        if needle not in f"{title} {summary}".lower():
            continue
        articles.append({
            "title": title,
            "summary": summary[:500],
            "link": entry.get("link"),
            "published_at": _parse_date(entry),
        })

    articles.sort(key=lambda a: (a["published_at"] or "", a["title"]), reverse=True)
    articles = articles[:max_articles]

    facts = {}
    for article in articles:
        match = HEADCOUNT_RE.search(f"{article['title']} {article['summary']}")
        if match:
            facts["headcount"] = int(match.group(1).replace(",", ""))
            break

    return {"articles": articles, "facts": facts}


class NewsConnector(BaseConnector):
    """
    Connector for news search feeds.
    Uses feedparser library (free, no API key).
    """

    source_key = SourceKey.NEWS

    async def collect(self, client: httpx.AsyncClient, company: CompanyTarget, config: SourceConfig) -> dict:
        template = config.options.get("feed_template", DEFAULT_FEED_TEMPLATE)
        query = quote_plus(f'"{company.name}"')
        url = template.format(query=query)

        response = await client.get(url)
        response.raise_for_status()

        payload = parse_feed(
            response.text,
            company.name,
            max_articles=config.options.get("max_articles", 30),
        )
        payload["feed_url"] = url
        logger.info(f"Found {len(payload['articles'])} articles for {company.name}")
        return payload
