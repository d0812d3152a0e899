"""Company website connector."""

import re
import logging
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from .base import BaseConnector
from ..errors import PermanentSourceError
from ..models.content import CompanyTarget, SourceConfig, SourceKey


logger = logging.getLogger(__name__)

HEADCOUNT_RE = re.compile(r"(\d{1,3}(?:,\d{3})*|\d+)\+?\s+(?:employees|team members|people)\b", re.IGNORECASE)
HEADQUARTERS_RE = re.compile(r"headquartered in ([A-Z][\w .'-]+?(?:, [A-Z][\w .'-]+)?)[.;\n]")
FOUNDED_RE = re.compile(r"\bfounded in (\d{4})\b", re.IGNORECASE)

# Meta tags that carry a page description, in order of preference
DESCRIPTION_META = [{"name": "description"}, {"property": "og:description"}, {"name": "twitter:description"}]

# Markers found in page source -> technology name
TECH_SIGNATURES = {
    "wp-content": "WordPress",
    "__next_data__": "Next.js",
    "data-reactroot": "React",
    "react-dom": "React",
    "ng-version": "Angular",
    "data-v-app": "Vue",
    "cdn.shopify.com": "Shopify",
    "static.hubspot": "HubSpot",
    "js.hs-scripts.com": "HubSpot",
    "googletagmanager.com": "Google Tag Manager",
    "cdn.segment.com": "Segment",
    "js.stripe.com": "Stripe",
    "intercomcdn": "Intercom",
    "webflow": "Webflow",
    "cloudflare": "Cloudflare",
    "gatsby": "Gatsby",
}


def _clean(text: str) -> str:
    return " ".join(text.split())


def _description(soup: BeautifulSoup) -> str:
    for attrs in DESCRIPTION_META:
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return _clean(tag["content"])
    return ""


def parse_homepage(markup: str) -> dict:
    """Extract description, technologies and company facts from raw HTML."""
    lowered = markup.lower()
    technologies = sorted({name for marker, name in TECH_SIGNATURES.items() if marker in lowered})

    soup = BeautifulSoup(markup, "html.parser")
    title = _clean(soup.title.get_text()) if soup.title else ""
    description = _description(soup)

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    body = soup.body or soup
    text = _clean(body.get_text(" "))

    facts = {}
    headcount = _parse_headcount(text)
    if headcount is not None:
        facts["headcount"] = headcount
    hq_match = HEADQUARTERS_RE.search(text + ".")
    if hq_match:
        facts["headquarters"] = hq_match.group(1).strip()
    founded_match = FOUNDED_RE.search(text)
    if founded_match:
        facts["founded_year"] = int(founded_match.group(1))
    if description:
        facts["description"] = description

    return {
        "title": title,
        "technologies": technologies,
        "facts": facts,
        "text_excerpt": text[:2000],
    }


def _parse_headcount(text: str) -> Optional[int]:
    match = HEADCOUNT_RE.search(text)
    if not match:
        return None
    return int(match.group(1).replace(",", ""))


class CompanySiteConnector(BaseConnector):
    """
    Connector for the company's own website.
    Lightweight scrape of a few pages; no JavaScript rendering.
    """

    source_key = SourceKey.SITE

    async def collect(self, client: httpx.AsyncClient, company: CompanyTarget, config: SourceConfig) -> dict:
        if not company.domain:
            raise PermanentSourceError("no company domain (contact uses a free-mail provider)", self.source_name)

        paths = config.options.get("paths", ["/"])
        pages = []
        merged = {"title": "", "technologies": set(), "facts": {}, "text_excerpt": ""}

        for path in paths:
            url = f"https://{company.domain}{path}"
            response = await client.get(url)
            if response.status_code == 404 and path != "/":
                logger.debug(f"Skipping missing page {url}")
                continue
            response.raise_for_status()

            parsed = parse_homepage(response.text)
            pages.append(url)
            merged["title"] = merged["title"] or parsed["title"]
            merged["technologies"].update(parsed["technologies"])
            for name, value in parsed["facts"].items():
                merged["facts"].setdefault(name, value)
            if not merged["text_excerpt"]:
                merged["text_excerpt"] = parsed["text_excerpt"]

        merged["technologies"] = sorted(merged["technologies"])
        merged["pages"] = pages
        merged["domain"] = company.domain
        return merged
