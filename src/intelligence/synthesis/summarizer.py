"""AI summarization of raw source results using Gemini."""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Optional
import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import PermanentSourceError, RetryableSourceError
from ..models.content import FetchResult, canonical_json


logger = logging.getLogger(__name__)


class Summarizer(ABC):
    """
    Text-completion contract used by AI_SUMMARIZE tasks.
    Raises RetryableSourceError / PermanentSourceError like a source adapter.
    """

    @abstractmethod
    async def summarize(self, results: list[FetchResult], prompt: str) -> str:
        pass


SOURCE_PROMPTS = {
    "site": """You are a B2B research analyst. Summarize what "{company}" does based on its website content below.

Write 3-5 sentences covering:
- The product or service and who it is for
- Technologies or platforms visible on the site
- Anything that hints at company size or stage

Be factual. Do not invent details that are not in the data.""",

    "jobs": """You are a B2B research analyst. Summarize the hiring activity of "{company}" from the job postings below.

Write 3-5 sentences covering:
- Which teams are hiring and how many roles
- Technologies and skills that appear repeatedly
- Signs of urgency, new initiatives or migrations

Be factual. Do not invent details that are not in the data.""",

    "repos": """You are a B2B research analyst. Summarize the open-source footprint of "{company}" from the repository data below.

Write 3-5 sentences covering:
- Main languages and project types
- How active development looks
- What the repositories suggest about their engineering stack

Be factual. Do not invent details that are not in the data.""",

    "news": """You are a B2B research analyst. Summarize recent news about "{company}" from the articles below.

Write 3-5 sentences covering:
- Funding, leadership changes, launches or partnerships
- Anything that suggests new budget or priorities

Be factual. Do not invent details that are not in the data.""",
}


def build_prompt(source: str, company_name: str) -> str:
    template = SOURCE_PROMPTS.get(source, SOURCE_PROMPTS["site"])
    return template.format(company=company_name)


class GeminiSummarizer(Summarizer):
    """
    Summarizer backed by the Gemini API (google-genai async client).
    """

    MAX_INPUT_CHARS = 12000

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        api_key: Optional[str] = None,
        temperature: float = 0.2,
    ):
        self.model = model
        self.temperature = temperature
        self._api_key = api_key
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        """Lazy load the Gemini client."""
        if self._client is None:
            api_key = self._api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise PermanentSourceError("GOOGLE_API_KEY or GEMINI_API_KEY not set", "ai")
            self._client = genai.Client(api_key=api_key)
        return self._client

    async def summarize(self, results: list[FetchResult], prompt: str) -> str:
        data = "\n\n".join(
            f"[{r.source}] fetched {r.fetched_at.isoformat()}\n{canonical_json(r.payload)}"
            for r in results
        )[: self.MAX_INPUT_CHARS]

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=f"{prompt}\n\nDATA:\n{data}",
                config=types.GenerateContentConfig(temperature=self.temperature),
            )
        except asyncio.CancelledError:
            raise
        except genai_errors.APIError as e:
            if e.code == 429 or (e.code or 0) >= 500:
                raise RetryableSourceError(f"Gemini {e.code}: {e.message}", "ai") from e
            raise PermanentSourceError(f"Gemini {e.code}: {e.message}", "ai") from e

        text = (response.text or "").strip()
        if not text:
            raise RetryableSourceError("empty completion", "ai")
        return text
