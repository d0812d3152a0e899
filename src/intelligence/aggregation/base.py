"""Base connector class for research sources."""

from abc import ABC, abstractmethod
from typing import Optional
import asyncio
import logging

import httpx

from ..errors import PermanentSourceError, RetryableSourceError, SourceError
from ..models.content import CompanyTarget, FetchResult, SourceConfig, SourceKey


logger = logging.getLogger(__name__)

USER_AGENT = "ProspectOS-Research/1.0 (+https://prospectos.dev/bot)"


def classify_http_error(exc: Exception, source: Optional[str] = None) -> SourceError:
    """
    Map an httpx failure onto the source error taxonomy.

    Timeouts, transport errors, 429 and 5xx are retryable; every other
    4xx means the target itself is wrong.
    """
    if isinstance(exc, httpx.TimeoutException):
        return RetryableSourceError(f"timeout: {exc}", source)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429 or status >= 500:
            return RetryableSourceError(f"HTTP {status} from {exc.request.url}", source)
        return PermanentSourceError(f"HTTP {status} from {exc.request.url}", source)
    if isinstance(exc, httpx.TransportError):
        return RetryableSourceError(f"network error: {exc}", source)
    return PermanentSourceError(f"{type(exc).__name__}: {exc}", source)


class BaseConnector(ABC):
    """
    Abstract base class for source adapters.

    A connector only talks to its source: no caching and no rate limiting,
    both belong to the fetch gate. `fetch` returns a FetchResult or raises
    RetryableSourceError / PermanentSourceError.
    """

    source_key: SourceKey

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self.fetch_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

    @property
    def source_name(self) -> str:
        return self.source_key.value

    @abstractmethod
    async def collect(
        self,
        client: httpx.AsyncClient,
        company: CompanyTarget,
        config: SourceConfig,
    ) -> dict:
        """
        Fetch and normalize the raw payload for one company.

        Returns:
            Source-specific payload dict
        """
        pass

    async def fetch(self, company: CompanyTarget, config: SourceConfig, timeout: float) -> FetchResult:
        """
        Run one fetch and wrap the payload. Errors are classified, never swallowed.
        """
        logger.info(f"Fetching {self.source_name} for {company.name}")
        try:
            if self._client is not None:
                payload = await self.collect(self._client, company, config)
            else:
                async with httpx.AsyncClient(
                    timeout=timeout,
                    follow_redirects=True,
                    headers={"User-Agent": USER_AGENT},
                ) as client:
                    payload = await self.collect(client, company, config)
        except SourceError as e:
            self._record_error(e)
            raise
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            error = classify_http_error(e, self.source_name)
            self._record_error(error)
            raise error from e

        self.fetch_count += 1
        return FetchResult.create(self.source_name, company.fingerprint, payload)

    def _record_error(self, error: SourceError) -> None:
        self.error_count += 1
        self.last_error = str(error)
        logger.warning(f"Error fetching from {self.source_name}: {error}")

    def get_stats(self) -> dict:
        """
        Get connector statistics.
        """
        return {
            "source": self.source_name,
            "fetch_count": self.fetch_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }
