"""
Rate-Limited Fetch Gate.

The single choke point for outbound calls. A fetch first consults the
result cache; only on a miss does it take a token from the source's bucket,
take a slot under the global ceiling and call the adapter. Concurrent misses
for the same (source, company) share one adapter call.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..errors import GateClosedError, PermanentSourceError, RetryableSourceError, SourceError
from ..models.content import CompanyTarget, FetchResult, SourceConfig
from src.utils.cache import ResultCache
from src.utils.rate_limiter import ConcurrencyCeiling, TokenBucket


logger = logging.getLogger(__name__)


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


class FetchGate:
    """
    Shared by every job in the process. Construct once, inject everywhere,
    and call `close()` on shutdown to drain held permits.
    """

    def __init__(
        self,
        cache: ResultCache,
        configs: dict[str, SourceConfig],
        global_limit: int = 8,
    ):
        self.cache = cache
        self.configs = {str(getattr(k, "value", k)): v for k, v in configs.items()}
        self.ceiling = ConcurrencyCeiling(global_limit)
        self.buckets = {
            name: TokenBucket(name, cfg.capacity, cfg.refill_per_second)
            for name, cfg in self.configs.items()
        }
        self._inflight: dict[tuple[str, str], _InFlight] = {}
        self._closed = False
        self.adapter_calls = 0
        self.cache_hits = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def config_for(self, key: str) -> SourceConfig:
        try:
            return self.configs[key]
        except KeyError:
            raise PermanentSourceError(f"no gate configuration for source '{key}'", key) from None

    @asynccontextmanager
    async def acquire(self, key: str, weight: Optional[int] = None):
        """
        Hold one permit for `key`: a bucket token plus `weight` units of the
        global ceiling. Suspends the calling task only.
        """
        if self._closed:
            raise GateClosedError("fetch gate is closed")
        config = self.config_for(key)
        await self.buckets[key].acquire()
        if self._closed:
            raise GateClosedError("fetch gate is closed")
        units = await self.ceiling.acquire(weight or config.weight)
        try:
            yield units
        finally:
            self.ceiling.release(units)

    async def fetch(self, key: str, company: CompanyTarget, adapter) -> FetchResult:
        """
        Return the live cached result or fetch it through the adapter.

        Raises:
            RetryableSourceError / PermanentSourceError: classified adapter failure
        """
        key = str(getattr(key, "value", key))
        cached = self.cache.get(key, company.fingerprint)
        if cached is not None:
            self.cache_hits += 1
            logger.debug(f"Cache hit for {key}:{company.fingerprint}")
            return cached

        return await self._coalesced(
            (key, company.fingerprint),
            lambda: self._fetch_uncached(key, company, adapter),
        )

    async def _coalesced(self, flight_key: tuple[str, str], factory: Callable[[], Awaitable[FetchResult]]) -> FetchResult:
        flight = self._inflight.get(flight_key)
        if flight is None:
            task = asyncio.ensure_future(factory())
            flight = _InFlight(task=task)
            self._inflight[flight_key] = flight
            task.add_done_callback(lambda t, k=flight_key, f=flight: self._flight_done(k, f))
        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                # Nobody is interested any more
                flight.task.cancel()

    def _flight_done(self, flight_key: tuple[str, str], flight: _InFlight) -> None:
        if self._inflight.get(flight_key) is flight:
            del self._inflight[flight_key]
        if not flight.task.cancelled():
            # Mark retrieved; waiters re-raise it themselves
            flight.task.exception()

    async def _fetch_uncached(self, key: str, company: CompanyTarget, adapter) -> FetchResult:
        # Another flight may have filled the cache between the check and now
        cached = self.cache.get(key, company.fingerprint)
        if cached is not None:
            self.cache_hits += 1
            return cached

        config = self.config_for(key)
        async with self.acquire(key):
            self.adapter_calls += 1
            try:
                result = await asyncio.wait_for(
                    adapter.fetch(company, config, config.timeout_seconds),
                    timeout=config.timeout_seconds,
                )
            except asyncio.TimeoutError:
                raise RetryableSourceError(f"timed out after {config.timeout_seconds}s", key) from None
            except SourceError:
                raise
            except (ValueError, TypeError, KeyError) as e:
                raise PermanentSourceError(f"adapter returned malformed data: {e}", key) from e

        if not isinstance(result, FetchResult):
            raise PermanentSourceError(f"adapter returned {type(result).__name__}, expected FetchResult", key)
        return self.cache.put(result, config.ttl_seconds)

    async def close(self, timeout: Optional[float] = None) -> bool:
        """Stop granting permits and wait for held ones to be released."""
        self._closed = True
        for flight in list(self._inflight.values()):
            if not flight.task.done():
                flight.task.cancel()
        drained = await self.ceiling.wait_idle(timeout)
        if not drained:
            logger.warning(f"Fetch gate closed with {self.ceiling.in_use} permits still held")
        return drained

    def get_stats(self) -> dict:
        return {
            "adapter_calls": self.adapter_calls,
            "cache_hits": self.cache_hits,
            "in_flight": len(self._inflight),
            "ceiling": self.ceiling.get_stats(),
            "buckets": {name: bucket.get_stats() for name, bucket in self.buckets.items()},
        }
