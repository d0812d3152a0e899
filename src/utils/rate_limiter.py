"""
Rate Limiting Module for ProspectOS.

Token buckets per source plus a global concurrency ceiling, both shared by
every running job. Waiters suspend cooperatively; nothing here blocks the
event loop.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class BucketState:
    """Current state of a token bucket."""
    tokens: float = 0.0
    last_update: float = 0.0
    acquired_count: int = 0
    throttle_count: int = 0


class TokenBucket:
    """
    Token bucket rate limiter.

    Waiters are served in arrival order: the lock is held while the head
    waiter sleeps for its token, so tokens are never double-counted.
    """

    def __init__(
        self,
        name: str,
        capacity: float,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0 or refill_per_second <= 0:
            raise ValueError("capacity and refill_per_second must be positive")
        self.name = name
        self.capacity = float(capacity)
        self.refill_per_second = float(refill_per_second)
        self._clock = clock
        self.state = BucketState(tokens=self.capacity, last_update=clock())
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - self.state.last_update)
        self.state.last_update = now
        self.state.tokens = min(self.capacity, self.state.tokens + elapsed * self.refill_per_second)

    def _time_to_next_token(self) -> float:
        deficit = 1.0 - self.state.tokens
        if deficit <= 0:
            return 0.0
        return deficit / self.refill_per_second

    def try_acquire(self) -> bool:
        """Take a token without waiting. Returns False when the bucket is empty."""
        if self._lock.locked():
            return False
        self._refill()
        if self.state.tokens >= 1.0:
            self.state.tokens -= 1.0
            self.state.acquired_count += 1
            return True
        self.state.throttle_count += 1
        return False

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            self._refill()
            if self.state.tokens < 1.0:
                self.state.throttle_count += 1
                wait = self._time_to_next_token()
                logger.debug(f"Bucket {self.name} empty, waiting {wait:.2f}s")
                while self.state.tokens < 1.0:
                    await asyncio.sleep(max(wait, 0.001))
                    self._refill()
                    wait = self._time_to_next_token()
            self.state.tokens -= 1.0
            self.state.acquired_count += 1

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "refill_per_second": self.refill_per_second,
            "tokens": round(self.state.tokens, 3),
            "acquired": self.state.acquired_count,
            "throttled": self.state.throttle_count,
        }


class ConcurrencyCeiling:
    """
    Global cap on concurrently held permits across all sources.

    Requests beyond the cap queue in strict FIFO order; a heavier request at
    the head of the queue is never overtaken by lighter ones behind it.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._in_use = 0
        self._peak = 0
        self._waiters: deque = deque()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def _grant(self, units: int) -> None:
        self._in_use += units
        self._peak = max(self._peak, self._in_use)
        self._idle.clear()

    def _wake_waiters(self) -> None:
        while self._waiters:
            units, future = self._waiters[0]
            if future.done():
                self._waiters.popleft()
                continue
            if self._in_use + units > self.limit:
                break
            self._waiters.popleft()
            self._grant(units)
            future.set_result(None)

    async def acquire(self, units: int = 1) -> int:
        """Acquire `units` slots (capped at the limit). Returns the units held."""
        units = max(1, min(units, self.limit))
        if not self._waiters and self._in_use + units <= self.limit:
            self._grant(units)
            return units

        future = asyncio.get_running_loop().create_future()
        entry = (units, future)
        self._waiters.append(entry)
        try:
            await future
        except asyncio.CancelledError:
            if future.done() and not future.cancelled():
                # Granted just before the cancellation landed
                self.release(units)
            else:
                try:
                    self._waiters.remove(entry)
                except ValueError:
                    pass
                self._wake_waiters()
            raise
        return units

    def release(self, units: int = 1) -> None:
        self._in_use = max(0, self._in_use - units)
        if self._in_use == 0:
            self._idle.set()
        self._wake_waiters()

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until no permit is held. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def get_stats(self) -> dict:
        return {
            "limit": self.limit,
            "in_use": self._in_use,
            "peak": self._peak,
            "waiting": len(self._waiters),
        }
