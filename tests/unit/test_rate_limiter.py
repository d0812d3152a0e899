"""
Unit tests for rate limiting functionality.
"""

import asyncio
import pytest


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTokenBucket:
    """Tests for TokenBucket."""

    def test_starts_full(self):
        from src.utils.rate_limiter import TokenBucket

        bucket = TokenBucket("site", capacity=3, refill_per_second=1.0, clock=FakeClock())

        assert [bucket.try_acquire() for _ in range(4)] == [True, True, True, False]
        stats = bucket.get_stats()
        assert stats['acquired'] == 3
        assert stats['throttled'] == 1

    def test_refill_over_time(self):
        from src.utils.rate_limiter import TokenBucket

        clock = FakeClock()
        bucket = TokenBucket("jobs", capacity=2, refill_per_second=0.5, clock=clock)
        bucket.try_acquire()
        bucket.try_acquire()
        assert bucket.try_acquire() is False

        clock.now += 2.0  # one token at 0.5/s
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_refill_capped_at_capacity(self):
        from src.utils.rate_limiter import TokenBucket

        clock = FakeClock()
        bucket = TokenBucket("site", capacity=2, refill_per_second=10.0, clock=clock)
        clock.now += 100.0

        assert [bucket.try_acquire() for _ in range(3)] == [True, True, False]

    def test_invalid_parameters(self):
        from src.utils.rate_limiter import TokenBucket

        with pytest.raises(ValueError):
            TokenBucket("x", capacity=0, refill_per_second=1)
        with pytest.raises(ValueError):
            TokenBucket("x", capacity=1, refill_per_second=0)

    @pytest.mark.asyncio
    async def test_acquire_waits_for_refill(self):
        """An empty bucket suspends the caller until a token refills."""
        from src.utils.rate_limiter import TokenBucket

        bucket = TokenBucket("site", capacity=1, refill_per_second=50.0)
        await bucket.acquire()

        loop = asyncio.get_running_loop()
        started = loop.time()
        await bucket.acquire()

        assert loop.time() - started >= 0.01
        assert bucket.get_stats()['throttled'] == 1

    @pytest.mark.asyncio
    async def test_concurrent_acquirers_never_double_count(self):
        """N concurrent acquirers consume exactly N tokens."""
        from src.utils.rate_limiter import TokenBucket

        bucket = TokenBucket("site", capacity=5, refill_per_second=200.0)
        await asyncio.gather(*(bucket.acquire() for _ in range(12)))

        assert bucket.get_stats()['acquired'] == 12
        assert bucket.state.tokens < 5


class TestConcurrencyCeiling:
    """Tests for the global concurrency ceiling."""

    @pytest.mark.asyncio
    async def test_limit_never_exceeded(self):
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(3)

        async def work():
            units = await ceiling.acquire()
            try:
                assert ceiling.in_use <= 3
                await asyncio.sleep(0.01)
            finally:
                ceiling.release(units)

        await asyncio.gather(*(work() for _ in range(10)))

        assert ceiling.peak == 3
        assert ceiling.in_use == 0

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        """Waiters are granted in arrival order."""
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(1)
        held = await ceiling.acquire()
        order = []

        async def waiter(n):
            units = await ceiling.acquire()
            order.append(n)
            ceiling.release(units)

        tasks = [asyncio.create_task(waiter(n)) for n in range(4)]
        await asyncio.sleep(0)
        assert ceiling.waiting == 4

        ceiling.release(held)
        await asyncio.gather(*tasks)
        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_heavy_head_not_overtaken(self):
        """A weighted request at the head blocks lighter ones behind it."""
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(2)
        first = await ceiling.acquire(1)
        order = []

        async def waiter(name, units):
            got = await ceiling.acquire(units)
            order.append(name)
            await asyncio.sleep(0.01)
            ceiling.release(got)

        heavy = asyncio.create_task(waiter("heavy", 2))
        await asyncio.sleep(0)
        light = asyncio.create_task(waiter("light", 1))
        await asyncio.sleep(0)

        # One unit is free, but the heavy head needs two
        assert order == []
        ceiling.release(first)
        await asyncio.gather(heavy, light)
        assert order == ["heavy", "light"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_queue(self):
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(1)
        held = await ceiling.acquire()

        waiter = asyncio.create_task(ceiling.acquire())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert ceiling.waiting == 0
        ceiling.release(held)
        assert ceiling.in_use == 0

    @pytest.mark.asyncio
    async def test_units_capped_at_limit(self):
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(2)
        assert await ceiling.acquire(5) == 2
        assert ceiling.in_use == 2

    @pytest.mark.asyncio
    async def test_wait_idle(self):
        from src.utils.rate_limiter import ConcurrencyCeiling

        ceiling = ConcurrencyCeiling(2)
        units = await ceiling.acquire()

        assert await ceiling.wait_idle(timeout=0.01) is False
        asyncio.get_running_loop().call_later(0.01, ceiling.release, units)
        assert await ceiling.wait_idle(timeout=1.0) is True
