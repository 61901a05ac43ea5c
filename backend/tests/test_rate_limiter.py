"""
Core Service — Rate Limiter Unit Tests
========================================

What:  Token bucket admission, refill, per-client isolation and idle eviction.
How:   A FakeClock replaces time.monotonic so refill is deterministic.

What we test:
    ✅ A new client gets a full burst; the next request is rejected
    ✅ One token returns after 1/refill seconds, never more than the burst
    ✅ Clients never share buckets
    ✅ Sweeps evict only clients idle past the timeout
    ✅ The sweeper task keeps running through failures and stops on cancel
    ✅ Concurrent callers never over-admit
"""

import asyncio
import threading
from unittest.mock import patch

import pytest

from core.services.rate_limiter import RateLimiter, TokenBucket

from support import FakeClock


class TestTokenBucket:

    def test_starts_full(self):
        bucket = TokenBucket(capacity=3, refill_per_second=1.0)
        assert [bucket.allow(0.0) for _ in range(4)] == [True, True, True, False]

    def test_refill_is_capped_at_capacity(self):
        bucket = TokenBucket(capacity=2, refill_per_second=1.0, tokens=0.0)
        bucket.allow(100.0)
        assert bucket.tokens == pytest.approx(1.0)  # 2 refilled (cap), 1 taken

    def test_clock_going_backwards_adds_nothing(self):
        bucket = TokenBucket(capacity=1, refill_per_second=1.0, last_refill=10.0)
        assert bucket.allow(10.0) is True
        assert bucket.allow(5.0) is False


class TestRateLimiter:

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(burst_size=6, refill_per_second=3.0, clock=self.clock)

    def test_burst_then_reject(self):
        results = [self.limiter.allow("10.0.0.1") for _ in range(7)]
        assert results == [True] * 6 + [False]

    def test_refill_after_one_third_second(self):
        for _ in range(6):
            self.limiter.allow("10.0.0.1")
        assert self.limiter.allow("10.0.0.1") is False

        self.clock.advance(1 / 3 + 1e-6)
        assert self.limiter.allow("10.0.0.1") is True
        assert self.limiter.allow("10.0.0.1") is False

    def test_long_idle_restores_only_the_burst(self):
        for _ in range(6):
            self.limiter.allow("10.0.0.1")
        self.clock.advance(120)
        results = [self.limiter.allow("10.0.0.1") for _ in range(7)]
        assert results.count(True) == 6

    def test_clients_are_isolated(self):
        for _ in range(6):
            self.limiter.allow("10.0.0.1")
        assert self.limiter.allow("10.0.0.1") is False
        assert self.limiter.allow("10.0.0.2") is True

    def test_rejected_request_still_updates_last_seen(self):
        for _ in range(7):
            self.limiter.allow("10.0.0.1")
        self.clock.advance(42)
        self.limiter.allow("10.0.0.1")
        assert self.limiter.last_seen("10.0.0.1") == self.clock.now

    def test_from_settings(self, settings):
        limiter = RateLimiter.from_settings(settings)
        assert limiter.burst_size == 6
        assert limiter.refill_per_second == 3.0
        assert limiter.idle_timeout == 300.0
        assert limiter.sweep_interval == 60.0

    def test_empty_limiter_is_truthy(self):
        assert self.limiter.client_count() == 0
        assert bool(self.limiter) is True

    @pytest.mark.parametrize("burst,rate", [(0, 1.0), (1, 0.0)])
    def test_invalid_configuration(self, burst, rate):
        with pytest.raises(ValueError):
            RateLimiter(burst_size=burst, refill_per_second=rate)

    def test_concurrent_callers_never_over_admit(self):
        admitted = []
        barrier = threading.Barrier(12)

        def worker():
            barrier.wait()
            admitted.append(self.limiter.allow("10.0.0.9"))

        threads = [threading.Thread(target=worker) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert admitted.count(True) == 6


class TestEviction:

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(idle_timeout=300, sweep_interval=0.01, clock=self.clock)

    def test_sweep_evicts_only_idle_clients(self):
        self.limiter.allow("old")
        self.clock.advance(200)
        self.limiter.allow("recent")
        self.clock.advance(101)

        assert self.limiter.sweep() == 1
        assert "old" not in self.limiter
        assert "recent" in self.limiter
        assert self.limiter.client_count() == 1

    def test_evicted_client_starts_with_full_bucket(self):
        for _ in range(7):
            self.limiter.allow("10.0.0.1")
        self.clock.advance(301)
        self.limiter.sweep()
        assert [self.limiter.allow("10.0.0.1") for _ in range(6)] == [True] * 6

    @pytest.mark.asyncio
    async def test_sweeper_task_evicts_and_cancels(self):
        self.limiter.allow("old")
        self.clock.advance(301)

        task = asyncio.create_task(self.limiter.run_sweeper())
        for _ in range(50):
            await asyncio.sleep(0.01)
            if self.limiter.client_count() == 0:
                break
        assert self.limiter.client_count() == 0

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_sweeper_survives_a_failing_sweep(self):
        calls = []

        def flaky_sweep(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        with patch.object(self.limiter, "sweep", side_effect=flaky_sweep):
            task = asyncio.create_task(self.limiter.run_sweeper())
            for _ in range(50):
                await asyncio.sleep(0.01)
                if len(calls) >= 2:
                    break
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert len(calls) >= 2
