"""
Core Service — Per-Client Token Bucket Rate Limiter
=====================================================

What:  Admits or rejects requests per client identity (network address).
How:   Each identity owns a token bucket that starts full with burst_size
       tokens and refills continuously at refill_per_second. A request
       consumes one token; an empty bucket means rejection.
Who:   RateLimitMiddleware calls allow(); the application lifespan runs
       run_sweeper() as a background task.

Algorithm: Token Bucket
    tokens = min(capacity, tokens + elapsed * refill_per_second)
    allow  = tokens >= 1  (then tokens -= 1)

    With burst_size=6 and refill_per_second=3, six back-to-back requests
    pass, the seventh is rejected, and one more passes after 1/3 second.

Eviction:
    Every sweep_interval seconds (default 60) the sweeper drops clients whose
    last_seen is older than idle_timeout (default 300). This bounds memory
    for one-shot and abandoned clients.

Concurrency:
    One threading.Lock guards the identity → entry map. It is held only for
    the dictionary access and the bucket arithmetic, never across the next
    middleware stage or an await.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """Token bucket state: capacity (burst), steady refill rate and current tokens."""

    capacity: float
    refill_per_second: float
    tokens: Optional[float] = None
    last_refill: float = 0.0

    def __post_init__(self):
        if self.tokens is None:
            self.tokens = float(self.capacity)

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_per_second)
        self.last_refill = max(self.last_refill, now)

    def allow(self, now: float) -> bool:
        self._refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


@dataclass
class ClientEntry:
    identity: str
    bucket: TokenBucket
    last_seen: float


class RateLimiter:
    """
    In-memory per-identity rate limiter with idle eviction.

    Configuration:
        burst_size:         bucket capacity (default: 6)
        refill_per_second:  steady refill rate (default: 3)
        idle_timeout:       seconds without requests before eviction (default: 300)
        sweep_interval:     seconds between eviction passes (default: 60)
        clock:              monotonic time source, injectable for tests
    """

    def __init__(
        self,
        burst_size: int = 6,
        refill_per_second: float = 3.0,
        idle_timeout: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if burst_size < 1:
            raise ValueError("burst_size must be >= 1")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be > 0")
        self.burst_size = burst_size
        self.refill_per_second = refill_per_second
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: Dict[str, ClientEntry] = {}

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        return cls(
            burst_size=settings.rate_limit_burst,
            refill_per_second=settings.rate_limit_refill_per_second,
            idle_timeout=settings.rate_limit_idle_timeout,
            sweep_interval=settings.rate_limit_sweep_interval,
        )

    def allow(self, identity: str) -> bool:
        """
        Records the request for identity and tries to take one token.

        Returns True when the request may proceed.
        """
        with self._lock:
            now = self._clock()
            entry = self._clients.get(identity)
            if entry is None:
                entry = ClientEntry(
                    identity=identity,
                    bucket=TokenBucket(self.burst_size, self.refill_per_second, last_refill=now),
                    last_seen=now,
                )
                self._clients[identity] = entry
            entry.last_seen = now
            return entry.bucket.allow(now)

    def sweep(self, now: Optional[float] = None) -> int:
        """Evicts clients idle longer than idle_timeout. Returns the number evicted."""
        with self._lock:
            current = self._clock() if now is None else now
            stale = [
                identity
                for identity, entry in self._clients.items()
                if current - entry.last_seen > self.idle_timeout
            ]
            for identity in stale:
                del self._clients[identity]
        if stale:
            logger.debug("Evicted %d idle rate-limit entries", len(stale))
        return len(stale)

    async def run_sweeper(self) -> None:
        """
        Periodic eviction loop; runs until cancelled.

        Started as an asyncio task by the application lifespan and cancelled
        during shutdown. A failing sweep is logged and the loop continues.
        """
        logger.info(
            "Rate-limit sweeper started (interval=%ss, idle_timeout=%ss)",
            self.sweep_interval,
            self.idle_timeout,
        )
        try:
            while True:
                await asyncio.sleep(self.sweep_interval)
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Rate-limit sweep failed")
        finally:
            logger.info("Rate-limit sweeper stopped")

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._clients

    def last_seen(self, identity: str) -> Optional[float]:
        with self._lock:
            entry = self._clients.get(identity)
            return entry.last_seen if entry else None
