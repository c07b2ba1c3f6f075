"""Storage backends that a limiter counts against."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from edugate.app.exceptions import StoreUnavailableError
from edugate.app.middleware.rate_limit.counter import SlidingWindowCounter, now_ms
from edugate.app.middleware.rate_limit.models import RateLimitResult
from edugate.app.middleware.rate_limit.store import RedisStore

logger = logging.getLogger(__name__)


class RateLimitBackend(ABC):
    """Abstract base class for rate limit backends."""

    def __init__(self, counter: SlidingWindowCounter):
        self.counter = counter

    @property
    def window_ms(self) -> int:
        return self.counter.window_ms

    @property
    def max_requests(self) -> int:
        return self.counter.max_requests

    @abstractmethod
    async def hit(self, bucket: str, now: Optional[int] = None) -> RateLimitResult:
        """Check the bucket and record one event if it is admitted.

        Args:
            bucket: Bucket key (already namespaced by limiter name)
            now: Timestamp in ms; defaults to the wall clock

        Returns:
            RateLimitResult with allowed status and metadata
        """

    @abstractmethod
    async def refund(self, bucket: str, result: RateLimitResult) -> bool:
        """Give back the slot an admitted result consumed."""

    async def cleanup(self, now: Optional[int] = None) -> int:
        """Evict idle local buckets; returns how many were removed."""
        return self.counter.cleanup(now)


class InMemoryBackend(RateLimitBackend):
    """Process-local backend.

    Suitable for single-instance deployments and for tests.
    """

    async def hit(self, bucket: str, now: Optional[int] = None) -> RateLimitResult:
        return self.counter.check(bucket, now)

    async def refund(self, bucket: str, result: RateLimitResult) -> bool:
        if not result.allowed or result.timestamp is None:
            return False
        return self.counter.refund(bucket, result.timestamp)


class FallbackBackend(RateLimitBackend):
    """Shared Redis state with a process-local fallback.

    While the store reports CONNECTED, every decision is made by Redis.
    When the store is degraded or an operation fails, the decision is made
    by the local counter instead: quotas become per-process rather than
    global, but admission keeps working.
    """

    def __init__(self, store: RedisStore, counter: SlidingWindowCounter):
        super().__init__(counter)
        self.store = store

    async def hit(self, bucket: str, now: Optional[int] = None) -> RateLimitResult:
        if now is None:
            now = now_ms()
        if self.store.is_connected:
            try:
                return await self.store.hit(
                    bucket, now, self.counter.window_ms, self.counter.max_requests
                )
            except StoreUnavailableError as e:
                logger.warning(f"Counting {bucket} locally: {e}")
        return self.counter.check(bucket, now)

    async def refund(self, bucket: str, result: RateLimitResult) -> bool:
        if not result.allowed:
            return False
        if result.source == "redis" and result.event_id is not None:
            try:
                return await self.store.refund(bucket, result.event_id)
            except StoreUnavailableError as e:
                logger.warning(f"Could not refund {bucket}: {e}")
                return False
        if result.timestamp is None:
            return False
        return self.counter.refund(bucket, result.timestamp)
