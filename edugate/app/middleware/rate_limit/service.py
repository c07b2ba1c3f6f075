"""Admission service: owns the store, the limiters, and their upkeep."""

import asyncio
import logging
from functools import partial
from typing import Dict, Iterator, Optional, Union

from edugate.app.core.config import Settings
from edugate.app.middleware.rate_limit.counter import now_ms
from edugate.app.middleware.rate_limit.limiter import RateLimiter, identity_key
from edugate.app.middleware.rate_limit.models import ConnectionState
from edugate.app.middleware.rate_limit.presets import build_limiters
from edugate.app.middleware.rate_limit.store import RedisStore
from edugate.app.middleware.rate_limit.tiered import TieredRateLimiter

logger = logging.getLogger(__name__)

DYNAMIC = "dynamic"


class AdmissionService:
    """Explicitly constructed home for all rate limiting state.

    Each instance has its own buckets, so tests (or several apps in one
    process) never share counts by accident.

    Usage:
        service = AdmissionService(settings)
        await service.open()
        await service.limiter("auth").admit(request)
        await service.close()

    or as ``async with AdmissionService(settings) as service: ...``.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[RedisStore] = None,
    ):
        """Initialize the service.

        Args:
            settings: Application settings (quotas, Redis, intervals)
            store: Optional store; built from ``settings.redis_url`` when
                omitted and a URL is configured
        """
        self.settings = settings
        if store is None and settings.redis_url:
            store = RedisStore(
                redis_url=settings.redis_url,
                prefix=settings.redis_key_prefix,
                connect_timeout=settings.redis_connect_timeout,
                operation_timeout=settings.redis_operation_timeout,
            )
        self.store = store
        self._limiters: Dict[str, RateLimiter] = build_limiters(settings, store)
        self.dynamic = TieredRateLimiter(
            store=store,
            key_generator=partial(identity_key, trust_proxy=settings.trust_proxy),
        )

        self._cleanup_interval = settings.rate_limit_cleanup_interval_seconds
        self._reconnect_interval = settings.redis_reconnect_interval_seconds
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

    @property
    def connection_state(self) -> ConnectionState:
        if self.store is None:
            return ConnectionState.DISCONNECTED
        return self.store.state

    def limiter(self, name: str) -> Union[RateLimiter, TieredRateLimiter]:
        """Look up a named limiter (``dynamic`` is the tiered limiter).

        Raises:
            KeyError: If no limiter has that name
        """
        if name == DYNAMIC:
            return self.dynamic
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"Unknown rate limiter '{name}'") from None

    def limiters(self) -> Iterator[RateLimiter]:
        """Every concrete limiter, including tiers created so far."""
        yield from self._limiters.values()
        yield from self.dynamic.limiters()

    def describe(self) -> Dict[str, dict]:
        return {limiter.name: limiter.config.describe() for limiter in self.limiters()}

    async def open(self) -> None:
        """Connect the store (if any) and start background maintenance."""
        if self.store is not None:
            state = await self.store.open()
            logger.info(f"Rate limiting using Redis store ({state.value})")
        else:
            logger.info("Rate limiting using in-memory store")

        if self._tasks:
            return
        self._stop_event.clear()
        self._tasks.append(asyncio.create_task(self._run_cleanup()))
        if self.store is not None:
            self._tasks.append(asyncio.create_task(self._run_reconnect()))

    async def close(self) -> None:
        """Stop background maintenance and release the store."""
        self._stop_event.set()
        for task in self._tasks:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Rate limit maintenance did not stop gracefully, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks = []
        if self.store is not None:
            await self.store.close()

    async def __aenter__(self) -> "AdmissionService":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def cleanup(self, now: Optional[int] = None) -> int:
        """Evict idle buckets from every local counter.

        Returns:
            Number of buckets removed
        """
        if now is None:
            now = now_ms()
        removed = 0
        for limiter in self.limiters():
            removed += await limiter.backend.cleanup(now)
        return removed

    async def _wait(self, interval: float) -> bool:
        """Sleep for ``interval`` unless stopped first; True means stop."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run_cleanup(self) -> None:
        while not await self._wait(self._cleanup_interval):
            try:
                removed = await self.cleanup()
                logger.debug(f"Rate limiter cleanup removed {removed} idle buckets")
            except Exception as e:
                logger.error(f"Error during rate limiter cleanup: {e}")

    async def _run_reconnect(self) -> None:
        while not await self._wait(self._reconnect_interval):
            if self.store is None or self.store.state is not ConnectionState.DEGRADED:
                continue
            try:
                await self.store.reconnect()
            except Exception as e:
                logger.error(f"Error reconnecting rate limit store: {e}")
