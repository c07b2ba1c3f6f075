"""Redis-backed distributed state for rate limiting.

Every process pointed at the same Redis shares one sorted set per bucket
(``rl:<bucket>``), scored by event timestamp in milliseconds. The check and
the insert run inside a single Lua script, so concurrent processes cannot
overrun a quota through a check-then-act race.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from edugate.app.exceptions import StoreUnavailableError
from edugate.app.middleware.rate_limit.models import ConnectionState, RateLimitResult

logger = logging.getLogger(__name__)

# KEYS[1] bucket key; ARGV: now_ms, window_ms, max_requests, member
# Returns {allowed, remaining, reset_time_ms}
SLIDING_WINDOW_SCRIPT = """
    local key = KEYS[1]
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    local limit = tonumber(ARGV[3])
    local member = ARGV[4]

    -- Keep only events with timestamp > now - window
    redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
    local count = redis.call('ZCARD', key)

    if count >= limit then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        local reset = now + window
        if oldest[2] then
            reset = tonumber(oldest[2]) + window
        end
        return {0, 0, reset}
    end

    redis.call('ZADD', key, now, member)
    redis.call('PEXPIRE', key, window)
    return {1, limit - count - 1, now + window}
"""

STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisStore:
    """Adapter around a ``redis.asyncio`` client with explicit state.

    The state starts DISCONNECTED, becomes CONNECTED after a successful
    ``open()``/``reconnect()`` and DEGRADED after any failed probe or
    operation. Failures are logged and never propagate out of ``open()``;
    operations raise ``StoreUnavailableError`` for the caller to fall back.

    Usage:
        store = RedisStore("redis://localhost:6379/0")
        await store.open()
        if store.state is ConnectionState.CONNECTED:
            result = await store.hit("api:1.2.3.4", now, 60000, 100)
        await store.close()
    """

    def __init__(
        self,
        redis_url: str = "",
        prefix: str = "rl:",
        connect_timeout: float = 10.0,
        operation_timeout: float = 2.0,
        client: Optional[Any] = None,
    ):
        """Initialize the store adapter.

        Args:
            redis_url: Redis connection URL
            prefix: Namespace prepended to every bucket key
            connect_timeout: Bound on connecting and on the startup probe (s)
            operation_timeout: Bound on each script call (s)
            client: Optional pre-built Redis client (tests, shared pools)
        """
        self._redis_url = redis_url
        self.prefix = prefix
        self._connect_timeout = connect_timeout
        self._operation_timeout = operation_timeout
        self._client = client
        self._owns_client = client is None
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def key(self, bucket: str) -> str:
        return f"{self.prefix}{bucket}"

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        if state is ConnectionState.CONNECTED:
            logger.info(f"Rate limit store connected (was {previous.value})")
        elif state is ConnectionState.DEGRADED:
            logger.warning(
                f"Rate limit store degraded (was {previous.value}); "
                "falling back to process-local counting"
            )

    def _mark_degraded(self, operation: str, error: BaseException) -> None:
        logger.error(f"Rate limit store {operation} failed: {error!r}")
        self._set_state(ConnectionState.DEGRADED)

    def _create_client(self) -> Any:
        return aioredis.from_url(
            self._redis_url,
            socket_connect_timeout=self._connect_timeout,
            socket_timeout=self._operation_timeout,
        )

    async def _probe(self) -> bool:
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self._connect_timeout)
        except STORE_ERRORS as e:
            self._mark_degraded("ping", e)
            return False
        self._set_state(ConnectionState.CONNECTED)
        return True

    async def open(self) -> ConnectionState:
        """Connect and probe the store. Never raises on connection problems."""
        if self._client is None:
            try:
                self._client = self._create_client()
            except (RedisError, ValueError) as e:
                self._mark_degraded("connect", e)
                return self._state
        await self._probe()
        return self._state

    async def reconnect(self) -> bool:
        """Re-probe a degraded store.

        Returns:
            True if the store is reachable again
        """
        if self._client is None:
            await self.open()
            return self.is_connected
        return await self._probe()

    async def close(self) -> None:
        """Close the client connection if this adapter created it."""
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            except STORE_ERRORS as e:
                logger.warning(f"Error closing rate limit store: {e!r}")
            self._client = None
        self._state = ConnectionState.DISCONNECTED

    async def hit(
        self, bucket: str, now: int, window_ms: int, max_requests: int
    ) -> RateLimitResult:
        """Atomically prune, count, and (if allowed) record one event.

        Raises:
            StoreUnavailableError: If the store cannot answer in time
        """
        if self._client is None:
            raise StoreUnavailableError("hit")

        member = f"{now}-{uuid.uuid4().hex[:12]}"
        try:
            raw = await asyncio.wait_for(
                self._client.eval(
                    SLIDING_WINDOW_SCRIPT,
                    1,
                    self.key(bucket),  # KEYS[1]
                    now,  # ARGV[1]
                    window_ms,  # ARGV[2]
                    max_requests,  # ARGV[3]
                    member,  # ARGV[4]
                ),
                timeout=self._operation_timeout,
            )
        except STORE_ERRORS as e:
            self._mark_degraded("hit", e)
            raise StoreUnavailableError("hit", e) from e

        allowed = bool(int(raw[0]))
        return RateLimitResult(
            allowed=allowed,
            limit=max_requests,
            remaining=max(0, int(raw[1])),
            reset_time=int(raw[2]),
            event_id=member if allowed else None,
            timestamp=now,
            source="redis",
        )

    async def refund(self, bucket: str, event_id: str) -> bool:
        """Remove a previously recorded event.

        Raises:
            StoreUnavailableError: If the store cannot answer in time
        """
        if self._client is None:
            raise StoreUnavailableError("refund")
        try:
            removed = await asyncio.wait_for(
                self._client.zrem(self.key(bucket), event_id),
                timeout=self._operation_timeout,
            )
        except STORE_ERRORS as e:
            self._mark_degraded("refund", e)
            raise StoreUnavailableError("refund", e) from e
        return bool(removed)
