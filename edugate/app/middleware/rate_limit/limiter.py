"""Limiter configuration layer.

A ``RateLimiter`` binds one ``LimiterConfig`` (window, ceiling, key
derivation, message, exemption policy) to a backend. Every admission
consumes a slot up front; once the handler has finished, ``settle()``
refunds the slot when the outcome class is exempt for this limiter.
"""

import inspect
import logging
from typing import List, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from edugate.app.core.logging import get_log_context
from edugate.app.exceptions import RateLimitExceededError
from edugate.app.middleware.identity import (
    client_address,
    read_json_body,
    user_identifier,
)
from edugate.app.middleware.rate_limit.backends import (
    FallbackBackend,
    InMemoryBackend,
    RateLimitBackend,
)
from edugate.app.middleware.rate_limit.counter import SlidingWindowCounter
from edugate.app.middleware.rate_limit.models import (
    KeyGenerator,
    LimiterConfig,
    RateLimitInfo,
    RateLimitResult,
)
from edugate.app.middleware.rate_limit.store import RedisStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 15 * 60 * 1000
DEFAULT_MAX_REQUESTS = 100
DEFAULT_MESSAGE = "Too many requests, please try again later"

# request.state attribute collecting (limiter, result) pairs awaiting settle()
ADMISSIONS_ATTR = "rate_limit_admissions"


def origin_key(request: Request, trust_proxy: Optional[bool] = None) -> str:
    """Bucket by network origin."""
    return client_address(request, trust_proxy)


async def credential_key(request: Request, trust_proxy: Optional[bool] = None) -> str:
    """Bucket pre-authentication requests by the credential they target.

    Uses ``email`` then ``username`` from the JSON body, so a brute-force
    run against one account is limited no matter how many addresses it
    comes from.
    """
    body = await read_json_body(request)
    for field in ("email", "username"):
        value = body.get(field)
        if value:
            return str(value)
    return client_address(request, trust_proxy)


def identity_key(request: Request, trust_proxy: Optional[bool] = None) -> str:
    """Bucket by authenticated user, falling back to network origin."""
    return user_identifier(request) or client_address(request, trust_proxy)


def pending_admissions(request: Request) -> List[Tuple["RateLimiter", RateLimitResult]]:
    admissions = getattr(request.state, ADMISSIONS_ATTR, None)
    if admissions is None:
        admissions = []
        setattr(request.state, ADMISSIONS_ATTR, admissions)
    return admissions


def rejection_response(
    exc: RateLimitExceededError, status_code: Optional[int] = None
) -> JSONResponse:
    """JSON body and Retry-After header for a denied request."""
    return JSONResponse(
        status_code=status_code or exc.status_code,
        content=exc.to_response(),
        headers={"Retry-After": str(exc.retry_after)},
    )


async def settle_admissions(request: Request, status_code: Optional[int]) -> None:
    """Settle every admission recorded on the request.

    Args:
        request: The request the admissions were made for
        status_code: Final response status, or None if the handler raised
    """
    admissions = getattr(request.state, ADMISSIONS_ATTR, None)
    if not admissions:
        return
    setattr(request.state, ADMISSIONS_ATTR, [])
    for limiter, result in admissions:
        await limiter.settle(result, status_code)


class RateLimiter:
    """Admission decision for one named configuration.

    Usable directly (``await limiter.admit(request)``), as a FastAPI
    dependency (``Depends(limiter)``), or mounted by path prefix through
    ``RateLimitMiddleware``.
    """

    def __init__(self, config: LimiterConfig, backend: RateLimitBackend):
        if (backend.window_ms, backend.max_requests) != (config.window_ms, config.max_requests):
            raise ValueError(
                f"Backend quota does not match limiter '{config.name}' configuration"
            )
        self.config = config
        self.backend = backend

    @property
    def name(self) -> str:
        return self.config.name

    def __repr__(self) -> str:
        return (
            f"RateLimiter(name={self.config.name!r}, window_ms={self.config.window_ms}, "
            f"max={self.config.max_requests})"
        )

    async def bucket_for(self, request: Request) -> str:
        key = self.config.key_generator(request)
        if inspect.isawaitable(key):
            key = await key
        return f"{self.config.name}:{key}"

    async def admit(self, request: Request, now: Optional[int] = None) -> RateLimitResult:
        """Check the caller's bucket and consume a slot.

        Attaches ``RateLimitInfo`` to ``request.state.rate_limit`` whether
        or not the request is admitted.

        Raises:
            RateLimitExceededError: If the bucket is full
        """
        bucket = await self.bucket_for(request)
        result = await self.backend.hit(bucket, now)
        result.bucket = bucket

        request.state.rate_limit = RateLimitInfo(
            limit=result.limit,
            remaining=result.remaining,
            reset_time=result.reset_time,
        )

        if not result.allowed:
            logger.info(
                f"Rate limit exceeded for {bucket}",
                extra=get_log_context(
                    limiter=self.config.name,
                    bucket=bucket,
                    path=request.url.path,
                    method=request.method,
                ),
            )
            raise RateLimitExceededError(
                message=self.config.message,
                retry_after=self.config.retry_after,
                limit=result.limit,
                reset_time=result.reset_time,
                limiter=self.config.name,
            )

        pending_admissions(request).append((self, result))
        return result

    def is_exempt(self, status_code: Optional[int]) -> bool:
        """Whether an outcome with this status gives its slot back."""
        failed = status_code is None or status_code >= 400
        if failed:
            return self.config.skip_failed_requests
        return self.config.skip_successful_requests

    async def settle(self, result: RateLimitResult, status_code: Optional[int]) -> bool:
        """Refund an admitted slot if its outcome class is exempt.

        Returns:
            True if a slot was refunded
        """
        if not result.allowed or result.bucket is None or not self.is_exempt(status_code):
            return False
        return await self.backend.refund(result.bucket, result)

    def rejection_response(self, exc: RateLimitExceededError) -> JSONResponse:
        return rejection_response(exc, status_code=self.config.status_code)

    async def __call__(self, request: Request) -> RateLimitResult:
        return await self.admit(request)


def create_rate_limiter(
    name: str = "default",
    window_ms: int = DEFAULT_WINDOW_MS,
    max_requests: int = DEFAULT_MAX_REQUESTS,
    message: str = DEFAULT_MESSAGE,
    key_generator: KeyGenerator = origin_key,
    skip_successful_requests: bool = False,
    skip_failed_requests: bool = False,
    store: Optional[RedisStore] = None,
) -> RateLimiter:
    """Build a limiter with its own counter.

    With a store, decisions are shared through Redis and fall back to the
    limiter's local counter whenever the store is unavailable; without one
    they are process-local.
    """
    config = LimiterConfig(
        name=name,
        window_ms=window_ms,
        max_requests=max_requests,
        key_generator=key_generator,
        message=message,
        skip_successful_requests=skip_successful_requests,
        skip_failed_requests=skip_failed_requests,
    )
    counter = SlidingWindowCounter(window_ms, max_requests)
    backend: RateLimitBackend
    if store is not None:
        backend = FallbackBackend(store, counter)
    else:
        backend = InMemoryBackend(counter)
    return RateLimiter(config, backend)
