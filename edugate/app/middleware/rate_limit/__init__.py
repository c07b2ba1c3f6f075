"""Rate limiting for the API.

Sliding window counters per bucket, shared through Redis when available
and process-local otherwise, bound to named limiter configurations.
"""

from edugate.app.middleware.rate_limit.backends import (
    FallbackBackend,
    InMemoryBackend,
    RateLimitBackend,
)
from edugate.app.middleware.rate_limit.counter import SlidingWindowCounter
from edugate.app.middleware.rate_limit.headers import RateLimitHeadersMiddleware
from edugate.app.middleware.rate_limit.limiter import (
    RateLimiter,
    create_rate_limiter,
    credential_key,
    identity_key,
    origin_key,
)
from edugate.app.middleware.rate_limit.middleware import DEFAULT_MOUNTS, RateLimitMiddleware
from edugate.app.middleware.rate_limit.models import (
    ConnectionState,
    LimiterConfig,
    RateLimitInfo,
    RateLimitResult,
)
from edugate.app.middleware.rate_limit.presets import LIMITER_NAMES, build_limiters
from edugate.app.middleware.rate_limit.service import AdmissionService
from edugate.app.middleware.rate_limit.store import RedisStore
from edugate.app.middleware.rate_limit.tiered import TieredRateLimiter, resolve_tier

__all__ = [
    # Models
    "ConnectionState",
    "LimiterConfig",
    "RateLimitInfo",
    "RateLimitResult",
    # Counting and storage
    "SlidingWindowCounter",
    "RedisStore",
    "RateLimitBackend",
    "InMemoryBackend",
    "FallbackBackend",
    # Limiters
    "RateLimiter",
    "create_rate_limiter",
    "credential_key",
    "identity_key",
    "origin_key",
    "LIMITER_NAMES",
    "build_limiters",
    "TieredRateLimiter",
    "resolve_tier",
    # Wiring
    "AdmissionService",
    "DEFAULT_MOUNTS",
    "RateLimitMiddleware",
    "RateLimitHeadersMiddleware",
]
