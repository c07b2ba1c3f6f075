"""The named limiter configurations used across the API.

| name   | window  | max (prod / dev)                 | key        |
|--------|---------|----------------------------------|------------|
| auth   | 15 min  | AUTH_RATE_LIMIT_MAX or 10        | credential |
| api    | 15 min* | RATE_LIMIT_MAX_REQUESTS or 100/1000 | origin  |
| write  | 1 min   | 20                               | origin     |
| read   | 1 min   | 100 / 500, successes not counted | origin     |
| upload | 1 hour  | 50                               | origin     |
| search | 1 min   | 30                               | origin     |
| ai     | 1 hour  | AI_RATE_LIMIT_MAX or 10          | identity   |
| export | 1 hour  | 5                                | origin     |

(*) RATE_LIMIT_WINDOW_MS overrides the api window.
"""

from functools import partial
from typing import Dict, Optional

from edugate.app.core.config import Settings
from edugate.app.middleware.rate_limit.limiter import (
    RateLimiter,
    create_rate_limiter,
    credential_key,
    identity_key,
    origin_key,
)
from edugate.app.middleware.rate_limit.store import RedisStore

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

AUTH = "auth"
API = "api"
WRITE = "write"
READ = "read"
UPLOAD = "upload"
SEARCH = "search"
AI = "ai"
EXPORT = "export"

LIMITER_NAMES = (AUTH, API, WRITE, READ, UPLOAD, SEARCH, AI, EXPORT)


def build_limiters(
    settings: Settings, store: Optional[RedisStore] = None
) -> Dict[str, RateLimiter]:
    """Create every named limiter from settings.

    Each limiter gets its own counter; when a store is given they all share
    it, namespaced by limiter name.
    """
    dev = settings.is_development
    by_origin = partial(origin_key, trust_proxy=settings.trust_proxy)
    by_credential = partial(credential_key, trust_proxy=settings.trust_proxy)
    by_identity = partial(identity_key, trust_proxy=settings.trust_proxy)

    return {
        AUTH: create_rate_limiter(
            name=AUTH,
            window_ms=15 * MINUTE_MS,
            max_requests=settings.auth_rate_limit_max or 10,
            message="Too many authentication attempts, please try again after 15 minutes",
            key_generator=by_credential,
            store=store,
        ),
        API: create_rate_limiter(
            name=API,
            window_ms=settings.rate_limit_window_ms or 15 * MINUTE_MS,
            max_requests=settings.rate_limit_max_requests or (1000 if dev else 100),
            message="Too many requests from this IP, please try again later",
            key_generator=by_origin,
            store=store,
        ),
        WRITE: create_rate_limiter(
            name=WRITE,
            window_ms=MINUTE_MS,
            max_requests=20,
            message="Too many write operations, please slow down",
            key_generator=by_origin,
            store=store,
        ),
        READ: create_rate_limiter(
            name=READ,
            window_ms=MINUTE_MS,
            max_requests=500 if dev else 100,
            message="Too many read requests, please slow down",
            key_generator=by_origin,
            skip_successful_requests=True,
            store=store,
        ),
        UPLOAD: create_rate_limiter(
            name=UPLOAD,
            window_ms=HOUR_MS,
            max_requests=50,
            message="Upload limit exceeded, please try again later",
            key_generator=by_origin,
            store=store,
        ),
        SEARCH: create_rate_limiter(
            name=SEARCH,
            window_ms=MINUTE_MS,
            max_requests=30,
            message="Too many search requests, please try again in a minute",
            key_generator=by_origin,
            store=store,
        ),
        AI: create_rate_limiter(
            name=AI,
            window_ms=HOUR_MS,
            max_requests=settings.ai_rate_limit_max or 10,
            message="AI generation limit reached, please try again later",
            key_generator=by_identity,
            store=store,
        ),
        EXPORT: create_rate_limiter(
            name=EXPORT,
            window_ms=HOUR_MS,
            max_requests=5,
            message="Export limit reached, please try again later",
            key_generator=by_origin,
            store=store,
        ),
    }
