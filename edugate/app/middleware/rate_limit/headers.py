"""Expose admission accounting as response headers.

Two header sets are written from ``request.state.rate_limit``:

* ``RateLimit-Limit``/``RateLimit-Remaining``/``RateLimit-Reset`` (IETF
  draft, reset in whole seconds from now) on every response a limiter saw.
* ``X-RateLimit-*`` (reset as an ISO-8601 UTC timestamp) on JSON responses.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from edugate.app.middleware.rate_limit.counter import now_ms
from edugate.app.middleware.rate_limit.models import RateLimitInfo


def format_reset(reset_time_ms: int) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2026-01-01T00:00:00.000Z``."""
    moment = datetime.fromtimestamp(reset_time_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def rate_limit_headers(info: RateLimitInfo) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": format_reset(info.reset_time),
    }


def standard_rate_limit_headers(
    info: RateLimitInfo, now: Optional[int] = None
) -> dict[str, str]:
    if now is None:
        now = now_ms()
    seconds = max(0, math.ceil((info.reset_time - now) / 1000))
    return {
        "RateLimit-Limit": str(info.limit),
        "RateLimit-Remaining": str(info.remaining),
        "RateLimit-Reset": str(seconds),
    }


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Add rate limit headers to limited responses.

    Reads whatever limiter last ran for the request from
    ``request.state.rate_limit``, so it works with every configuration,
    including rejections. Must be added outside (after) the limiting
    middleware so it sees the final state.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        info = getattr(request.state, "rate_limit", None)
        if info is None:
            return response

        response.headers.update(standard_rate_limit_headers(info))
        if "json" in response.headers.get("content-type", ""):
            response.headers.update(rate_limit_headers(info))

        return response
