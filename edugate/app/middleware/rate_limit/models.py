"""Rate limiting data models.

This module contains dataclasses for limiter configuration, admission
results, and the connection state of the distributed store.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from starlette.requests import Request

KeyGenerator = Callable[[Request], Union[str, Awaitable[str]]]


class ConnectionState(str, Enum):
    """Availability of the distributed store as seen by this process."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DEGRADED = "degraded"


@dataclass
class RateLimitResult:
    """Result of a rate limit check.

    ``reset_time`` is in milliseconds since the epoch. ``bucket``,
    ``event_id``, ``timestamp`` and ``source`` identify the recorded event so
    it can be refunded later.
    """
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    bucket: Optional[str] = None
    event_id: Optional[str] = None
    timestamp: Optional[int] = None
    source: str = "memory"


@dataclass(frozen=True)
class RateLimitInfo:
    """Admission accounting attached to ``request.state.rate_limit``."""
    limit: int
    remaining: int
    reset_time: int


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable policy for one named limiter."""
    name: str
    window_ms: int
    max_requests: int
    key_generator: KeyGenerator
    message: str = "Too many requests, please try again later"
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False
    status_code: int = 429

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be positive")
        if self.max_requests < 1:
            raise ValueError("max_requests must be positive")

    @property
    def retry_after(self) -> int:
        """Retry hint in whole seconds, ``ceil(window_ms / 1000)``."""
        return math.ceil(self.window_ms / 1000)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "window_ms": self.window_ms,
            "max": self.max_requests,
            "skip_successful_requests": self.skip_successful_requests,
            "skip_failed_requests": self.skip_failed_requests,
        }
