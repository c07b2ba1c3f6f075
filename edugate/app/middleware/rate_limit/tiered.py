"""Rate limiting with a ceiling chosen from the caller's tier."""

from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from fastapi import Request

from edugate.app.middleware.identity import get_user, user_attr
from edugate.app.middleware.rate_limit.limiter import (
    DEFAULT_WINDOW_MS,
    RateLimiter,
    create_rate_limiter,
    identity_key,
)
from edugate.app.middleware.rate_limit.models import KeyGenerator, RateLimitResult
from edugate.app.middleware.rate_limit.store import RedisStore

DEFAULT_TIER = "default"

DEFAULT_TIER_LIMITS: Dict[str, int] = {
    "admin": 1000,
    "premium": 500,
    "pro": 250,
    DEFAULT_TIER: 100,
}


def resolve_tier(
    user: Any, limits: Mapping[str, int] = DEFAULT_TIER_LIMITS
) -> Tuple[str, int]:
    """Pick the tier for a caller.

    Admin role wins over any subscription; anonymous callers get the
    default tier, as does any tier missing from ``limits``.

    Returns:
        (tier name, request ceiling)
    """
    tier = DEFAULT_TIER
    if user is not None:
        subscription = user_attr(user, "subscription")
        if user_attr(user, "role") == "admin":
            tier = "admin"
        elif subscription == "premium":
            tier = "premium"
        elif subscription == "pro":
            tier = "pro"
    if tier not in limits:
        tier = DEFAULT_TIER
    return tier, limits[tier]


class TieredRateLimiter:
    """Limiter whose ceiling is resolved per request.

    One ``RateLimiter`` per tier is created on first use and kept, so a
    caller's count persists across requests. Buckets are keyed by user id
    when authenticated and by origin address otherwise.
    """

    def __init__(
        self,
        window_ms: int = DEFAULT_WINDOW_MS,
        limits: Optional[Mapping[str, int]] = None,
        store: Optional[RedisStore] = None,
        name: str = "dynamic",
        key_generator: KeyGenerator = identity_key,
    ):
        self.window_ms = window_ms
        self.limits = dict(limits or DEFAULT_TIER_LIMITS)
        if DEFAULT_TIER not in self.limits:
            raise ValueError(f"Tier limits must define '{DEFAULT_TIER}'")
        self.name = name
        self.key_generator = key_generator
        self._store = store
        self._limiters: Dict[str, RateLimiter] = {}

    def limiter_for(self, tier: str) -> RateLimiter:
        limiter = self._limiters.get(tier)
        if limiter is None:
            limiter = create_rate_limiter(
                name=f"{self.name}:{tier}",
                window_ms=self.window_ms,
                max_requests=self.limits[tier],
                key_generator=self.key_generator,
                store=self._store,
            )
            self._limiters[tier] = limiter
        return limiter

    def limiters(self) -> Iterator[RateLimiter]:
        return iter(list(self._limiters.values()))

    async def admit(self, request: Request, now: Optional[int] = None) -> RateLimitResult:
        tier, _ = resolve_tier(get_user(request), self.limits)
        return await self.limiter_for(tier).admit(request, now)

    async def __call__(self, request: Request) -> RateLimitResult:
        return await self.admit(request)
