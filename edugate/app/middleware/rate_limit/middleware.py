"""Mount named limiters on path prefixes."""

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from edugate.app.exceptions import RateLimitExceededError
from edugate.app.middleware.rate_limit.limiter import rejection_response, settle_admissions
from edugate.app.middleware.rate_limit.presets import AI, API, AUTH, EXPORT, SEARCH, UPLOAD

if TYPE_CHECKING:
    from edugate.app.middleware.rate_limit.service import AdmissionService

logger = logging.getLogger(__name__)

# (path prefix, limiter name), applied in order; every matching entry runs
DEFAULT_MOUNTS: Tuple[Tuple[str, str], ...] = (
    ("/api/", API),
    ("/api/auth/login", AUTH),
    ("/api/auth/register", AUTH),
    ("/api/auth/forgot-password", AUTH),
    ("/api/auth/reset-password", AUTH),
    ("/api/ai/generate-course", AI),
    ("/api/ai/analyze-code", AI),
    ("/api/ai/get-hint", AI),
    ("/api/users/profile-picture", UPLOAD),
    ("/api/chat/upload", UPLOAD),
    ("/api/users/search", SEARCH),
    ("/api/search/", SEARCH),
    ("/api/analytics/export", EXPORT),
    ("/api/export/", EXPORT),
)


def path_matches(path: str, prefix: str) -> bool:
    """Prefix match on whole path segments (``/api/`` matches ``/api/x``, not ``/apix``)."""
    base = prefix.rstrip("/")
    return path == base or path.startswith(base + "/")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce the named limiters on matching paths.

    The first limiter to deny short-circuits with a 429 JSON response.
    After the downstream app has answered, every admission recorded on the
    request (by this middleware or by route dependencies) is settled with
    the final status code so exemption policies can refund their slot.
    """

    def __init__(
        self,
        app,
        service: "AdmissionService",
        mounts: Optional[Sequence[Tuple[str, str]]] = None,
    ):
        super().__init__(app)
        self.service = service
        self.mounts = tuple(DEFAULT_MOUNTS if mounts is None else mounts)
        for _, name in self.mounts:
            # Fail at startup, not on the first matching request
            self.service.limiter(name)

    def _limiter_names_for(self, path: str) -> List[str]:
        return [name for prefix, name in self.mounts if path_matches(path, prefix)]

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        for name in self._limiter_names_for(request.url.path):
            try:
                await self.service.limiter(name).admit(request)
            except RateLimitExceededError as exc:
                response = rejection_response(exc)
                await settle_admissions(request, response.status_code)
                return response

        try:
            response = await call_next(request)
        except Exception:
            await settle_admissions(request, None)
            raise

        await settle_admissions(request, response.status_code)
        return response
