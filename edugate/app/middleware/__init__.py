"""Middleware package for the admission layer."""

from edugate.app.middleware.rate_limit import (
    AdmissionService,
    RateLimitHeadersMiddleware,
    RateLimitMiddleware,
)

__all__ = [
    "AdmissionService",
    "RateLimitHeadersMiddleware",
    "RateLimitMiddleware",
]
