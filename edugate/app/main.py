from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edugate.app.core.config import Settings, settings as default_settings
from edugate.app.core.logging import get_logger, setup_logging
from edugate.app.dependencies import AdmissionDep, ReadLimit
from edugate.app.exceptions import RateLimitExceededError
from edugate.app.middleware.rate_limit import (
    ConnectionState,
    RateLimitHeadersMiddleware,
    RateLimitMiddleware,
)
from edugate.app.middleware.rate_limit.limiter import rejection_response
from edugate.app.middleware.rate_limit.service import AdmissionService


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[AdmissionService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the environment-loaded ones)
        service: Pre-built admission service (defaults to one from settings)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or default_settings
    service = service or AdmissionService(settings)

    setup_logging(settings)
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Open the admission service on startup, close it on shutdown."""
        await service.open()
        logger.info(
            "Application startup complete",
            extra={
                "rate_limit_store": service.connection_state.value,
                "environment": settings.environment,
            },
        )
        yield
        await service.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="EduGate",
        description="Request admission and rate limiting for the EduKanban API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.admission = service

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(RateLimitMiddleware, service=service)
    # Outside the limiter so rejections get headers too
    app.add_middleware(RateLimitHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=[
            "RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset",
            "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )

    @app.get("/health")
    async def health(admission: AdmissionDep) -> dict[str, Any]:
        """Health check including the rate limit store state."""
        state = admission.connection_state
        status = "degraded" if state is ConnectionState.DEGRADED else "ok"
        return {
            "status": status,
            "components": {
                "rate_limit": {
                    "status": status,
                    "store": "redis" if admission.store is not None else "memory",
                    "state": state.value,
                },
            },
        }

    @app.get("/api/rate-limits", dependencies=[ReadLimit])
    async def rate_limits(admission: AdmissionDep) -> dict[str, Any]:
        """Describe every active limiter configuration."""
        return {"success": True, "limiters": admission.describe()}

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError raised by route dependencies."""
        return rejection_response(exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled exceptions server-side; never leak details to clients."""
        logger.exception(
            f"Unhandled exception on {request.method} {request.url.path}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
        )
        content: dict[str, Any] = {"success": False, "message": "Internal server error"}
        if settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
