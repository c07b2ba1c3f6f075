"""FastAPI dependencies for route-level rate limiting.

Path-prefix limiters are applied by ``RateLimitMiddleware``; the limiters
here depend on the kind of operation rather than the path, so routes opt in:

    @router.post("/courses", dependencies=[WriteLimit])
    async def create_course(...): ...
"""

from typing import Annotated

from fastapi import Depends, Request

from edugate.app.middleware.rate_limit.models import RateLimitResult
from edugate.app.middleware.rate_limit.presets import READ, WRITE
from edugate.app.middleware.rate_limit.service import AdmissionService


def get_admission(request: Request) -> AdmissionService:
    return request.app.state.admission


AdmissionDep = Annotated[AdmissionService, Depends(get_admission)]


async def write_limit(request: Request, admission: AdmissionDep) -> RateLimitResult:
    return await admission.limiter(WRITE).admit(request)


async def read_limit(request: Request, admission: AdmissionDep) -> RateLimitResult:
    return await admission.limiter(READ).admit(request)


async def dynamic_limit(request: Request, admission: AdmissionDep) -> RateLimitResult:
    return await admission.dynamic.admit(request)


WriteLimit = Depends(write_limit)
ReadLimit = Depends(read_limit)
DynamicLimit = Depends(dynamic_limit)
