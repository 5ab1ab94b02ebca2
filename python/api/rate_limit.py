"""
Request rate limiting for the DocVerify API

Login and the unauthenticated public endpoints are limited per client
address. Limits are read from the rate_limit config section on every
request; counters live in RATE_LIMIT_STORAGE_URI (in-process by default,
redis://... when several workers share the limits).
"""

import os
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from api.middleware import create_error_response

logger = logging.getLogger(__name__)

RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the standard error body, with Retry-After set to the window length."""
    try:
        retry_after = str(exc.limit.limit.get_expiry())
    except AttributeError:
        retry_after = "60"

    logger.warning(
        "Rate limit exceeded: client=%s path=%s limit=%s",
        get_remote_address(request),
        request.url.path,
        exc.detail,
    )

    response = create_error_response(
        code="RATE_LIMITED",
        message="Too many requests. Please slow down.",
        status_code=429,
        suggestion=f"Retry after {retry_after} seconds",
    )
    response.headers["Retry-After"] = retry_after
    return response
