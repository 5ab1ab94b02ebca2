"""
FastAPI Middleware for the DocVerify API

Provides CORS configuration, request logging, and mapping of domain
exceptions onto the standard error body.
"""

import os
import re
import time
import logging
from datetime import datetime, timezone
from typing import Callable, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from config_manager import ConfigurationError
from errors import (
    AuthError,
    ConflictError,
    DocVerifyError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionDeniedError,
    StorageError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from validation import sanitize_for_logging

logger = logging.getLogger(__name__)

# Default allowed origins for localhost development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8080",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8080",
    "http://127.0.0.1:8000",
]

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_EXPOSE_HEADERS = ["X-Request-ID", "X-Processing-Time-MS"]

# Most specific class first
ERROR_STATUS = [
    (UnsupportedMediaTypeError, 415),
    (PayloadTooLargeError, 413),
    (ValidationError, 400),
    (NotFoundError, 404),
    (AuthError, 401),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (StorageError, 502),
]


def _build_cors_regex_pattern(allowed_origins: List[str]) -> tuple:
    """Build a regex for CORS from an origin list that may contain wildcards.

    Args:
        allowed_origins: Allowed origins (e.g. https://*.example.com)

    Returns:
        Tuple of (combined_regex_pattern or None, exact_origins list)
    """
    regex_patterns = []
    exact_origins = []

    for origin in allowed_origins:
        if "*" in origin:
            escaped = re.escape(origin).replace(r"\*", r"[\w-]+")
            regex_patterns.append(escaped)
        else:
            exact_origins.append(origin)

    if not regex_patterns:
        return None, exact_origins

    combined_regex = "|".join(f"({p})" for p in regex_patterns)
    if exact_origins:
        exact_escaped = "|".join(re.escape(o) for o in exact_origins)
        combined_regex = f"({combined_regex})|({exact_escaped})"

    return combined_regex, exact_origins


def setup_cors(app: FastAPI) -> None:
    """Configure CORS middleware for the application.

    Origins default to localhost and can be customized via the CORS_ORIGINS
    environment variable (comma-separated, wildcard subdomains allowed).
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    else:
        allowed_origins = DEFAULT_CORS_ORIGINS

    combined_regex, exact_origins = _build_cors_regex_pattern(allowed_origins)
    if combined_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=combined_regex,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
            expose_headers=CORS_EXPOSE_HEADERS,
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=exact_origins,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
            expose_headers=CORS_EXPOSE_HEADERS,
        )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all requests with sanitized inputs."""

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        request.state.request_id = request_id
        request.state.start_time = start_time

        # Sanitize path to prevent log injection
        sanitized_path = sanitize_for_logging(str(request.url.path))
        logger.info(
            "Request: method=%s path=%s request_id=%s",
            request.method,
            sanitized_path,
            request_id,
        )

        try:
            response = await call_next(request)

            processing_time_ms = int((time.time() - start_time) * 1000)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

            logger.info(
                "Response: status=%d path=%s processing_time_ms=%d request_id=%s",
                response.status_code,
                sanitized_path,
                processing_time_ms,
                request_id,
            )
            return response

        except Exception as exc:
            processing_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed: error=%s processing_time_ms=%d request_id=%s",
                sanitize_for_logging(str(exc)),
                processing_time_ms,
                request_id,
            )
            raise


def create_error_response(
    code: str,
    message: str,
    status_code: int = 500,
    field: str = None,
    suggestion: str = None,
) -> JSONResponse:
    """Create a standardized error response.

    Args:
        code: Error code for programmatic handling
        message: Human-readable message
        status_code: HTTP status code
        field: Field that caused the error (optional)
        suggestion: How to fix the error (optional)

    Returns:
        JSONResponse with standardized error format
    """
    error_detail = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if field:
        error_detail["field"] = field
    if suggestion:
        error_detail["suggestion"] = suggestion

    return JSONResponse(status_code=status_code, content={"error": error_detail})


def status_for(exc: DocVerifyError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return 500


async def domain_exception_handler(request: Request, exc: DocVerifyError) -> JSONResponse:
    """Map a domain exception onto its HTTP status and error body."""
    request_id = getattr(request.state, "request_id", "unknown")
    status_code = status_for(exc)

    logger.log(
        logging.WARNING if status_code < 500 else logging.ERROR,
        "Request rejected: type=%s code=%s status=%d request_id=%s",
        type(exc).__name__,
        exc.code,
        status_code,
        request_id,
    )

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    response = create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=status_code,
        field=exc.field,
        suggestion=exc.suggestion,
    )
    if headers:
        response.headers.update(headers)
    return response


async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error: %s", sanitize_for_logging(str(exc)))
    return create_error_response(
        code="CONFIGURATION_ERROR",
        message="Service configuration is invalid. Please contact administrator.",
        status_code=503,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies/parameters use the same body as domain validation."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    return create_error_response(
        code="VALIDATION_ERROR",
        message=first.get("msg", "Invalid request"),
        status_code=400,
        field=".".join(location) or None,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors.

    Sanitizes error messages to prevent information leakage.
    """
    request_id = getattr(request.state, "request_id", "unknown")

    logger.exception(
        "Unhandled exception: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        request_id,
    )

    return create_error_response(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
        status_code=500,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception: status=%d detail=%s request_id=%s",
        exc.status_code,
        sanitize_for_logging(str(exc.detail)),
        request_id,
    )

    return create_error_response(
        code=f"HTTP_{exc.status_code}",
        message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        status_code=exc.status_code,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the application."""
    app.add_exception_handler(DocVerifyError, domain_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
