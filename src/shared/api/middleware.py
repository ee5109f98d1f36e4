"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core import (
    ApplicationException,
    ConcurrentModificationException,
    NotTicketOwnerException,
    PolicyViolationException,
    ResourceNotFoundException,
    ValidationException,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    Correlation IDs link the request log lines with the job logs of the
    triage work the request enqueued.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Get existing correlation ID or generate new one
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for access in endpoints
        request.state.correlation_id = correlation_id

        # Add to response header
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs all requests and responses.

    Provides audit trail and debugging information.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def status_code_for(exc: ApplicationException) -> int:
    """HTTP status for an application error."""
    if isinstance(exc, NotTicketOwnerException):
        return 403
    if isinstance(exc, PolicyViolationException):
        return 400
    if isinstance(exc, ResourceNotFoundException):
        return 404
    if isinstance(exc, ConcurrentModificationException):
        return 409
    if isinstance(exc, ValidationException):
        return 422
    if exc.retryable:
        return 503
    return 500


def error_code_for(exc: ApplicationException) -> str:
    if isinstance(exc, PolicyViolationException):
        return exc.code
    if isinstance(exc, ResourceNotFoundException):
        return "NOT_FOUND"
    if isinstance(exc, ConcurrentModificationException):
        return "CONCURRENT_MODIFICATION"
    if isinstance(exc, ValidationException):
        return "VALIDATION_ERROR"
    if exc.retryable:
        return "SERVICE_UNAVAILABLE"
    return "INTERNAL_ERROR"


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Maps application errors to ``{"detail", "code"}`` responses.

    Policy violations carry their user-facing reason; server-side failures
    are logged and reported without internals.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = status_code_for(exc)

    if status_code >= 500:
        logger.error(
            "Application error",
            extra={
                "correlation_id": correlation_id,
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "error_message": exc.message,
                "retryable": exc.retryable
            }
        )
        detail = "Service temporarily unavailable" if status_code == 503 else "Internal server error"
    else:
        detail = exc.message

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": error_code_for(exc)}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    # Don't expose internal details in production
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "code": "INTERNAL_ERROR",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
