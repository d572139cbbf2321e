"""Custom middleware for logging, error handling, and quota exception mapping."""

import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core.quota.exceptions import (
    InvalidAllowance,
    QuotaExceededException,
    StorageUnavailable,
)
from src.utils.timer_utils import elapsed_ms

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        start_time = time.time()
        user_id = request.headers.get("X-User-ID", "-")
        logger.info(f"[{request_id}] {request.method} {request.url.path} - User: {user_id}")

        response = await call_next(request)

        duration_ms = elapsed_ms(start_time)
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"- Status: {response.status_code} - Duration: {duration_ms:.1f}ms"
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-MS"] = f"{duration_ms:.1f}"

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Global error handling for unhandled exceptions."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.exception(f"[{request_id}] Unhandled exception: {e}")

            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Internal server error",
                    "message": str(e) if logger.isEnabledFor(logging.DEBUG) else "An unexpected error occurred",
                    "request_id": request_id,
                }
            )


def add_middleware(app: FastAPI) -> None:
    """Add all custom middleware to the application."""
    # Error handling wraps request logging
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(f"[{request_id}] HTTP {exc.status_code} - {exc.detail} - Path: {request.url.path}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
            "request_id": request_id,
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed messages."""
    request_id = getattr(request.state, "request_id", "unknown")

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
        logger.warning(f"[{request_id}] Validation error - Field: {field}, Message: {error['msg']}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Validation error",
            "details": errors,
            "request_id": request_id,
        }
    )


async def quota_exceeded_handler(request: Request, exc: QuotaExceededException):
    """Monthly allowance used up: 402 with an upgrade suggestion."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(
        f"[{request_id}] Message limit reached for user {exc.user_id} "
        f"({exc.messages_used}/{exc.limit}, tier {exc.tier_name})"
    )

    return JSONResponse(
        status_code=402,
        content={
            "success": False,
            **exc.to_response_dict(),
            "request_id": request_id,
        }
    )


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    """Usage ledger unreachable: 503 so clients retry."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(f"[{request_id}] {exc.message}")

    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": "storage_unavailable",
            "message": "Usage ledger temporarily unavailable, retry shortly",
            "request_id": request_id,
        },
        headers={"Retry-After": "5"},
    )


async def invalid_allowance_handler(request: Request, exc: InvalidAllowance):
    """Rejected tier definition."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(f"[{request_id}] {exc.message}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "invalid_allowance",
            "message": exc.message,
            "request_id": request_id,
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(QuotaExceededException, quota_exceeded_handler)
    app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)
    app.add_exception_handler(InvalidAllowance, invalid_allowance_handler)
