"""Standardized error handling for the HTTP API.

This module provides:
1. Custom exception classes for HTTP-facing errors
2. Exception handlers for FastAPI
3. Standard error response models

Usage:
    from coderunner.errors import ServiceUnavailableError, from_execution_error

    if runtime is None:
        raise ServiceUnavailableError(detail="Docker not connected")

    # Register handlers in main.py:
    from coderunner.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coderunner.sandbox.errors import ExecutionError

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """Base class for API errors."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class BadRequestError(APIError):
    """Bad request error (400)."""

    status_code = 400
    error = "bad_request"
    detail = "Invalid request"


class ExecutionFailedError(APIError):
    """Submitted code failed to compile or wrote to stderr (422)."""

    status_code = 422
    error = "execution_failed"
    detail = "Execution failed"


class ServiceUnavailableError(APIError):
    """Service unavailable error (503)."""

    status_code = 503
    error = "service_unavailable"
    detail = "Service temporarily unavailable"


class ExternalServiceError(APIError):
    """Container runtime request failed (502)."""

    status_code = 502
    error = "external_service_error"
    detail = "External service request failed"


class GatewayTimeoutError(APIError):
    """Execution ran past its time limit (504)."""

    status_code = 504
    error = "gateway_timeout"
    detail = "Execution timed out"


_STATUS_TO_ERROR: dict[int, type[APIError]] = {
    400: BadRequestError,
    422: ExecutionFailedError,
    502: ExternalServiceError,
    504: GatewayTimeoutError,
}


def from_execution_error(exc: ExecutionError | None, detail: str, **context: Any) -> APIError:
    """Map a session's terminal error onto the matching HTTP error.

    ``exc`` is ``None`` when the program ran to completion but wrote to
    stderr; that is reported as an execution failure.
    """
    if exc is None:
        return ExecutionFailedError(detail=detail, error_code="stderr", **context)
    error_cls = _STATUS_TO_ERROR.get(exc.status_code, APIError)
    return error_cls(detail=detail, error_code=exc.error, **context)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors."""
    logger.warning(
        "API error: %s (status=%d, path=%s)",
        exc.error_code or exc.error,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception("Unhandled exception: %s (path=%s)", exc, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="internal_error",
            detail="An unexpected error occurred",
        ).model_dump(exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
