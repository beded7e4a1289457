"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from src.core.exceptions import (
    AllocationError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    ParticipationError,
    StorageError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def _status_for(exc: ParticipationError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidTransitionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, StorageError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, AllocationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Sets up handlers for all ParticipationError subclasses with appropriate
    HTTP status codes, plus handlers for request validation, configuration
    errors and generic exceptions.
    """

    @app.exception_handler(ParticipationError)
    async def participation_error_handler(
        request: Request,
        exc: ParticipationError,
    ) -> JSONResponse:
        """Handle ParticipationError exceptions with appropriate HTTP status codes.

        Maps specific error types to HTTP status codes (404 for not found,
        409 for rejected transitions, 502 for storage, etc.) and returns a
        consistent error response format. Storage and upload-rejection errors
        carry the id of the response recorded before the file was refused.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        status_code = _status_for(exc)

        log_ctx.warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        error = {
            "type": type(exc).__name__,
            "message": exc.message,
        }
        response_id = getattr(exc, "response_id", None)
        if response_id:
            error["response_id"] = response_id

        return JSONResponse(status_code=status_code, content={"error": error})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Report malformed request bodies in the common error format with HTTP 400."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"

        log.warning(
            "request_validation_failed",
            path=request.url.path,
            error_count=len(errors),
            message=message,
        )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "type": "ValidationError",
                    "message": message,
                }
            },
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Handle configuration errors with HTTP 500 status.

        Returns a 500 Internal Server Error when experiment content or
        application settings are invalid, without leaking the details.
        """
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "ConfigurationError",
                    "message": "Server configuration error",
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status.

        Catches any exception not handled by specific handlers, logs the error
        with full context, and returns a generic 500 Internal Server Error response.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        log_ctx.error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
