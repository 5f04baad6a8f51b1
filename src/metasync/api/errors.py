"""metasync API error handling.

Maps the metasync error taxonomy to HTTP statuses and the shared error
envelope.

Global exception handlers:
- MetasyncError / ObjectStorageError: Taxonomy errors (see ERROR_STATUS)
- HTTPException: Starlette HTTP exceptions (routing 404/405 and FastAPI's subclass)
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from metasync.api.error_model import get_error_code_for_status, make_error_response
from metasync.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    DuplicateKeyError,
    InvalidCursorError,
    JobNotFoundError,
    MetasyncError,
    NotFoundError,
    PermissionDenied,
    TransientStoreError,
)
from metasync.storage.errors import ObjectStorageError, PathTraversalError

logger = logging.getLogger(__name__)


# Checked in order; the first matching class wins.
ERROR_STATUS: tuple[tuple[type[Exception], int, str], ...] = (
    (PermissionDenied, 403, "PERMISSION_DENIED"),
    (NotFoundError, 404, "OBJECT_NOT_FOUND"),
    (JobNotFoundError, 404, "JOB_NOT_FOUND"),
    (DuplicateKeyError, 409, "DUPLICATE_KEY"),
    (ChecksumMismatchError, 422, "CHECKSUM_MISMATCH"),
    (InvalidCursorError, 400, "INVALID_CURSOR"),
    (PathTraversalError, 400, "INVALID_KEY"),
    (ConfigurationError, 500, "CONFIGURATION_ERROR"),
    (TransientStoreError, 503, "STORE_UNAVAILABLE"),
)


def _error_details(exc: Exception) -> dict[str, Any] | None:
    details: dict[str, Any] = {}
    for attr in ("bucket", "key", "expected", "actual", "job_id"):
        value = getattr(exc, attr, None)
        if value:
            details[attr] = value
    return details or None


async def metasync_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for MetasyncError and ObjectStorageError."""
    assert isinstance(exc, MetasyncError | ObjectStorageError)

    for error_type, status, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status, code = 500, "INTERNAL_ERROR"

    if status >= 500:
        logger.error(
            "Request failed with %s: %s",
            type(exc).__name__,
            exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )

    message = exc.message if status < 500 or status == 503 else "An internal error occurred"
    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=status,
        details=_error_details(exc) if status < 500 else None,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError.

    Does not expose raw validation internals.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: returns 500 with a safe generic message and logs the exception."""
    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )
