"""Error envelope shared by every metasync API error response.

    {"code": "DUPLICATE_KEY", "message": "...", "details": {...}, "request_id": "..."}

details never carries credentials or stack traces. request_id always matches
the X-Request-Id response header.
"""

from __future__ import annotations

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from metasync.api.middleware.request_id import REQUEST_ID_HEADER


class ErrorResponse(BaseModel):
    """Error envelope schema."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def request_id_for(request: Request) -> str:
    """Return the middleware-assigned request id, the caller's header, or a new uuid4."""
    assigned = getattr(request.state, "request_id", None)
    if assigned:
        return str(assigned)
    return request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an enveloped error response."""
    envelope = ErrorResponse(
        code=code, message=message, details=details, request_id=request_id_for(request)
    )
    return JSONResponse(
        status_code=http_status,
        content=envelope.model_dump(),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )


def get_error_code_for_status(status_code: int) -> str:
    """Derive a code from the status phrase, e.g. 405 -> "METHOD_NOT_ALLOWED"."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "ERROR"
    return phrase.upper().replace(" ", "_").replace("-", "_")
