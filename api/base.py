"""Unified API response format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Extra context, e.g. the conflicting booking")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")
    idempotent: bool | None = Field(None, description="True when a repeated submit returned the original booking")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta(request_id: str | None, idempotent: bool | None = None) -> APIMeta:
    # Fall back to a fresh id outside a request (RequestIDMiddleware not installed)
    return APIMeta(
        timestamp=now_utc(),
        request_id=request_id or str(uuid4()),
        idempotent=idempotent,
    )


def request_id_of(request) -> str | None:
    """The id RequestIDMiddleware put on the request, echoed in X-Request-ID."""
    return getattr(request.state, "request_id", None)


def success_response(
    data: Any,
    idempotent: bool | None = None,
    request_id: str | None = None,
) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=_meta(request_id, idempotent),
    )


def error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message, details=details),
        meta=_meta(request_id),
    )


class ErrorCodes:
    """
    Error codes produced by the HTTP layer itself.

    Domain failures carry their own code on the exception class
    (core.errors.BookingEngineError.code) and are passed through unchanged.
    """

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
