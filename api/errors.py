"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, request_id_of, ErrorCodes
from core.errors import (
    BookingEngineError, ConflictError, ExpiredError, ForbiddenError, NotFoundError,
    OfferExpiredError, OutsideAvailabilityError, SlotConflictError, StateError,
    TransactionConflictError, ValidationError,
)

logger = logging.getLogger(__name__)


class NotAuthenticatedError(Exception):
    """No actor was attached to the request by the auth layer."""


def status_for(exc: BookingEngineError) -> int:
    """HTTP status for a domain error. Order matters: subclasses first."""
    if isinstance(exc, (ValidationError, OutsideAvailabilityError)):
        return 400
    if isinstance(exc, ForbiddenError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ExpiredError, OfferExpiredError)):
        return 410
    if isinstance(exc, (ConflictError, StateError)):
        return 409
    if isinstance(exc, TransactionConflictError):
        return 503
    return 500


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(BookingEngineError)
    async def booking_error_handler(request: Request, exc: BookingEngineError):
        status = status_for(exc)
        details = None
        if isinstance(exc, SlotConflictError) and exc.conflicting_booking_id is not None:
            details = {"conflicting_booking_id": str(exc.conflicting_booking_id)}

        if status >= 500:
            logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc}")

        return JSONResponse(
            status_code=status,
            content=error_response(
                exc.code, str(exc), details, request_id=request_id_of(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
        return JSONResponse(
            status_code=401,
            content=error_response(
                ErrorCodes.NOT_AUTHENTICATED, "Authentication required", request_id=request_id_of(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, str(exc), request_id=request_id_of(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                request_id=request_id_of(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=request_id_of(request),
            ).model_dump(mode="json"),
        )
