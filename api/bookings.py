"""
Booking routes: reservations, offers and the booking lifecycle.

Handlers are plain functions: the services block on psycopg2 and on the
artist's advisory lock, so Starlette runs them in its threadpool.
"""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

from api.base import request_id_of, success_response
from api.middleware import require_actor
from core.errors import ForbiddenError
from core.models import (
    BookingStatus, DirectBookingRequest, OfferCreate, OfferSelection,
    PendingBookingCreate, ReservationResult, StatusTransition,
)


def _ok(request: Request, data) -> dict:
    return success_response(data, request_id=request_id_of(request)).model_dump(mode="json")


def _reservation_response(request: Request, result: ReservationResult) -> JSONResponse:
    """201 for a new reservation, 200 when a repeated submit returned the original."""
    return JSONResponse(
        status_code=200 if result.idempotent else 201,
        content=success_response(
            result.booking.model_dump(mode="json"),
            idempotent=result.idempotent,
            request_id=request_id_of(request),
        ).model_dump(mode="json"),
    )


def create_bookings_router(services: dict) -> APIRouter:
    router = APIRouter()

    reservation_svc = services["reservation"]
    offer_svc = services["offer"]

    # -------------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------------

    @router.post("/artists/{artist_id}/book")
    def book_direct(request: Request, artist_id: UUID, body: DirectBookingRequest):
        actor = getattr(request.state, "actor", None)
        return _reservation_response(request, reservation_svc.book_direct(artist_id, body, actor=actor))

    @router.post("/offers", status_code=201)
    def create_offer(request: Request, body: OfferCreate):
        actor = require_actor(request)
        offer = offer_svc.create_offer(actor, body)
        return _ok(request, offer.model_dump(mode="json"))

    @router.get("/offers/{offer_id}")
    def get_offer(request: Request, offer_id: UUID):
        offer = offer_svc.get_offer(offer_id)
        return _ok(request, offer.model_dump(mode="json"))

    @router.post("/offers/{offer_id}/select")
    def select_offer_slot(request: Request, offer_id: UUID, body: OfferSelection):
        actor = getattr(request.state, "actor", None)
        return _reservation_response(
            request, reservation_svc.select_offer_slot(offer_id, body, actor=actor)
        )

    # -------------------------------------------------------------------------
    # Simple flow
    # -------------------------------------------------------------------------

    @router.post("/bookings", status_code=201)
    def create_booking(request: Request, body: PendingBookingCreate):
        actor = require_actor(request)
        booking = reservation_svc.create_pending_booking(body, actor)
        return _ok(request, booking.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @router.get("/bookings/{booking_id}")
    def get_booking(request: Request, booking_id: UUID):
        actor = require_actor(request)
        booking = reservation_svc.get_booking(booking_id, actor)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/bookings/{booking_id}/confirm")
    def confirm_booking(request: Request, booking_id: UUID):
        actor = require_actor(request)
        booking = reservation_svc.confirm_reservation(booking_id, actor)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/bookings/{booking_id}/cancel")
    def cancel_booking(request: Request, booking_id: UUID):
        actor = require_actor(request)
        booking = reservation_svc.cancel_booking(booking_id, actor)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/bookings/{booking_id}/deposit")
    def record_deposit(request: Request, booking_id: UUID):
        actor = require_actor(request)
        if not actor.is_admin:
            raise ForbiddenError("Only the payment system can record deposits")
        booking = reservation_svc.record_deposit_payment(booking_id)
        return _ok(request, booking.model_dump(mode="json"))

    @router.patch("/bookings/{booking_id}/status")
    def transition_status(request: Request, booking_id: UUID, body: StatusTransition):
        actor = require_actor(request)
        booking = reservation_svc.transition_status(booking_id, body.status, actor=actor, notes=body.notes)
        return _ok(request, booking.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    @router.get("/artists/{artist_id}/bookings")
    def list_artist_bookings(
        request: Request,
        artist_id: UUID,
        status: BookingStatus | None = Query(None),
    ):
        actor = require_actor(request)
        bookings = reservation_svc.list_for_artist(artist_id, actor, status=status)
        return _ok(request, [b.model_dump(mode="json") for b in bookings])

    @router.get("/customers/{customer_id}/bookings")
    def list_customer_bookings(request: Request, customer_id: UUID):
        actor = require_actor(request)
        bookings = reservation_svc.list_for_customer(customer_id, actor)
        return _ok(request, [b.model_dump(mode="json") for b in bookings])

    return router
