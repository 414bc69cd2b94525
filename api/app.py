"""FastAPI application assembly."""

from typing import Callable

from fastapi import FastAPI
from starlette.requests import Request

from api.availability import create_availability_router
from api.bookings import create_bookings_router
from api.errors import register_error_handlers
from api.middleware import ActorContextMiddleware, RequestIDMiddleware
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import BookingConfig
from core.event_bus import EventBus
from core.handlers.booking_notification_handler import (
    DepositGateway, Notifier, register_booking_handlers,
)
from core.services.availability_service import AvailabilityService
from core.services.offer_service import OfferService
from core.services.reservation_service import ReservationService
from core.stores.artist_store import ArtistStore
from core.stores.availability_store import AvailabilityStore
from core.stores.booking_store import BookingStore
from core.stores.offer_store import OfferStore
from core.stores.request_store import RequestStore
from utils.user_context import Actor


def build_services(
    postgres: PostgresClient,
    event_bus: EventBus,
    config: BookingConfig | None = None,
    notifier: Notifier | None = None,
    payments: DepositGateway | None = None,
) -> dict:
    """
    Construct stores and services once, sharing one client and bus.

    With a notifier and a deposit gateway the booking handlers are
    subscribed to the bus as well; without them events go unheard.
    """
    config = config or BookingConfig()
    audit = AuditLogger(postgres)

    availability = AvailabilityStore(postgres)
    bookings = BookingStore(postgres)
    artists = ArtistStore(postgres)
    offers = OfferStore(postgres)
    requests = RequestStore(postgres)

    if notifier is not None and payments is not None:
        register_booking_handlers(event_bus, notifier, payments)

    return {
        "availability": AvailabilityService(postgres, availability, bookings, artists, audit, config),
        "reservation": ReservationService(
            postgres, bookings, availability, artists, offers, audit, event_bus, config
        ),
        "offer": OfferService(postgres, offers, requests, artists, audit, event_bus, config),
    }


def create_app(services: dict, resolve_actor: Callable[[Request], Actor | None] | None = None) -> FastAPI:
    """
    Build the HTTP adapter around already-wired services.

    Args:
        services: Output of build_services (or equivalents with the same keys)
        resolve_actor: How to find the authenticated actor on a request.
            Defaults to request.state.actor as set by the auth layer.
    """
    app = FastAPI(title="Inkbook booking engine")
    app.add_middleware(ActorContextMiddleware, resolve_actor=resolve_actor)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_availability_router(services), prefix="/api")
    app.include_router(create_bookings_router(services), prefix="/api")

    return app
