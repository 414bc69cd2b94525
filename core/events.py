"""
Domain events for the booking engine.

Published after a state change has committed. Handlers invoke the external
collaborators (payment, email/SMS) without the services knowing who listens.

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BookingEngineEvent:
    """Base class for all booking engine events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# BOOKING EVENTS
# =============================================================================


@dataclass(frozen=True)
class BookingEvent(BookingEngineEvent):
    """Events related to booking lifecycle."""
    booking: Any = None  # Booking; Any avoids a models import cycle


@dataclass(frozen=True)
class BookingReserved(BookingEvent):
    """A slot is now held by a new reservation."""

    @classmethod
    def create(cls, booking: Any) -> "BookingReserved":
        return cls(booking=booking)


@dataclass(frozen=True)
class BookingRequested(BookingEvent):
    """A customer created a pending booking through the simple flow."""

    @classmethod
    def create(cls, booking: Any) -> "BookingRequested":
        return cls(booking=booking)


@dataclass(frozen=True)
class BookingConfirmed(BookingEvent):
    """A booking became a confirmed appointment."""

    @classmethod
    def create(cls, booking: Any) -> "BookingConfirmed":
        return cls(booking=booking)


@dataclass(frozen=True)
class BookingCompleted(BookingEvent):
    """The appointment took place."""

    @classmethod
    def create(cls, booking: Any) -> "BookingCompleted":
        return cls(booking=booking)


@dataclass(frozen=True)
class BookingCancelled(BookingEvent):
    """A booking was cancelled explicitly or swept after its hold lapsed."""

    @classmethod
    def create(cls, booking: Any) -> "BookingCancelled":
        return cls(booking=booking)


# =============================================================================
# OFFER EVENTS
# =============================================================================


@dataclass(frozen=True)
class OfferCreated(BookingEngineEvent):
    """An artist sent a quote with candidate slots in answer to a request."""
    offer: Any = None
    request: Any = None

    @classmethod
    def create(cls, offer: Any, request: Any = None) -> "OfferCreated":
        return cls(offer=offer, request=request)
