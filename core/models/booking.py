"""Booking (reservation/appointment) domain models."""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    PENDING = "pending"
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Deposit payment status, set by the external payment flow."""

    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Statuses that occupy the calendar regardless of time. RESERVED also holds
# its slot, but only until reservation_expires_at.
FIRM_HOLDING_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
})

# Generic transition table for the non-reservation flow.
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.RESERVED: frozenset(),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class BookingContact(BaseModel):
    """Who the appointment is for, as typed by the client.

    Carries no customer id: ownership comes from the authenticated actor.
    """

    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=50)
    email: str | None = Field(None, max_length=320)


class BookingPricing(BaseModel):
    """Quoted price and deposit, in cents."""

    quoted_amount_cents: int = Field(..., ge=0)
    deposit_amount_cents: int = Field(..., ge=0)

    @classmethod
    def from_quote(cls, quoted_amount_cents: int, deposit_percent: int) -> "BookingPricing":
        return cls(
            quoted_amount_cents=quoted_amount_cents,
            deposit_amount_cents=round(quoted_amount_cents * deposit_percent / 100),
        )

    @classmethod
    def from_hourly_rate(
        cls, hourly_rate_cents: int, duration_minutes: int, deposit_percent: int
    ) -> "BookingPricing":
        quoted = round(hourly_rate_cents * duration_minutes / 60)
        return cls.from_quote(quoted, deposit_percent)


class DirectBookingRequest(BaseModel):
    """Customer picking a slot straight from an artist's calendar."""

    start_at: datetime
    duration_minutes: int = Field(..., ge=1)
    contact: BookingContact
    idempotency_key: str = Field(..., min_length=1, max_length=200)
    notes: str | None = Field(None, max_length=1000)


class OfferSelection(BaseModel):
    """Customer accepting one slot of an offer."""

    slot: str = Field(..., description="ISO datetime, one of the offer's slots")
    contact: BookingContact
    idempotency_key: str = Field(..., min_length=1, max_length=200)


class PendingBookingCreate(BaseModel):
    """Authenticated customer booking through the simple (non-reservation) flow."""

    artist_id: UUID
    start_at: datetime
    duration_minutes: int = Field(60, ge=1)
    notes: str | None = Field(None, max_length=1000)
    deposit_amount_cents: int | None = Field(None, ge=0, le=100000)


class Booking(BaseModel):
    """Full booking entity as stored."""

    id: UUID
    artist_id: UUID
    customer_id: UUID | None
    customer_name: str | None
    customer_phone: str | None
    customer_email: str | None = None
    start_at: datetime
    duration_minutes: int
    quoted_amount_cents: int | None
    deposit_amount_cents: int | None
    status: BookingStatus
    payment_status: PaymentStatus
    reservation_expires_at: datetime | None
    idempotency_key: str | None
    offer_id: UUID | None = None
    request_id: UUID | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_hold_expired(self, now: datetime) -> bool:
        """Whether a reservation's hold has lapsed. False for every other status."""
        return (
            self.status == BookingStatus.RESERVED
            and self.reservation_expires_at is not None
            and now >= self.reservation_expires_at
        )

    def holds_slot(self, now: datetime) -> bool:
        """Whether this booking still occupies its window on the artist's calendar."""
        if self.status in FIRM_HOLDING_STATUSES:
            return True
        if self.status == BookingStatus.RESERVED:
            return self.reservation_expires_at is not None and self.reservation_expires_at > now
        return False


class ReservationResult(BaseModel):
    """Outcome of a reservation request. idempotent=True means a replayed submit."""

    booking: Booking
    idempotent: bool = False


class StatusTransition(BaseModel):
    """Request to move a booking through the generic lifecycle table."""

    status: BookingStatus
    notes: str | None = Field(None, max_length=1000)
