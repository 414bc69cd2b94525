"""Typed exceptions for booking engine failures.

Every failure is scoped to the single request that caused it. The class tells
the caller what to do next:

- ValidationError: caller mistake, fix the input, never retried.
- ConflictError: expected and frequent, offer the customer a different slot.
- StateError: caller saw stale state, re-fetch before retrying.
- TransactionConflictError: storage-level, safe to retry.
"""

from uuid import UUID


class BookingEngineError(Exception):
    """Base class for all booking engine errors."""

    code = "BOOKING_ERROR"


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(BookingEngineError):
    """Malformed input."""

    code = "INVALID_REQUEST"


class InvalidFormatError(ValidationError):
    """A time-of-day or datetime string could not be parsed."""

    code = "INVALID_FORMAT"


class InvalidWindowError(ValidationError):
    """Window is empty, reversed, too short, too long, or in the past."""

    code = "INVALID_WINDOW"


class SlotNotInOfferError(ValidationError):
    """Chosen slot is not one of the offer's candidate slots."""

    code = "SLOT_NOT_IN_OFFER"


# =============================================================================
# CONFLICTS
# =============================================================================


class ConflictError(BookingEngineError):
    """Requested window collides with the artist's calendar."""

    code = "CONFLICT"


class OutsideAvailabilityError(ConflictError):
    """Candidate window is not contained in any availability block."""

    code = "OUTSIDE_AVAILABILITY"


class SlotConflictError(ConflictError):
    """Candidate window overlaps a booking that still holds its slot."""

    code = "SLOT_CONFLICT"

    def __init__(self, message: str, conflicting_booking_id: UUID | None = None):
        self.conflicting_booking_id = conflicting_booking_id
        super().__init__(message)


class OverlapsExistingError(ConflictError):
    """Availability block overlaps another block of the same artist."""

    code = "OVERLAPS_EXISTING"


# =============================================================================
# STATE
# =============================================================================


class StateError(BookingEngineError):
    """Entity is not in a state that permits the operation."""

    code = "INVALID_STATE"


class WrongStateError(StateError):
    """Booking status does not allow this operation."""

    code = "WRONG_STATE"


class ExpiredError(StateError):
    """Reservation hold lapsed. Create a fresh reservation instead."""

    code = "RESERVATION_EXPIRED"


class BookedError(StateError):
    """Availability block has bookings inside it and cannot be moved or removed."""

    code = "BLOCK_BOOKED"


class InvalidTransitionError(StateError):
    """Status change not allowed by the booking lifecycle."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid status transition from {current} to {requested}")


class RequestAlreadyOfferedError(StateError):
    """The customer request already has an offer."""

    code = "REQUEST_ALREADY_OFFERED"


class OfferExpiredError(StateError):
    """Offer can no longer be accepted."""

    code = "OFFER_EXPIRED"


class OfferAlreadyAcceptedError(OfferExpiredError):
    """Offer was consumed by an earlier slot selection."""

    code = "OFFER_ALREADY_ACCEPTED"


# =============================================================================
# PERMISSIONS
# =============================================================================


class ForbiddenError(BookingEngineError):
    """Actor is not allowed to act on this entity."""

    code = "FORBIDDEN"


class ArtistNotApprovedError(ForbiddenError):
    """Artist exists but has not been approved to take bookings."""

    code = "ARTIST_NOT_APPROVED"


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(BookingEngineError):
    """Entity does not exist."""

    code = "NOT_FOUND"


class ArtistNotFoundError(NotFoundError):
    code = "ARTIST_NOT_FOUND"


class OfferNotFoundError(NotFoundError):
    code = "OFFER_NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    code = "REQUEST_NOT_FOUND"


# =============================================================================
# STORAGE
# =============================================================================


class TransactionConflictError(BookingEngineError):
    """
    Storage engine aborted the transaction (serialization failure or deadlock).

    The only error class eligible for automatic retry.
    """

    code = "TRANSACTION_CONFLICT"


class DuplicateIdempotencyKeyError(BookingEngineError):
    """Insert lost a race on the unique idempotency key index."""

    code = "DUPLICATE_IDEMPOTENCY_KEY"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Booking with idempotency key '{idempotency_key}' already exists")
