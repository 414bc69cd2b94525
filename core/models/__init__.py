"""Core domain models."""

from core.models.artist import Artist
from core.models.availability import (
    AvailabilityBlock, AvailabilityBlockCreate, AvailabilityBlockUpdate,
    BookableWindow, OpenSlot, WeeklyWindow, WeeklyScheduleCreate,
)
from core.models.booking import (
    Booking, BookingStatus, PaymentStatus, BookingContact, BookingPricing,
    DirectBookingRequest, OfferSelection, PendingBookingCreate,
    ReservationResult, StatusTransition,
    ALLOWED_TRANSITIONS, TERMINAL_STATUSES,
)
from core.models.offer import Offer, OfferCreate
from core.models.request import CustomerRequest, RequestStatus

__all__ = [
    # Artist
    "Artist",
    # Availability
    "AvailabilityBlock", "AvailabilityBlockCreate", "AvailabilityBlockUpdate",
    "BookableWindow", "OpenSlot", "WeeklyWindow", "WeeklyScheduleCreate",
    # Booking
    "Booking", "BookingStatus", "PaymentStatus", "BookingContact", "BookingPricing",
    "DirectBookingRequest", "OfferSelection", "PendingBookingCreate",
    "ReservationResult", "StatusTransition",
    "ALLOWED_TRANSITIONS", "TERMINAL_STATUSES",
    # Offer
    "Offer", "OfferCreate",
    # Request
    "CustomerRequest", "RequestStatus",
]
