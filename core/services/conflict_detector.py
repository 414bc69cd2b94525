"""
Conflict detection for candidate appointment windows.

A read-only predicate: it raises on conflict and returns nothing on success.
It never writes, so the caller must run it inside the same locked
transaction as the insert that depends on its answer.

Reservations whose hold has lapsed are treated as vacated here, at read time.
No sweep job is needed for correctness.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from clients.postgres_client import Transaction
from core.errors import OutsideAvailabilityError, SlotConflictError
from core.stores.availability_store import AvailabilityStore
from core.stores.booking_store import BookingStore
from utils.time_math import contains, overlaps

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Checks a candidate window against availability and existing bookings."""

    def __init__(self, availability: AvailabilityStore, bookings: BookingStore):
        self.availability = availability
        self.bookings = bookings

    def check(
        self,
        artist_id: UUID,
        start_at: datetime,
        duration_minutes: int,
        *,
        now: datetime,
        tx: Transaction | None = None,
        require_containment: bool = True,
        exclude_booking_id: UUID | None = None,
    ) -> None:
        """
        Verify the window [start_at, start_at + duration) is bookable.

        Args:
            artist_id: Artist whose calendar is checked
            start_at: Candidate start
            duration_minutes: Candidate length
            now: Instant used to decide whether reservations still hold
            tx: Transaction the caller will insert through
            require_containment: False for offer slots, which the artist
                picked explicitly and need not sit inside a block
            exclude_booking_id: Booking being re-checked against everyone else

        Raises:
            OutsideAvailabilityError: No block fully contains the window
            SlotConflictError: A holding booking overlaps the window
        """
        end_at = start_at + timedelta(minutes=duration_minutes)

        if require_containment:
            blocks = self.availability.list_containing(artist_id, start_at, end_at, tx=tx)
            if not any(contains(b.start_at, b.end_at, start_at, end_at) for b in blocks):
                logger.info(
                    f"Window {start_at.isoformat()} +{duration_minutes}m outside availability "
                    f"for artist {artist_id}"
                )
                raise OutsideAvailabilityError(
                    "Selected time is outside the artist's availability"
                )

        holding = self.bookings.list_holding_for_artist(
            artist_id, now, window_start=start_at, window_end=end_at, tx=tx
        )
        for booking in holding:
            if booking.id == exclude_booking_id:
                continue
            if not booking.holds_slot(now):
                continue
            if overlaps(booking.start_at, booking.end_at, start_at, end_at):
                logger.info(
                    f"Window {start_at.isoformat()} +{duration_minutes}m conflicts with "
                    f"booking {booking.id} for artist {artist_id}"
                )
                raise SlotConflictError(
                    "Selected time slot is no longer available",
                    conflicting_booking_id=booking.id,
                )
