"""
Reservation manager: the booking lifecycle.

Reservation flow (customer picks a slot):
    reserved -> confirmed -> completed
    reserved | confirmed -> cancelled

Simple flow (authenticated customer request, artist decides):
    pending -> confirmed | cancelled
    confirmed -> completed | cancelled

A reserved booking whose hold lapsed is treated as cancelled everywhere
without any row change; expire_stale_reservations() only tidies the rows.

Every check-then-write runs through PostgresClient.run_in_transaction() with
the artist's advisory lock held, so two requests for the same artist are
checked and written one after the other. Events are published after commit.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BookingConfig
from core.errors import (
    ArtistNotApprovedError, ArtistNotFoundError, DuplicateIdempotencyKeyError, ExpiredError,
    ForbiddenError, InvalidFormatError, InvalidTransitionError, InvalidWindowError,
    NotFoundError, OfferAlreadyAcceptedError, OfferExpiredError, OfferNotFoundError,
    SlotNotInOfferError, WrongStateError,
)
from core.event_bus import EventBus
from core.events import (
    BookingCancelled, BookingCompleted, BookingConfirmed, BookingEvent, BookingRequested,
    BookingReserved,
)
from core.models import (
    ALLOWED_TRANSITIONS, Artist, Booking, BookingContact, BookingPricing, BookingStatus,
    DirectBookingRequest, Offer, OfferSelection, PaymentStatus, PendingBookingCreate,
    ReservationResult,
)
from core.services.availability_service import artist_lock_key, require_aware_utc
from core.services.conflict_detector import ConflictDetector
from core.services.permissions import (
    can_view_booking, is_booking_customer, owns_artist, require_artist_or_admin,
)
from core.stores.artist_store import ArtistStore
from core.stores.availability_store import AvailabilityStore
from core.stores.booking_store import BookingStore
from core.stores.offer_store import OfferStore
from utils.timezone import now_utc, parse_iso
from utils.user_context import Actor, ActorRole

logger = logging.getLogger(__name__)

_CANCELLABLE = frozenset({BookingStatus.PENDING, BookingStatus.RESERVED, BookingStatus.CONFIRMED})

_TRANSITION_EVENTS: dict[BookingStatus, type[BookingEvent]] = {
    BookingStatus.CONFIRMED: BookingConfirmed,
    BookingStatus.COMPLETED: BookingCompleted,
    BookingStatus.CANCELLED: BookingCancelled,
}


def _customer_id(actor: Actor | None) -> UUID | None:
    """Owner of a new reservation: the signed-in customer, never a client-supplied id."""
    if actor is not None and actor.role == ActorRole.CUSTOMER:
        return actor.id
    return None


class ReservationService:
    """Service for reservations, appointments and their status changes."""

    def __init__(
        self,
        postgres: PostgresClient,
        bookings: BookingStore,
        availability: AvailabilityStore,
        artists: ArtistStore,
        offers: OfferStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.postgres = postgres
        self.bookings = bookings
        self.availability = availability
        self.artists = artists
        self.offers = offers
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BookingConfig()
        self.clock = clock
        self.detector = ConflictDetector(availability, bookings)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _run(self, work: Callable[[Transaction], object], artist_id: UUID | None):
        lock_key = artist_lock_key(artist_id) if artist_id is not None else None
        return self.postgres.run_in_transaction(
            work, lock_key=lock_key, retries=self.config.transaction_retries
        )

    def _get_booking(self, booking_id: UUID, tx: Transaction | None = None) -> Booking:
        booking = self.bookings.get_by_id(booking_id, tx=tx, for_update=tx is not None)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _get_bookable_artist(self, artist_id: UUID, tx: Transaction | None = None) -> Artist:
        artist = self.artists.get_by_id(artist_id, tx=tx)
        if artist is None:
            raise ArtistNotFoundError(f"Artist {artist_id} not found")
        if not artist.approved:
            raise ArtistNotApprovedError(f"Artist {artist_id} is not accepting bookings")
        return artist

    def _validate_appointment(self, start_at: datetime, duration_minutes: int, now: datetime) -> None:
        """
        Raises:
            InvalidWindowError: Duration out of bounds or start not in the future
        """
        if not self.config.min_booking_minutes <= duration_minutes <= self.config.max_booking_minutes:
            raise InvalidWindowError(
                f"Duration must be between {self.config.min_booking_minutes} and "
                f"{self.config.max_booking_minutes} minutes"
            )
        if start_at <= now:
            raise InvalidWindowError("Appointment must start in the future")

    def _publish(self, event: BookingEvent) -> None:
        self.event_bus.publish(event)

    def _audit_update(self, before: Booking, after: Booking, tx: Transaction) -> None:
        diff = compute_changes(before.model_dump(mode="json"), after.model_dump(mode="json"))
        if diff:
            self.audit.log_change(
                entity_type="booking",
                entity_id=after.id,
                action=AuditAction.UPDATE,
                changes=diff,
                tx=tx,
            )

    def _replay(self, idempotency_key: str) -> ReservationResult | None:
        existing = self.bookings.get_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        logger.info(f"Idempotent replay of key {idempotency_key!r} -> booking {existing.id}")
        return ReservationResult(booking=existing, idempotent=True)

    # -------------------------------------------------------------------------
    # Reservation flow
    # -------------------------------------------------------------------------

    def create_reservation(
        self,
        artist_id: UUID,
        start_at: datetime,
        duration_minutes: int,
        contact: BookingContact,
        pricing: BookingPricing,
        idempotency_key: str,
        notes: str | None = None,
        customer_id: UUID | None = None,
    ) -> ReservationResult:
        """
        Hold a slot inside the artist's availability.

        Args:
            artist_id: Artist being booked
            start_at: Appointment start (timezone-aware)
            duration_minutes: Appointment length
            contact: Who the appointment is for
            pricing: Quoted and deposit amounts
            idempotency_key: Client-generated key; a repeat returns the first result
            customer_id: Authenticated customer who owns the booking, None if anonymous

        Returns:
            ReservationResult; idempotent=True when the key was seen before

        Raises:
            ArtistNotFoundError, ArtistNotApprovedError, InvalidWindowError,
            OutsideAvailabilityError, SlotConflictError, TransactionConflictError
        """
        return self._reserve(
            artist_id=artist_id,
            start_at=start_at,
            duration_minutes=duration_minutes,
            contact=contact,
            pricing=pricing,
            idempotency_key=idempotency_key,
            notes=notes,
            customer_id=customer_id,
        )

    def book_direct(
        self,
        artist_id: UUID,
        request: DirectBookingRequest,
        actor: Actor | None = None,
    ) -> ReservationResult:
        """
        Reserve a slot straight from the artist's calendar.

        Priced at the artist's hourly rate (or the configured default) with
        the default deposit share. A signed-in customer becomes the owner.
        """
        replay = self._replay(request.idempotency_key)
        if replay is not None:
            return replay

        artist = self._get_bookable_artist(artist_id)
        rate = artist.hourly_rate_cents
        if rate is None:
            rate = self.config.default_hourly_rate_cents

        pricing = BookingPricing.from_hourly_rate(
            rate, request.duration_minutes, self.config.default_deposit_percent
        )
        return self.create_reservation(
            artist_id=artist_id,
            start_at=request.start_at,
            duration_minutes=request.duration_minutes,
            contact=request.contact,
            pricing=pricing,
            idempotency_key=request.idempotency_key,
            notes=request.notes,
            customer_id=_customer_id(actor),
        )

    def select_offer_slot(
        self,
        offer_id: UUID,
        selection: OfferSelection,
        actor: Actor | None = None,
    ) -> ReservationResult:
        """
        Accept one candidate slot of an artist's offer.

        The artist picked the slots explicitly, so they need not lie inside an
        availability block; they must still be free.

        Raises:
            OfferNotFoundError, OfferExpiredError, OfferAlreadyAcceptedError,
            InvalidFormatError, SlotNotInOfferError, SlotConflictError
        """
        replay = self._replay(selection.idempotency_key)
        if replay is not None:
            return replay

        offer = self.offers.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFoundError(f"Offer {offer_id} not found")

        if offer.is_expired(self.clock()):
            raise OfferExpiredError(f"Offer {offer_id} has expired")

        try:
            chosen = parse_iso(selection.slot)
        except ValueError as e:
            raise InvalidFormatError(f"Slot {selection.slot!r} is not a valid ISO datetime: {e}")

        if not offer.offers_slot(chosen):
            raise SlotNotInOfferError("Selected slot is not one of the offered times")

        return self._reserve(
            artist_id=offer.artist_id,
            start_at=chosen,
            duration_minutes=offer.duration_minutes,
            contact=selection.contact,
            pricing=BookingPricing.from_quote(offer.quoted_amount_cents, offer.deposit_percent),
            idempotency_key=selection.idempotency_key,
            offer=offer,
            customer_id=_customer_id(actor),
        )

    def _reserve(
        self,
        artist_id: UUID,
        start_at: datetime,
        duration_minutes: int,
        contact: BookingContact,
        pricing: BookingPricing,
        idempotency_key: str,
        notes: str | None = None,
        offer: Offer | None = None,
        customer_id: UUID | None = None,
    ) -> ReservationResult:
        replay = self._replay(idempotency_key)
        if replay is not None:
            return replay

        start_at = require_aware_utc(start_at)

        def work(tx: Transaction) -> ReservationResult:
            existing = self.bookings.get_by_idempotency_key(idempotency_key, tx=tx)
            if existing is not None:
                return ReservationResult(booking=existing, idempotent=True)

            now = self.clock()
            self._get_bookable_artist(artist_id, tx=tx)
            self._validate_appointment(start_at, duration_minutes, now)

            if offer is not None and self.bookings.has_holding_for_offer(offer.id, now, tx=tx):
                raise OfferAlreadyAcceptedError(f"Offer {offer.id} has already been accepted")

            self.detector.check(
                artist_id,
                start_at,
                duration_minutes,
                now=now,
                tx=tx,
                require_containment=offer is None,
            )

            booking = self.bookings.insert(Booking(
                id=uuid4(),
                artist_id=artist_id,
                customer_id=customer_id,
                customer_name=contact.name,
                customer_phone=contact.phone,
                customer_email=contact.email,
                start_at=start_at,
                duration_minutes=duration_minutes,
                quoted_amount_cents=pricing.quoted_amount_cents,
                deposit_amount_cents=pricing.deposit_amount_cents,
                status=BookingStatus.RESERVED,
                payment_status=PaymentStatus.UNPAID,
                reservation_expires_at=now + timedelta(minutes=self.config.reservation_hold_minutes),
                idempotency_key=idempotency_key,
                offer_id=offer.id if offer is not None else None,
                request_id=offer.request_id if offer is not None else None,
                notes=notes,
                created_at=now,
                updated_at=now,
            ), tx=tx)

            self.audit.log_change(
                entity_type="booking",
                entity_id=booking.id,
                action=AuditAction.CREATE,
                changes={"created": booking.model_dump(mode="json")},
                tx=tx,
            )
            return ReservationResult(booking=booking)

        try:
            result = self._run(work, artist_id)
        except DuplicateIdempotencyKeyError:
            winner = self.bookings.get_by_idempotency_key(idempotency_key)
            if winner is None:
                raise
            logger.info(f"Lost idempotency race on key {idempotency_key!r}; returning booking {winner.id}")
            return ReservationResult(booking=winner, idempotent=True)

        if not result.idempotent:
            booking = result.booking
            logger.info(
                f"Reserved booking {booking.id} for artist {artist_id} at "
                f"{booking.start_at.isoformat()} until {booking.reservation_expires_at.isoformat()}"
            )
            self._publish(BookingReserved.create(booking))
        return result

    def confirm_reservation(self, booking_id: UUID, actor: Actor) -> Booking:
        """
        Artist (or admin) turns a live reservation into an appointment.

        Raises:
            NotFoundError, ForbiddenError, WrongStateError, ExpiredError
        """
        current = self._get_booking(booking_id)

        def work(tx: Transaction) -> Booking:
            booking = self._get_booking(booking_id, tx=tx)
            artist = self.artists.get_by_id(booking.artist_id, tx=tx)
            if artist is None:
                raise ArtistNotFoundError(f"Artist {booking.artist_id} not found")
            require_artist_or_admin(actor, artist)

            if booking.status != BookingStatus.RESERVED:
                raise WrongStateError(f"Only reserved bookings can be confirmed (status: {booking.status.value})")
            if booking.is_hold_expired(self.clock()):
                raise ExpiredError("Reservation has expired. Please create a new reservation.")

            updated = self.bookings.update_fields(
                booking_id,
                {"status": BookingStatus.CONFIRMED, "reservation_expires_at": None},
                self.clock(),
                tx=tx,
            )
            self._audit_update(booking, updated, tx)
            return updated

        booking = self._run(work, current.artist_id)
        logger.info(f"Booking {booking_id} confirmed")
        self._publish(BookingConfirmed.create(booking))
        return booking

    def record_deposit_payment(self, booking_id: UUID) -> Booking:
        """
        Mark the deposit as paid. Called by the external payment flow.

        A live reservation becomes confirmed; pending and confirmed bookings
        only get the payment flag.

        Raises:
            NotFoundError, ExpiredError, WrongStateError
        """
        current = self._get_booking(booking_id)

        def work(tx: Transaction) -> tuple[Booking, bool]:
            booking = self._get_booking(booking_id, tx=tx)
            now = self.clock()

            if booking.is_terminal:
                raise WrongStateError(f"Booking {booking_id} is {booking.status.value}")
            if booking.is_hold_expired(now):
                raise ExpiredError("Reservation has expired. Please create a new reservation.")

            fields: dict = {"payment_status": PaymentStatus.PAID}
            confirms = booking.status == BookingStatus.RESERVED
            if confirms:
                fields["status"] = BookingStatus.CONFIRMED
                fields["reservation_expires_at"] = None

            updated = self.bookings.update_fields(booking_id, fields, now, tx=tx)
            self._audit_update(booking, updated, tx)
            return updated, confirms

        booking, confirmed = self._run(work, current.artist_id)
        logger.info(f"Deposit recorded for booking {booking_id}")
        if confirmed:
            self._publish(BookingConfirmed.create(booking))
        return booking

    def cancel_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """
        Cancel a booking that has not happened yet.

        Allowed for the owning artist, the booking's customer, or an admin.

        Raises:
            NotFoundError, ForbiddenError, WrongStateError
        """
        current = self._get_booking(booking_id)

        def work(tx: Transaction) -> Booking:
            booking = self._get_booking(booking_id, tx=tx)
            artist = self.artists.get_by_id(booking.artist_id, tx=tx)
            allowed = (
                actor.is_admin
                or is_booking_customer(actor, booking)
                or (artist is not None and owns_artist(actor, artist))
            )
            if not allowed:
                raise ForbiddenError("Not allowed to cancel this booking")

            if booking.status not in _CANCELLABLE:
                raise WrongStateError(f"Cannot cancel a {booking.status.value} booking")

            updated = self.bookings.update_status(booking_id, BookingStatus.CANCELLED, self.clock(), tx=tx)
            self._audit_update(booking, updated, tx)
            return updated

        booking = self._run(work, current.artist_id)
        logger.info(f"Booking {booking_id} cancelled by {actor.role.value} {actor.id}")
        self._publish(BookingCancelled.create(booking))
        return booking

    # -------------------------------------------------------------------------
    # Simple flow
    # -------------------------------------------------------------------------

    def create_pending_booking(self, data: PendingBookingCreate, actor: Actor) -> Booking:
        """
        Authenticated customer requests an appointment for the artist to accept.

        Raises:
            ForbiddenError, ArtistNotFoundError, ArtistNotApprovedError,
            InvalidWindowError, OutsideAvailabilityError, SlotConflictError
        """
        if actor.role != ActorRole.CUSTOMER:
            raise ForbiddenError("Only customers can create bookings")

        start_at = require_aware_utc(data.start_at)

        def work(tx: Transaction) -> Booking:
            now = self.clock()
            self._get_bookable_artist(data.artist_id, tx=tx)
            self._validate_appointment(start_at, data.duration_minutes, now)
            self.detector.check(data.artist_id, start_at, data.duration_minutes, now=now, tx=tx)

            booking = self.bookings.insert(Booking(
                id=uuid4(),
                artist_id=data.artist_id,
                customer_id=actor.id,
                customer_name=None,
                customer_phone=None,
                start_at=start_at,
                duration_minutes=data.duration_minutes,
                quoted_amount_cents=None,
                deposit_amount_cents=data.deposit_amount_cents,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                reservation_expires_at=None,
                idempotency_key=None,
                notes=data.notes,
                created_at=now,
                updated_at=now,
            ), tx=tx)

            self.audit.log_change(
                entity_type="booking",
                entity_id=booking.id,
                action=AuditAction.CREATE,
                changes={"created": booking.model_dump(mode="json")},
                user_id=actor.id,
                tx=tx,
            )
            return booking

        booking = self._run(work, data.artist_id)
        logger.info(f"Pending booking {booking.id} requested by customer {actor.id}")
        self._publish(BookingRequested.create(booking))
        return booking

    def transition_status(
        self,
        booking_id: UUID,
        new_status: BookingStatus,
        actor: Actor | None = None,
        notes: str | None = None,
    ) -> Booking:
        """
        Move a booking along the lifecycle table.

        Confirming a pending booking re-checks that no other holding booking
        took the window in the meantime.

        Raises:
            NotFoundError, ForbiddenError, InvalidTransitionError, SlotConflictError
        """
        current = self._get_booking(booking_id)

        def work(tx: Transaction) -> Booking:
            booking = self._get_booking(booking_id, tx=tx)

            if actor is not None:
                artist = self.artists.get_by_id(booking.artist_id, tx=tx)
                if artist is None:
                    raise ArtistNotFoundError(f"Artist {booking.artist_id} not found")
                require_artist_or_admin(actor, artist)

            if new_status not in ALLOWED_TRANSITIONS[booking.status]:
                raise InvalidTransitionError(booking.status.value, new_status.value)

            now = self.clock()
            if booking.status == BookingStatus.PENDING and new_status == BookingStatus.CONFIRMED:
                self.detector.check(
                    booking.artist_id,
                    booking.start_at,
                    booking.duration_minutes,
                    now=now,
                    tx=tx,
                    require_containment=False,
                    exclude_booking_id=booking.id,
                )

            fields: dict = {"status": new_status}
            if notes is not None:
                fields["notes"] = notes

            updated = self.bookings.update_fields(booking_id, fields, now, tx=tx)
            self._audit_update(booking, updated, tx)
            return updated

        booking = self._run(work, current.artist_id)
        logger.info(f"Booking {booking_id} moved {current.status.value} -> {new_status.value}")
        self._publish(_TRANSITION_EVENTS[new_status].create(booking))
        return booking

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """
        Raises:
            NotFoundError, ForbiddenError
        """
        booking = self._get_booking(booking_id)
        artist = self.artists.get_by_id(booking.artist_id)
        if not can_view_booking(actor, booking, artist):
            raise ForbiddenError("Not allowed to view this booking")
        return booking

    def list_for_artist(
        self,
        artist_id: UUID,
        actor: Actor,
        status: BookingStatus | None = None,
    ) -> list[Booking]:
        artist = self.artists.get_by_id(artist_id)
        if artist is None:
            raise ArtistNotFoundError(f"Artist {artist_id} not found")
        require_artist_or_admin(actor, artist)
        return self.bookings.list_for_artist(artist_id, status=status)

    def list_for_customer(self, customer_id: UUID, actor: Actor) -> list[Booking]:
        if not (actor.is_admin or (actor.role == ActorRole.CUSTOMER and actor.id == customer_id)):
            raise ForbiddenError("Not allowed to list these bookings")
        return self.bookings.list_for_customer(customer_id)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def expire_stale_reservations(self) -> list[Booking]:
        """
        Flip lapsed reservations to cancelled.

        Bookkeeping only; lapsed holds are already ignored at read time.
        """
        def work(tx: Transaction) -> list[Booking]:
            expired = self.bookings.cancel_expired_reservations(self.clock(), tx=tx)
            for booking in expired:
                self.audit.log_change(
                    entity_type="booking",
                    entity_id=booking.id,
                    action=AuditAction.UPDATE,
                    changes={"status": {"old": BookingStatus.RESERVED.value, "new": BookingStatus.CANCELLED.value}},
                    tx=tx,
                )
            return expired

        expired = self._run(work, None)
        if expired:
            logger.info(f"Expired {len(expired)} stale reservations")
        for booking in expired:
            self._publish(BookingCancelled.create(booking))
        return expired
