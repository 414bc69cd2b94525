"""
Availability service: artist-declared working windows.

Blocks are explicit [start_at, end_at) windows. Weekly recurring hours are a
generation step that produces explicit blocks (generate_weekly_blocks).

Whether a block is "booked" is derived: a block is booked while any booking
that still holds its slot overlaps the block's window. Booked blocks can have
their note edited but cannot be moved or deleted.

Every mutation runs in one transaction holding the artist's advisory lock, so
the overlap check and the write cannot interleave with a concurrent request
for the same artist.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BookingConfig
from core.errors import (
    ArtistNotFoundError, BookedError, ForbiddenError, InvalidWindowError, NotFoundError,
    OverlapsExistingError,
)
from core.models import (
    Artist, AvailabilityBlock, AvailabilityBlockCreate, AvailabilityBlockUpdate,
    BookableWindow, Booking, OpenSlot, WeeklyScheduleCreate,
)
from core.services.permissions import require_artist_or_admin
from core.stores.artist_store import ArtistStore
from core.stores.availability_store import AvailabilityStore
from core.stores.booking_store import BookingStore
from utils.time_math import enumerate_slots, expand_weekly_windows, overlaps
from utils.timezone import now_utc, to_utc
from utils.user_context import Actor

logger = logging.getLogger(__name__)


def artist_lock_key(artist_id: UUID) -> str:
    """Advisory lock key serializing calendar writes for one artist."""
    return f"artist:{artist_id}"


def require_aware_utc(dt: datetime) -> datetime:
    """
    Normalize an incoming instant to UTC.

    Raises:
        InvalidWindowError: Naive datetime
    """
    if dt.tzinfo is None:
        raise InvalidWindowError("Datetimes must include a timezone offset")
    return to_utc(dt)


class AvailabilityService:
    """Service for availability block operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        availability: AvailabilityStore,
        bookings: BookingStore,
        artists: ArtistStore,
        audit: AuditLogger,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.postgres = postgres
        self.availability = availability
        self.bookings = bookings
        self.artists = artists
        self.audit = audit
        self.config = config or BookingConfig()
        self.clock = clock

    # -------------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------------

    def validate_window(self, start_at: datetime, end_at: datetime, now: datetime) -> None:
        """
        Raises:
            InvalidWindowError: Reversed/empty window, start in the past,
                or duration outside configured bounds
        """
        if start_at.tzinfo is None or end_at.tzinfo is None:
            raise InvalidWindowError("Start and end must be timezone-aware")

        if start_at >= end_at:
            raise InvalidWindowError("Start time must be before end time")

        if start_at < now:
            raise InvalidWindowError("Start time cannot be in the past")

        duration = end_at - start_at
        if duration < timedelta(minutes=self.config.min_block_minutes):
            raise InvalidWindowError(
                f"Availability block must be at least {self.config.min_block_minutes} minutes"
            )
        if duration > timedelta(minutes=self.config.max_block_minutes):
            raise InvalidWindowError(
                f"Availability block cannot exceed {self.config.max_block_minutes // 60} hours"
            )

    def _ensure_no_overlap(
        self,
        artist_id: UUID,
        start_at: datetime,
        end_at: datetime,
        tx: Transaction,
        exclude_id: UUID | None = None,
    ) -> None:
        existing = self.availability.list_overlapping(
            artist_id, start_at, end_at, exclude_id=exclude_id, tx=tx
        )
        for block in existing:
            if block.id != exclude_id and overlaps(block.start_at, block.end_at, start_at, end_at):
                raise OverlapsExistingError(
                    f"Availability block overlaps existing block {block.id}"
                )

    def _holding_bookings_in(
        self,
        block: AvailabilityBlock,
        now: datetime,
        tx: Transaction | None = None,
    ) -> list[Booking]:
        holding = self.bookings.list_holding_for_artist(
            block.artist_id, now, window_start=block.start_at, window_end=block.end_at, tx=tx
        )
        return [
            b for b in holding
            if b.holds_slot(now) and overlaps(b.start_at, b.end_at, block.start_at, block.end_at)
        ]

    def is_booked(self, block: AvailabilityBlock, tx: Transaction | None = None) -> bool:
        """Whether any booking still holding its slot overlaps the block."""
        return bool(self._holding_bookings_in(block, self.clock(), tx=tx))

    def artist_for_actor(self, actor: Actor, artist_id: UUID | None = None) -> UUID:
        """
        Which artist an actor is managing availability for.

        Artists act on their own profile; admins must name the artist.

        Raises:
            ForbiddenError: No artist profile for the actor and none named
        """
        if artist_id is not None:
            return artist_id

        artist = self.artists.get_by_user_id(actor.id)
        if artist is None:
            raise ForbiddenError("Only artists can manage availability")
        return artist.id

    def _get_artist(self, artist_id: UUID, tx: Transaction | None = None) -> Artist:
        artist = self.artists.get_by_id(artist_id, tx=tx)
        if artist is None:
            raise ArtistNotFoundError(f"Artist {artist_id} not found")
        return artist

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create_block(
        self,
        artist_id: UUID,
        data: AvailabilityBlockCreate,
        actor: Actor | None = None,
    ) -> AvailabilityBlock:
        """
        Declare a new availability block.

        Args:
            artist_id: Owning artist
            data: Window and note
            actor: If given, must own the artist profile or be admin

        Raises:
            ArtistNotFoundError, ForbiddenError, InvalidWindowError, OverlapsExistingError
        """
        start_at = require_aware_utc(data.start_at)
        end_at = require_aware_utc(data.end_at)
        now = self.clock()
        self.validate_window(start_at, end_at, now)

        def work(tx: Transaction) -> AvailabilityBlock:
            artist = self._get_artist(artist_id, tx=tx)
            if actor is not None:
                require_artist_or_admin(actor, artist)

            self._ensure_no_overlap(artist_id, start_at, end_at, tx)

            block = self.availability.insert(AvailabilityBlock(
                id=uuid4(),
                artist_id=artist_id,
                start_at=start_at,
                end_at=end_at,
                note=data.note,
                created_at=now,
                updated_at=now,
            ), tx=tx)

            self.audit.log_change(
                entity_type="availability_block",
                entity_id=block.id,
                action=AuditAction.CREATE,
                changes={"created": block.model_dump(mode="json")},
                tx=tx,
            )
            return block

        block = self.postgres.run_in_transaction(
            work, lock_key=artist_lock_key(artist_id), retries=self.config.transaction_retries
        )
        logger.info(f"Availability block {block.id} created for artist {artist_id}")
        return block

    def update_block(
        self,
        block_id: UUID,
        patch: AvailabilityBlockUpdate,
        actor: Actor | None = None,
    ) -> AvailabilityBlock:
        """
        Apply a patch to a block.

        Only fields present in the patch change. Moving the window is refused
        while the block is booked; editing the note is always allowed.

        Raises:
            NotFoundError, ForbiddenError, BookedError, InvalidWindowError,
            OverlapsExistingError
        """
        current = self.availability.get_by_id(block_id)
        if current is None:
            raise NotFoundError(f"Availability block {block_id} not found")

        changes = patch.changes()
        if not changes:
            return current

        def work(tx: Transaction) -> AvailabilityBlock:
            block = self.availability.get_by_id(block_id, tx=tx)
            if block is None:
                raise NotFoundError(f"Availability block {block_id} not found")

            artist = self._get_artist(block.artist_id, tx=tx)
            if actor is not None:
                require_artist_or_admin(actor, artist)

            if patch.changes_time:
                now = self.clock()
                if self._holding_bookings_in(block, now, tx=tx):
                    raise BookedError(
                        f"Availability block {block_id} has bookings and cannot be moved"
                    )

                new_start = require_aware_utc(changes.get("start_at", block.start_at))
                new_end = require_aware_utc(changes.get("end_at", block.end_at))
                self.validate_window(new_start, new_end, now)
                self._ensure_no_overlap(block.artist_id, new_start, new_end, tx, exclude_id=block_id)

                if "start_at" in changes:
                    changes["start_at"] = new_start
                if "end_at" in changes:
                    changes["end_at"] = new_end

            updated = self.availability.update_fields(block_id, changes, self.clock(), tx=tx)

            diff = compute_changes(block.model_dump(mode="json"), updated.model_dump(mode="json"))
            if diff:
                self.audit.log_change(
                    entity_type="availability_block",
                    entity_id=block_id,
                    action=AuditAction.UPDATE,
                    changes=diff,
                    tx=tx,
                )
            return updated

        return self.postgres.run_in_transaction(
            work, lock_key=artist_lock_key(current.artist_id), retries=self.config.transaction_retries
        )

    def delete_block(self, block_id: UUID, actor: Actor | None = None) -> None:
        """
        Remove a block that nobody has booked.

        Raises:
            NotFoundError, ForbiddenError, BookedError
        """
        current = self.availability.get_by_id(block_id)
        if current is None:
            raise NotFoundError(f"Availability block {block_id} not found")

        def work(tx: Transaction) -> None:
            block = self.availability.get_by_id(block_id, tx=tx)
            if block is None:
                raise NotFoundError(f"Availability block {block_id} not found")

            artist = self._get_artist(block.artist_id, tx=tx)
            if actor is not None:
                require_artist_or_admin(actor, artist)

            if self._holding_bookings_in(block, self.clock(), tx=tx):
                raise BookedError(f"Cannot delete booked availability block {block_id}")

            self.availability.delete(block_id, tx=tx)
            self.audit.log_change(
                entity_type="availability_block",
                entity_id=block_id,
                action=AuditAction.DELETE,
                changes={"deleted": block.model_dump(mode="json")},
                tx=tx,
            )

        self.postgres.run_in_transaction(
            work, lock_key=artist_lock_key(current.artist_id), retries=self.config.transaction_retries
        )
        logger.info(f"Availability block {block_id} deleted")

    def generate_weekly_blocks(
        self,
        artist_id: UUID,
        schedule: WeeklyScheduleCreate,
        actor: Actor | None = None,
    ) -> list[AvailabilityBlock]:
        """
        Expand weekly hours into explicit blocks over a date range.

        All or nothing: if any generated window is invalid or overlaps an
        existing block (or another generated one), nothing is created.
        Windows that already started are skipped.
        """
        now = self.clock()
        windows = [
            w for w in expand_weekly_windows(
                schedule.windows, schedule.start_date, schedule.days, schedule.timezone
            )
            if w.start_at >= now
        ]

        for window in windows:
            self.validate_window(window.start_at, window.end_at, now)

        for earlier, later in zip(windows, windows[1:]):
            if overlaps(earlier.start_at, earlier.end_at, later.start_at, later.end_at):
                raise OverlapsExistingError("Weekly windows overlap each other")

        def work(tx: Transaction) -> list[AvailabilityBlock]:
            artist = self._get_artist(artist_id, tx=tx)
            if actor is not None:
                require_artist_or_admin(actor, artist)

            created = []
            for window in windows:
                self._ensure_no_overlap(artist_id, window.start_at, window.end_at, tx)
                block = self.availability.insert(AvailabilityBlock(
                    id=uuid4(),
                    artist_id=artist_id,
                    start_at=window.start_at,
                    end_at=window.end_at,
                    note=window.note,
                    created_at=now,
                    updated_at=now,
                ), tx=tx)
                self.audit.log_change(
                    entity_type="availability_block",
                    entity_id=block.id,
                    action=AuditAction.CREATE,
                    changes={"created": block.model_dump(mode="json")},
                    tx=tx,
                )
                created.append(block)
            return created

        created = self.postgres.run_in_transaction(
            work, lock_key=artist_lock_key(artist_id), retries=self.config.transaction_retries
        )
        logger.info(f"Generated {len(created)} availability blocks for artist {artist_id}")
        return created

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_future_unbooked_blocks(self, artist_id: UUID | None = None) -> list[BookableWindow]:
        """
        Public availability: future blocks nobody has booked into.

        A block with any holding booking inside it is left out, even if part of
        it is still free; list_open_slots() reports the bookable remainder.

        Args:
            artist_id: Restrict to one artist; None returns every approved artist

        Returns:
            Windows ordered by start
        """
        now = self.clock()
        blocks = self.availability.list_future(now, artist_id=artist_id)

        holding_by_artist: dict[UUID, list[Booking]] = {}
        result = []
        for block in blocks:
            if block.artist_id not in holding_by_artist:
                holding_by_artist[block.artist_id] = [
                    b for b in self.bookings.list_holding_for_artist(block.artist_id, now)
                    if b.holds_slot(now)
                ]

            taken = any(
                overlaps(b.start_at, b.end_at, block.start_at, block.end_at)
                for b in holding_by_artist[block.artist_id]
            )
            if not taken:
                result.append(BookableWindow(
                    id=block.id,
                    artist_id=block.artist_id,
                    start_at=block.start_at,
                    end_at=block.end_at,
                    note=block.note,
                ))

        return result

    def list_open_slots(
        self,
        artist_id: UUID,
        duration_minutes: int,
        step_minutes: int | None = None,
    ) -> list[OpenSlot]:
        """
        Concrete appointment slots of the given length nobody holds yet.

        Candidate starts advance by step_minutes (default from config), so a
        2-hour appointment can be offered every 30 minutes.
        """
        if duration_minutes <= 0:
            raise InvalidWindowError("Duration must be positive")

        now = self.clock()
        step = timedelta(minutes=step_minutes or self.config.slot_step_minutes)
        duration = timedelta(minutes=duration_minutes)

        holding = [
            b for b in self.bookings.list_holding_for_artist(artist_id, now)
            if b.holds_slot(now)
        ]

        slots = []
        for block in self.availability.list_future(now, artist_id=artist_id):
            for slot_start, slot_end in enumerate_slots(block.start_at, block.end_at, duration, step):
                if slot_start <= now:
                    continue
                if any(overlaps(b.start_at, b.end_at, slot_start, slot_end) for b in holding):
                    continue
                slots.append(OpenSlot(block_id=block.id, start_at=slot_start, end_at=slot_end))

        return slots
