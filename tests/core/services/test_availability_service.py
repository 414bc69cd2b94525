"""Tests for AvailabilityService - block CRUD, derived booked state, public reads."""

from datetime import timedelta
from uuid import uuid4

import pytest

from core.audit import AuditAction
from core.errors import (
    ArtistNotFoundError, BookedError, ForbiddenError, InvalidWindowError, NotFoundError,
    OverlapsExistingError,
)
from core.models import (
    AvailabilityBlockCreate, AvailabilityBlockUpdate, Booking, BookingStatus, PaymentStatus,
    WeeklyScheduleCreate, WeeklyWindow,
)
from tests.fakes import ARTIST_ID, OTHER_ARTIST_ID, UNAPPROVED_ARTIST_ID


def _window(clock, days=1, hour=1, hours=4):
    start = clock.now + timedelta(days=days, hours=hour)
    return AvailabilityBlockCreate(start_at=start, end_at=start + timedelta(hours=hours))


@pytest.fixture
def hold(booking_store, clock):
    """Insert a booking of the given status over [start, start + minutes)."""
    def _hold(start_at, minutes=60, status=BookingStatus.CONFIRMED, artist_id=ARTIST_ID):
        return booking_store.insert(Booking(
            id=uuid4(), artist_id=artist_id, customer_id=None,
            customer_name="Sam", customer_phone="555-0100",
            start_at=start_at, duration_minutes=minutes,
            quoted_amount_cents=None, deposit_amount_cents=None,
            status=status, payment_status=PaymentStatus.UNPAID,
            reservation_expires_at=(
                clock.now + timedelta(minutes=15) if status == BookingStatus.RESERVED else None
            ),
            idempotency_key=None,
            created_at=clock.now, updated_at=clock.now,
        ))
    return _hold


# =============================================================================
# CREATE
# =============================================================================


class TestCreateBlock:
    def test_creates_and_audits(self, availability_service, availability_store, audit, fake_db, clock):
        block = availability_service.create_block(ARTIST_ID, _window(clock, hours=6))

        assert availability_store.get_by_id(block.id) == block
        assert block.duration_minutes == 360
        assert fake_db.lock_keys == [f"artist:{ARTIST_ID}"]
        audit.log_change.assert_called_once()
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.CREATE

    def test_reversed_window(self, availability_service, clock):
        start = clock.now + timedelta(days=1)
        with pytest.raises(InvalidWindowError, match="before end"):
            availability_service.create_block(
                ARTIST_ID, AvailabilityBlockCreate(start_at=start, end_at=start)
            )

    def test_too_short(self, availability_service, clock):
        with pytest.raises(InvalidWindowError, match="at least 30"):
            availability_service.create_block(
                ARTIST_ID, _window(clock, hours=0).model_copy(
                    update={"end_at": clock.now + timedelta(days=1, hours=1, minutes=20)}
                )
            )

    def test_too_long(self, availability_service, clock):
        with pytest.raises(InvalidWindowError, match="12 hours"):
            availability_service.create_block(ARTIST_ID, _window(clock, hours=13))

    def test_in_the_past(self, availability_service, clock):
        with pytest.raises(InvalidWindowError, match="past"):
            availability_service.create_block(ARTIST_ID, _window(clock, days=-1))

    def test_naive_datetimes_rejected(self, availability_service, clock):
        start = (clock.now + timedelta(days=1)).replace(tzinfo=None)
        with pytest.raises(InvalidWindowError, match="timezone"):
            availability_service.create_block(
                ARTIST_ID, AvailabilityBlockCreate(start_at=start, end_at=start + timedelta(hours=2))
            )

    def test_overlap_with_existing(self, availability_service, open_block):
        with pytest.raises(OverlapsExistingError):
            availability_service.create_block(ARTIST_ID, AvailabilityBlockCreate(
                start_at=open_block.end_at - timedelta(hours=1),
                end_at=open_block.end_at + timedelta(hours=1),
            ))

    def test_adjacent_blocks_allowed(self, availability_service, open_block):
        block = availability_service.create_block(ARTIST_ID, AvailabilityBlockCreate(
            start_at=open_block.end_at, end_at=open_block.end_at + timedelta(hours=2),
        ))
        assert block.start_at == open_block.end_at

    def test_other_artists_may_overlap(self, availability_service, open_block):
        block = availability_service.create_block(OTHER_ARTIST_ID, AvailabilityBlockCreate(
            start_at=open_block.start_at, end_at=open_block.end_at,
        ))
        assert block.artist_id == OTHER_ARTIST_ID

    def test_unknown_artist(self, availability_service, clock):
        with pytest.raises(ArtistNotFoundError):
            availability_service.create_block(uuid4(), _window(clock))

    def test_actor_must_own_artist(self, availability_service, other_artist_actor, clock):
        with pytest.raises(ForbiddenError):
            availability_service.create_block(ARTIST_ID, _window(clock), actor=other_artist_actor)

    def test_admin_may_act_for_artist(self, availability_service, admin_actor, clock):
        block = availability_service.create_block(ARTIST_ID, _window(clock), actor=admin_actor)
        assert block.artist_id == ARTIST_ID


class TestArtistForActor:
    def test_artist_resolves_own_profile(self, availability_service, artist_actor):
        assert availability_service.artist_for_actor(artist_actor) == ARTIST_ID

    def test_customer_has_no_profile(self, availability_service, customer_actor):
        with pytest.raises(ForbiddenError):
            availability_service.artist_for_actor(customer_actor)


# =============================================================================
# UPDATE / DELETE
# =============================================================================


class TestUpdateBlock:
    def test_note_only(self, availability_service, open_block):
        updated = availability_service.update_block(open_block.id, AvailabilityBlockUpdate(note="walk-ins"))
        assert updated.note == "walk-ins"
        assert updated.start_at == open_block.start_at

    def test_explicit_null_clears_note(self, availability_service, clock):
        data = _window(clock).model_copy(update={"note": "flash day"})
        block = availability_service.create_block(ARTIST_ID, data)

        updated = availability_service.update_block(
            block.id, AvailabilityBlockUpdate.model_validate({"note": None})
        )
        assert updated.note is None

    def test_empty_patch_is_noop(self, availability_service, open_block, audit):
        audit.reset_mock()
        assert availability_service.update_block(open_block.id, AvailabilityBlockUpdate()) == open_block
        audit.log_change.assert_not_called()

    def test_moves_end(self, availability_service, open_block):
        new_end = open_block.end_at + timedelta(hours=2)
        updated = availability_service.update_block(open_block.id, AvailabilityBlockUpdate(end_at=new_end))
        assert updated.end_at == new_end

    def test_shrinking_below_start_fails(self, availability_service, open_block):
        with pytest.raises(InvalidWindowError):
            availability_service.update_block(
                open_block.id, AvailabilityBlockUpdate(end_at=open_block.start_at - timedelta(hours=1))
            )

    def test_not_found(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.update_block(uuid4(), AvailabilityBlockUpdate(note="x"))

    def test_overlap_excludes_itself(self, availability_service, open_block):
        updated = availability_service.update_block(
            open_block.id, AvailabilityBlockUpdate(start_at=open_block.start_at + timedelta(hours=1))
        )
        assert updated.start_at == open_block.start_at + timedelta(hours=1)

    def test_overlap_with_neighbour(self, availability_service, open_block):
        neighbour = availability_service.create_block(ARTIST_ID, AvailabilityBlockCreate(
            start_at=open_block.end_at, end_at=open_block.end_at + timedelta(hours=2),
        ))
        with pytest.raises(OverlapsExistingError):
            availability_service.update_block(
                neighbour.id, AvailabilityBlockUpdate(start_at=open_block.end_at - timedelta(hours=1))
            )

    def test_booked_block_cannot_move(self, availability_service, open_block, hold):
        """A confirmed booking inside the block pins its window."""
        hold(open_block.start_at + timedelta(hours=1))

        with pytest.raises(BookedError):
            availability_service.update_block(
                open_block.id, AvailabilityBlockUpdate(end_at=open_block.end_at + timedelta(hours=1))
            )

    def test_booked_block_note_still_editable(self, availability_service, open_block, hold):
        hold(open_block.start_at)
        updated = availability_service.update_block(open_block.id, AvailabilityBlockUpdate(note="busy"))
        assert updated.note == "busy"

    def test_lapsed_reservation_does_not_pin(self, availability_service, open_block, hold, clock):
        hold(open_block.start_at, status=BookingStatus.RESERVED)
        clock.advance(minutes=20)

        updated = availability_service.update_block(
            open_block.id, AvailabilityBlockUpdate(end_at=open_block.end_at + timedelta(hours=1))
        )
        assert updated.end_at == open_block.end_at + timedelta(hours=1)


class TestDeleteBlock:
    def test_deletes(self, availability_service, availability_store, open_block, audit):
        availability_service.delete_block(open_block.id)
        assert availability_store.get_by_id(open_block.id) is None
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.DELETE

    def test_not_found(self, availability_service):
        with pytest.raises(NotFoundError):
            availability_service.delete_block(uuid4())

    def test_booked(self, availability_service, availability_store, open_block, hold):
        hold(open_block.start_at, status=BookingStatus.PENDING)
        with pytest.raises(BookedError):
            availability_service.delete_block(open_block.id)
        assert availability_store.get_by_id(open_block.id) is not None

    def test_forbidden_for_other_artist(self, availability_service, open_block, other_artist_actor):
        with pytest.raises(ForbiddenError):
            availability_service.delete_block(open_block.id, actor=other_artist_actor)


# =============================================================================
# READS
# =============================================================================


class TestPublicAvailability:
    def test_lists_unbooked_future_blocks(self, availability_service, open_block, clock):
        later = availability_service.create_block(ARTIST_ID, _window(clock, days=2))

        windows = availability_service.list_future_unbooked_blocks(ARTIST_ID)
        assert [w.id for w in windows] == [open_block.id, later.id]

    def test_booked_blocks_hidden(self, availability_service, open_block, hold):
        hold(open_block.start_at)
        assert availability_service.list_future_unbooked_blocks(ARTIST_ID) == []

    def test_unapproved_artists_hidden(self, availability_service, availability_store, clock, open_block):
        from core.models import AvailabilityBlock

        availability_store.insert(AvailabilityBlock(
            id=uuid4(), artist_id=UNAPPROVED_ARTIST_ID,
            start_at=open_block.start_at, end_at=open_block.end_at, note=None,
            created_at=clock.now, updated_at=clock.now,
        ))
        windows = availability_service.list_future_unbooked_blocks()
        assert {w.artist_id for w in windows} == {ARTIST_ID}

    def test_started_blocks_hidden(self, availability_service, open_block, clock):
        clock.advance(days=1, hours=2)
        assert availability_service.list_future_unbooked_blocks(ARTIST_ID) == []


class TestOpenSlots:
    def test_slots_skip_held_windows(self, availability_service, open_block, hold):
        # Block is 6h; booking takes hour 2..3
        hold(open_block.start_at + timedelta(hours=2))

        slots = availability_service.list_open_slots(ARTIST_ID, 60, step_minutes=60)
        starts = [s.start_at - open_block.start_at for s in slots]
        assert starts == [timedelta(hours=h) for h in (0, 1, 3, 4, 5)]
        assert {s.block_id for s in slots} == {open_block.id}

    def test_partly_booked_block_seen_through_slots(self, availability_service, open_block, hold):
        hold(open_block.start_at)

        assert availability_service.list_future_unbooked_blocks(ARTIST_ID) == []
        slots = availability_service.list_open_slots(ARTIST_ID, 60, step_minutes=60)
        assert slots and all(s.block_id == open_block.id for s in slots)

    def test_default_step_from_config(self, availability_service, open_block):
        slots = availability_service.list_open_slots(ARTIST_ID, 120)
        # 6h block, 2h slots, 30-minute step
        assert len(slots) == 9

    def test_non_positive_duration(self, availability_service):
        with pytest.raises(InvalidWindowError):
            availability_service.list_open_slots(ARTIST_ID, 0)


# =============================================================================
# WEEKLY GENERATION
# =============================================================================


class TestGenerateWeekly:
    def test_generates_blocks(self, availability_service, availability_store, clock):
        schedule = WeeklyScheduleCreate(
            windows=[
                WeeklyWindow(day_of_week=2, start_time="10:00", end_time="18:00"),
                WeeklyWindow(day_of_week=4, start_time="12:00", end_time="20:00", note="late"),
            ],
            start_date=clock.now.date(),
            days=14,
            timezone="UTC",
        )
        blocks = availability_service.generate_weekly_blocks(ARTIST_ID, schedule)

        assert len(blocks) == 4
        assert len(availability_store.rows_for_artist(ARTIST_ID)) == 4
        assert [b.note for b in blocks] == [None, "late", None, "late"]

    def test_all_or_nothing(self, availability_service, availability_store, clock):
        # Existing block on the second Tuesday collides with generation
        second_tuesday = clock.now.replace(hour=11) + timedelta(days=8)
        availability_service.create_block(ARTIST_ID, AvailabilityBlockCreate(
            start_at=second_tuesday, end_at=second_tuesday + timedelta(hours=2),
        ))

        schedule = WeeklyScheduleCreate(
            windows=[WeeklyWindow(day_of_week=2, start_time="10:00", end_time="18:00")],
            start_date=clock.now.date(),
            days=14,
        )
        with pytest.raises(OverlapsExistingError):
            availability_service.generate_weekly_blocks(ARTIST_ID, schedule)

        assert len(availability_store.rows_for_artist(ARTIST_ID)) == 1

    def test_windows_already_started_skipped(self, availability_service, clock):
        # Monday 09:00 now; Monday 08:00-12:00 already started
        schedule = WeeklyScheduleCreate(
            windows=[WeeklyWindow(day_of_week=1, start_time="08:00", end_time="12:00")],
            start_date=clock.now.date(),
            days=7,
        )
        assert availability_service.generate_weekly_blocks(ARTIST_ID, schedule) == []
