"""Shared test fixtures for the booking engine test suite."""

import os
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.config import BookingConfig
from core.event_bus import EventBus
from core.models import Artist, AvailabilityBlockCreate
from core.services.availability_service import AvailabilityService
from core.services.offer_service import OfferService
from core.services.reservation_service import ReservationService
from tests.fakes import (
    ADMIN_ID, ARTIST_ID, ARTIST_USER_ID, CUSTOMER_ID, OTHER_ARTIST_ID, OTHER_ARTIST_USER_ID,
    UNAPPROVED_ARTIST_ID, FakeArtistStore, FakeAvailabilityStore, FakeBookingStore,
    FakeClock, FakeDatabase, FakeOfferStore, FakeRequestStore, make_request,
)
from utils.user_context import Actor, ActorRole, clear_current_actor


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor()
    yield
    clear_current_actor()


@pytest.fixture
def artist_actor() -> Actor:
    return Actor(id=ARTIST_USER_ID, role=ActorRole.ARTIST)


@pytest.fixture
def other_artist_actor() -> Actor:
    return Actor(id=OTHER_ARTIST_USER_ID, role=ActorRole.ARTIST)


@pytest.fixture
def customer_actor() -> Actor:
    return Actor(id=CUSTOMER_ID, role=ActorRole.CUSTOMER)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id=ADMIN_ID, role=ActorRole.ADMIN)


# =============================================================================
# IN-MEMORY ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Monday 2026-03-02 09:00 UTC, advanced explicitly by tests."""
    return FakeClock()


@pytest.fixture
def config() -> BookingConfig:
    return BookingConfig()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def artist_store(clock) -> FakeArtistStore:
    store = FakeArtistStore()
    store.add(Artist(
        id=ARTIST_ID, user_id=ARTIST_USER_ID, display_name="Ada Ink",
        approved=True, hourly_rate_cents=20000, created_at=clock.now,
    ))
    store.add(Artist(
        id=OTHER_ARTIST_ID, user_id=OTHER_ARTIST_USER_ID, display_name="Bo Lines",
        approved=True, hourly_rate_cents=None, created_at=clock.now,
    ))
    store.add(Artist(
        id=UNAPPROVED_ARTIST_ID, user_id=UUID("00000000-0000-0000-0000-000000000009"),
        display_name="New Needle", approved=False, created_at=clock.now,
    ))
    return store


@pytest.fixture
def availability_store(artist_store) -> FakeAvailabilityStore:
    return FakeAvailabilityStore(artist_store)


@pytest.fixture
def booking_store() -> FakeBookingStore:
    return FakeBookingStore()


@pytest.fixture
def offer_store() -> FakeOfferStore:
    return FakeOfferStore()


@pytest.fixture
def request_store() -> FakeRequestStore:
    return FakeRequestStore()


@pytest.fixture
def customer_request(request_store):
    """A new request addressed to the primary artist."""
    return request_store.add(make_request())


@pytest.fixture
def audit() -> Mock:
    return Mock()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(event_bus) -> list:
    """Every event published on the bus, in order."""
    events = []
    for name in (
        "BookingReserved", "BookingRequested", "BookingConfirmed",
        "BookingCompleted", "BookingCancelled", "OfferCreated",
    ):
        event_bus.subscribe(name, events.append)
    return events


@pytest.fixture
def availability_service(fake_db, availability_store, booking_store, artist_store, audit, config, clock):
    return AvailabilityService(
        fake_db, availability_store, booking_store, artist_store, audit, config, clock=clock
    )


@pytest.fixture
def reservation_service(
    fake_db, booking_store, availability_store, artist_store, offer_store,
    audit, event_bus, config, clock,
):
    return ReservationService(
        fake_db, booking_store, availability_store, artist_store, offer_store,
        audit, event_bus, config, clock=clock,
    )


@pytest.fixture
def offer_service(fake_db, offer_store, request_store, artist_store, audit, event_bus, config, clock):
    return OfferService(
        fake_db, offer_store, request_store, artist_store, audit, event_bus, config, clock=clock
    )


@pytest.fixture
def open_block(availability_service, clock):
    """Tomorrow 10:00-16:00 for the primary artist."""
    start = clock.now + timedelta(days=1, hours=1)
    return availability_service.create_block(
        ARTIST_ID, AvailabilityBlockCreate(start_at=start, end_at=start + timedelta(hours=6))
    )


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient against INKBOOK_TEST_DATABASE_URL, schema applied."""
    url = os.getenv("INKBOOK_TEST_DATABASE_URL")
    if not url:
        pytest.skip("INKBOOK_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url)
    schema = (Path(__file__).parent.parent / "sql" / "schema.sql").read_text()
    client.execute(schema)
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty tables and seed the primary artist."""
    db.execute("TRUNCATE audit_log, bookings, offers, requests, availability_blocks, artists CASCADE")
    db.execute(
        """
        INSERT INTO artists (id, user_id, display_name, approved, hourly_rate_cents)
        VALUES (%s, %s, %s, true, 20000)
        """,
        (ARTIST_ID, ARTIST_USER_ID, "Ada Ink")
    )
    yield db
