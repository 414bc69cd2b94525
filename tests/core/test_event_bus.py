"""Tests for EventBus."""

import logging

import pytest

from core.event_bus import EventBus
from core.events import BookingCancelled, BookingConfirmed, BookingReserved
from tests.fakes import make_booking


# =============================================================================
# FIXTURES - lightweight in-memory bookings, no DB needed
# =============================================================================


@pytest.fixture
def _booking():
    return make_booking()


# =============================================================================
# SUBSCRIBE AND PUBLISH
# =============================================================================


class TestSubscribeAndPublish:

    def test_single_handler_receives_the_exact_event_object(self, _booking):
        bus = EventBus()
        received = []
        bus.subscribe("BookingReserved", received.append)

        event = BookingReserved.create(_booking)
        bus.publish(event)

        assert len(received) == 1
        assert received[0] is event

    def test_handler_can_read_payload_fields(self, _booking):
        bus = EventBus()
        booking_ids = []
        bus.subscribe("BookingReserved", lambda e: booking_ids.append(e.booking.id))

        bus.publish(BookingReserved.create(_booking))

        assert booking_ids == [_booking.id]

    def test_multiple_handlers_called_in_subscription_order(self, _booking):
        bus = EventBus()
        order = []
        bus.subscribe("BookingConfirmed", lambda e: order.append("A"))
        bus.subscribe("BookingConfirmed", lambda e: order.append("B"))
        bus.subscribe("BookingConfirmed", lambda e: order.append("C"))

        bus.publish(BookingConfirmed.create(_booking))

        assert order == ["A", "B", "C"]

    def test_type_isolation_only_matching_subscribers_called(self, _booking):
        bus = EventBus()
        reserved_calls = []
        cancelled_calls = []
        bus.subscribe("BookingReserved", reserved_calls.append)
        bus.subscribe("BookingCancelled", cancelled_calls.append)

        bus.publish(BookingReserved.create(_booking))

        assert len(reserved_calls) == 1
        assert cancelled_calls == []

    def test_no_subscribers_does_not_raise(self, _booking):
        bus = EventBus()
        bus.publish(BookingCancelled.create(_booking))

    def test_two_publishes_deliver_two_distinct_events(self, _booking):
        bus = EventBus()
        received = []
        bus.subscribe("BookingReserved", received.append)

        event_1 = BookingReserved.create(_booking)
        event_2 = BookingReserved.create(_booking)
        bus.publish(event_1)
        bus.publish(event_2)

        assert len(received) == 2
        assert received[0].event_id != received[1].event_id


# =============================================================================
# HANDLER ERROR ISOLATION
# =============================================================================


class TestHandlerErrorIsolation:

    def test_handler_exception_does_not_propagate(self, _booking):
        bus = EventBus()

        def failing_handler(event):
            raise RuntimeError("boom")

        bus.subscribe("BookingReserved", failing_handler)

        # Must not raise
        bus.publish(BookingReserved.create(_booking))

    def test_handler_exception_is_logged_with_event_type_and_event_id(self, _booking, caplog):
        bus = EventBus()

        def failing_handler(event):
            raise ValueError("gateway unreachable")

        bus.subscribe("BookingReserved", failing_handler)

        with caplog.at_level(logging.ERROR, logger="core.event_bus"):
            event = BookingReserved.create(_booking)
            bus.publish(event)

        assert "gateway unreachable" in caplog.text
        assert "BookingReserved" in caplog.text
        assert event.event_id in caplog.text

    def test_all_handlers_run_even_if_one_fails(self, _booking):
        bus = EventBus()
        results = []

        def failing_handler(event):
            raise RuntimeError("fail")

        bus.subscribe("BookingCancelled", failing_handler)
        bus.subscribe("BookingCancelled", lambda e: results.append(e.booking.id))

        bus.publish(BookingCancelled.create(_booking))

        assert results == [_booking.id]
