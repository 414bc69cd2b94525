"""
Handlers that hand booking changes to the external collaborators.

Delivery (email/SMS) and deposit collection live outside the engine. These
handlers translate committed booking events into calls on whatever notifier
and payment gateway the application wires in.
"""

import logging
from typing import Callable, Protocol

from core.event_bus import EventBus
from core.events import BookingCancelled, BookingConfirmed, BookingRequested, BookingReserved, OfferCreated

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, recipient: dict, subject: str, body: str) -> None: ...


class DepositGateway(Protocol):
    def request_deposit(self, booking_id, amount_cents: int, due_by) -> None: ...


def _recipient(booking) -> dict:
    return {
        "customer_id": booking.customer_id,
        "name": booking.customer_name,
        "phone": booking.customer_phone,
        "email": booking.customer_email,
    }


def handle_booking_reserved(payments: DepositGateway, notifier: Notifier) -> Callable:
    """
    Factory that returns a BookingReserved handler.

    Asks the payment gateway to collect the deposit before the hold lapses,
    then tells the customer how long the slot is held.
    """

    def handler(event: BookingReserved):
        booking = event.booking

        if booking.deposit_amount_cents:
            payments.request_deposit(booking.id, booking.deposit_amount_cents, booking.reservation_expires_at)

        notifier.notify(
            _recipient(booking),
            subject="Your slot is on hold",
            body=(
                f"Your appointment at {booking.start_at.isoformat()} is held until "
                f"{booking.reservation_expires_at.isoformat()}."
            ),
        )

    return handler


def handle_booking_requested(notifier: Notifier) -> Callable:
    """Factory that returns a BookingRequested handler."""

    def handler(event: BookingRequested):
        booking = event.booking
        notifier.notify(
            _recipient(booking),
            subject="Booking request received",
            body=f"Your request for {booking.start_at.isoformat()} was sent to the artist.",
        )

    return handler


def handle_booking_confirmed(notifier: Notifier) -> Callable:
    """Factory that returns a BookingConfirmed handler."""

    def handler(event: BookingConfirmed):
        booking = event.booking
        notifier.notify(
            _recipient(booking),
            subject="Appointment confirmed",
            body=f"Your appointment at {booking.start_at.isoformat()} is confirmed.",
        )

    return handler


def handle_booking_cancelled(notifier: Notifier) -> Callable:
    """Factory that returns a BookingCancelled handler."""

    def handler(event: BookingCancelled):
        booking = event.booking
        notifier.notify(
            _recipient(booking),
            subject="Appointment cancelled",
            body=f"Your appointment at {booking.start_at.isoformat()} was cancelled.",
        )

    return handler


def handle_offer_created(notifier: Notifier) -> Callable:
    """
    Factory that returns an OfferCreated handler.

    Sends the quote to the contact on the request it answers.
    """

    def handler(event: OfferCreated):
        offer = event.offer
        notifier.notify(
            event.request.recipient(),
            subject="New offer from your artist",
            body=f"{offer.message}\n\nAvailable times: {', '.join(offer.available_slots)}",
        )

    return handler


def register_booking_handlers(event_bus: EventBus, notifier: Notifier, payments: DepositGateway) -> None:
    """Subscribe every booking handler to the bus."""
    event_bus.subscribe("BookingReserved", handle_booking_reserved(payments, notifier))
    event_bus.subscribe("BookingRequested", handle_booking_requested(notifier))
    event_bus.subscribe("BookingConfirmed", handle_booking_confirmed(notifier))
    event_bus.subscribe("BookingCancelled", handle_booking_cancelled(notifier))
    event_bus.subscribe("OfferCreated", handle_offer_created(notifier))
    logger.info("Booking notification handlers registered")
