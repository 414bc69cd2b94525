"""Role checks shared by the availability, offer and reservation services."""

from core.errors import ForbiddenError
from core.models import Artist, Booking
from utils.user_context import Actor, ActorRole


def owns_artist(actor: Actor, artist: Artist) -> bool:
    """Whether the actor is the user behind this artist profile."""
    return actor.role == ActorRole.ARTIST and artist.user_id == actor.id


def require_artist_or_admin(actor: Actor, artist: Artist) -> None:
    """
    Raises:
        ForbiddenError: Actor neither owns the artist profile nor is admin
    """
    if actor.is_admin or owns_artist(actor, artist):
        return
    raise ForbiddenError("Only the owning artist or an admin may do this")


def is_booking_customer(actor: Actor, booking: Booking) -> bool:
    return (
        actor.role == ActorRole.CUSTOMER
        and booking.customer_id is not None
        and booking.customer_id == actor.id
    )


def can_view_booking(actor: Actor, booking: Booking, artist: Artist | None) -> bool:
    if actor.is_admin or is_booking_customer(actor, booking):
        return True
    return artist is not None and owns_artist(actor, artist)
