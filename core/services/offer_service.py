"""Offer service: artists quoting a customer request with candidate slots."""

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction
from core.config import BookingConfig
from core.errors import (
    ForbiddenError, InvalidWindowError, OfferNotFoundError, RequestAlreadyOfferedError,
    RequestNotFoundError, WrongStateError,
)
from core.event_bus import EventBus
from core.events import OfferCreated
from core.models import CustomerRequest, Offer, OfferCreate, RequestStatus
from core.services.availability_service import artist_lock_key, require_aware_utc
from core.services.permissions import owns_artist
from core.stores.artist_store import ArtistStore
from core.stores.offer_store import OfferStore
from core.stores.request_store import RequestStore
from utils.timezone import now_utc
from utils.user_context import Actor

logger = logging.getLogger(__name__)

_CLOSED_REQUESTS = frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED})


class OfferService:
    """Service for offer operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        offers: OfferStore,
        requests: RequestStore,
        artists: ArtistStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.postgres = postgres
        self.offers = offers
        self.requests = requests
        self.artists = artists
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BookingConfig()
        self.clock = clock

    def create_offer(self, actor: Actor, data: OfferCreate) -> Offer:
        """
        Answer a customer request with a quote and candidate slots.

        The request is marked offered in the same transaction, so a request
        carries at most one offer.

        Args:
            actor: Must be the artist the request is addressed to
            data: Request, quote, deposit share, slots and optional expiry

        Returns:
            Created offer

        Raises:
            ForbiddenError: Actor has no artist profile, or the request is another artist's
            RequestNotFoundError: No such request
            RequestAlreadyOfferedError: The request already has an offer
            WrongStateError: The request was accepted or rejected
            InvalidWindowError: Expiry not in the future
        """
        artist = self.artists.get_by_user_id(actor.id)
        if artist is None or not owns_artist(actor, artist):
            raise ForbiddenError("Only artists can create offers")

        now = self.clock()
        expires_at = None
        if data.expires_at is not None:
            expires_at = require_aware_utc(data.expires_at)
            if expires_at <= now:
                raise InvalidWindowError("Offer expiry must be in the future")

        def work(tx: Transaction) -> tuple[Offer, CustomerRequest]:
            request = self.requests.get_by_id(data.request_id, tx=tx, for_update=True)
            if request is None:
                raise RequestNotFoundError(f"Request {data.request_id} not found")
            if request.artist_id != artist.id:
                raise ForbiddenError("Not authorized to make an offer on this request")
            if request.status == RequestStatus.OFFERED:
                raise RequestAlreadyOfferedError(f"Request {request.id} already has an offer")
            if request.status in _CLOSED_REQUESTS:
                raise WrongStateError(f"Request {request.id} is {request.status.value}")

            offer = self.offers.insert(Offer(
                id=uuid4(),
                artist_id=artist.id,
                request_id=request.id,
                quoted_amount_cents=data.quoted_amount_cents,
                deposit_percent=data.deposit_percent,
                available_slots=data.available_slots,
                duration_minutes=data.duration_minutes or self.config.default_offer_duration_minutes,
                message=data.message,
                expires_at=expires_at,
                created_at=now,
            ), tx=tx)
            request = self.requests.update_status(request.id, RequestStatus.OFFERED, tx=tx)

            self.audit.log_change(
                entity_type="offer",
                entity_id=offer.id,
                action=AuditAction.CREATE,
                changes={"created": offer.model_dump(mode="json")},
                user_id=actor.id,
                tx=tx,
            )
            return offer, request

        offer, request = self.postgres.run_in_transaction(
            work, lock_key=artist_lock_key(artist.id), retries=self.config.transaction_retries
        )

        logger.info(
            f"Offer {offer.id} created by artist {artist.id} for request {request.id} "
            f"with {len(offer.available_slots)} slots"
        )
        self.event_bus.publish(OfferCreated.create(offer, request))
        return offer

    def get_offer(self, offer_id: UUID) -> Offer:
        offer = self.offers.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFoundError(f"Offer {offer_id} not found")
        return offer
