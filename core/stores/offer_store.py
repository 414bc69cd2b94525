"""Offer persistence."""

from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient, Transaction
from core.models import Offer


class OfferStore:
    """Row-level access to offers. available_slots is a JSONB array of ISO strings."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _db(self, tx: Transaction | None):
        return tx if tx is not None else self.postgres

    def insert(self, offer: Offer, tx: Transaction | None = None) -> Offer:
        row = self._db(tx).execute_returning(
            """
            INSERT INTO offers (
                id, artist_id, request_id, quoted_amount_cents, deposit_percent,
                available_slots, duration_minutes, message, expires_at, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                offer.id, offer.artist_id, offer.request_id,
                offer.quoted_amount_cents, offer.deposit_percent,
                Json(offer.available_slots), offer.duration_minutes,
                offer.message, offer.expires_at, offer.created_at,
            )
        )[0]
        return Offer.model_validate(row)

    def get_by_id(self, offer_id: UUID, tx: Transaction | None = None) -> Offer | None:
        row = self._db(tx).execute_single(
            "SELECT * FROM offers WHERE id = %s",
            (offer_id,)
        )
        if row is None:
            return None
        return Offer.model_validate(row)
