"""
Booking persistence.

Plain reads and writes against the bookings table. No business rules live
here; ReservationService and ConflictDetector enforce every invariant before
calling in. Every method takes an optional transaction handle so callers can
compose reads and writes into one locked unit of work.
"""

import logging
from datetime import datetime
from uuid import UUID

import psycopg2.errors

from clients.postgres_client import PostgresClient, Transaction
from core.errors import DuplicateIdempotencyKeyError
from core.models import Booking, BookingStatus

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "status", "payment_status", "reservation_expires_at", "notes",
    "customer_name", "customer_phone", "customer_email",
}

_IDEMPOTENCY_CONSTRAINT = "bookings_idempotency_key_key"

# Holding = occupies the calendar: firm statuses, or a reservation whose hold
# has not lapsed at %(now)s.
_HOLDING_CLAUSE = """
    (status IN ('pending', 'confirmed', 'completed')
     OR (status = 'reserved' AND reservation_expires_at > %(now)s))
"""


class BookingStore:
    """Row-level access to bookings."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _db(self, tx: Transaction | None):
        return tx if tx is not None else self.postgres

    def insert(self, booking: Booking, tx: Transaction | None = None) -> Booking:
        """
        Insert a fully-formed booking row.

        Raises:
            DuplicateIdempotencyKeyError: Another booking already owns the key
        """
        try:
            row = self._db(tx).execute_returning(
                """
                INSERT INTO bookings (
                    id, artist_id, customer_id,
                    customer_name, customer_phone, customer_email,
                    start_at, duration_minutes,
                    quoted_amount_cents, deposit_amount_cents,
                    status, payment_status, reservation_expires_at,
                    idempotency_key, offer_id, request_id, notes,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s,
                    %s, %s, %s,
                    %s, %s,
                    %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    booking.id, booking.artist_id, booking.customer_id,
                    booking.customer_name, booking.customer_phone, booking.customer_email,
                    booking.start_at, booking.duration_minutes,
                    booking.quoted_amount_cents, booking.deposit_amount_cents,
                    booking.status.value, booking.payment_status.value, booking.reservation_expires_at,
                    booking.idempotency_key, booking.offer_id, booking.request_id, booking.notes,
                    booking.created_at, booking.updated_at,
                )
            )[0]
        except psycopg2.errors.UniqueViolation as e:
            if e.diag.constraint_name == _IDEMPOTENCY_CONSTRAINT:
                raise DuplicateIdempotencyKeyError(booking.idempotency_key) from e
            raise

        return Booking.model_validate(row)

    def get_by_id(
        self,
        booking_id: UUID,
        tx: Transaction | None = None,
        for_update: bool = False,
    ) -> Booking | None:
        """Get booking by ID. for_update row-locks it until the transaction ends."""
        query = "SELECT * FROM bookings WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"

        row = self._db(tx).execute_single(query, (booking_id,))
        if row is None:
            return None
        return Booking.model_validate(row)

    def get_by_idempotency_key(self, key: str, tx: Transaction | None = None) -> Booking | None:
        row = self._db(tx).execute_single(
            "SELECT * FROM bookings WHERE idempotency_key = %s",
            (key,)
        )
        if row is None:
            return None
        return Booking.model_validate(row)

    def list_for_artist(
        self,
        artist_id: UUID,
        status: BookingStatus | None = None,
        limit: int = 100,
        tx: Transaction | None = None,
    ) -> list[Booking]:
        """Bookings for an artist ordered by start time."""
        if status is None:
            rows = self._db(tx).execute(
                """
                SELECT * FROM bookings
                WHERE artist_id = %s
                ORDER BY start_at ASC
                LIMIT %s
                """,
                (artist_id, limit)
            )
        else:
            rows = self._db(tx).execute(
                """
                SELECT * FROM bookings
                WHERE artist_id = %s AND status = %s
                ORDER BY start_at ASC
                LIMIT %s
                """,
                (artist_id, status.value, limit)
            )
        return [Booking.model_validate(row) for row in rows]

    def list_for_customer(
        self,
        customer_id: UUID,
        limit: int = 50,
        tx: Transaction | None = None,
    ) -> list[Booking]:
        """Bookings for a customer, most recent appointment first."""
        rows = self._db(tx).execute(
            """
            SELECT * FROM bookings
            WHERE customer_id = %s
            ORDER BY start_at DESC
            LIMIT %s
            """,
            (customer_id, limit)
        )
        return [Booking.model_validate(row) for row in rows]

    def list_holding_for_artist(
        self,
        artist_id: UUID,
        now: datetime,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        tx: Transaction | None = None,
    ) -> list[Booking]:
        """
        Bookings that occupy the artist's calendar at `now`.

        With a window, only bookings that could intersect it are returned;
        the caller still applies the exact overlap test.
        """
        params = {"artist_id": artist_id, "now": now}
        query = f"SELECT * FROM bookings WHERE artist_id = %(artist_id)s AND {_HOLDING_CLAUSE}"

        if window_start is not None and window_end is not None:
            query += """
                AND start_at < %(window_end)s
                AND start_at + duration_minutes * INTERVAL '1 minute' > %(window_start)s
            """
            params["window_start"] = window_start
            params["window_end"] = window_end

        query += " ORDER BY start_at ASC"
        rows = self._db(tx).execute(query, params)
        return [Booking.model_validate(row) for row in rows]

    def has_holding_for_offer(
        self,
        offer_id: UUID,
        now: datetime,
        tx: Transaction | None = None,
    ) -> bool:
        """Whether a booking created from this offer still occupies its slot."""
        found = self._db(tx).execute_scalar(
            f"SELECT 1 FROM bookings WHERE offer_id = %(offer_id)s AND {_HOLDING_CLAUSE} LIMIT 1",
            {"offer_id": offer_id, "now": now}
        )
        return found is not None

    def update_fields(
        self,
        booking_id: UUID,
        fields: dict,
        now: datetime,
        tx: Transaction | None = None,
    ) -> Booking | None:
        """
        Update whitelisted columns. Enum values are stored as their strings.

        Returns:
            Updated booking, or None if it doesn't exist
        """
        for field in fields:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(f"Attempted to update unknown field '{field}' on booking {booking_id}")

        valid = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        if not valid:
            return self.get_by_id(booking_id, tx=tx)

        set_parts = []
        params = []
        for field, value in valid.items():
            set_parts.append(f"{field} = %s")
            params.append(value.value if hasattr(value, "value") else value)

        set_parts.append("updated_at = %s")
        params.append(now)
        params.append(booking_id)

        rows = self._db(tx).execute_returning(
            f"""
            UPDATE bookings
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )
        return Booking.model_validate(rows[0]) if rows else None

    def update_status(
        self,
        booking_id: UUID,
        status: BookingStatus,
        now: datetime,
        tx: Transaction | None = None,
    ) -> Booking | None:
        return self.update_fields(booking_id, {"status": status}, now, tx=tx)

    def cancel_expired_reservations(self, now: datetime, tx: Transaction | None = None) -> list[Booking]:
        """Flip lapsed reservations to cancelled. Bookkeeping only."""
        rows = self._db(tx).execute_returning(
            """
            UPDATE bookings
            SET status = %s, updated_at = %s
            WHERE status = %s AND reservation_expires_at <= %s
            RETURNING *
            """,
            (BookingStatus.CANCELLED.value, now, BookingStatus.RESERVED.value, now)
        )
        return [Booking.model_validate(row) for row in rows]
