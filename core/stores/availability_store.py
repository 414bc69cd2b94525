"""
Availability block persistence.

Row access only. Window validation, overlap rules and the "booked" check
live in AvailabilityService.
"""

import logging
from datetime import datetime
from uuid import UUID

from clients.postgres_client import PostgresClient, Transaction
from core.models import AvailabilityBlock

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"start_at", "end_at", "note"}


class AvailabilityStore:
    """Row-level access to availability_blocks."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _db(self, tx: Transaction | None):
        return tx if tx is not None else self.postgres

    def insert(self, block: AvailabilityBlock, tx: Transaction | None = None) -> AvailabilityBlock:
        row = self._db(tx).execute_returning(
            """
            INSERT INTO availability_blocks (
                id, artist_id, start_at, end_at, note, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                block.id, block.artist_id, block.start_at, block.end_at,
                block.note, block.created_at, block.updated_at,
            )
        )[0]
        return AvailabilityBlock.model_validate(row)

    def get_by_id(self, block_id: UUID, tx: Transaction | None = None) -> AvailabilityBlock | None:
        row = self._db(tx).execute_single(
            "SELECT * FROM availability_blocks WHERE id = %s",
            (block_id,)
        )
        if row is None:
            return None
        return AvailabilityBlock.model_validate(row)

    def list_overlapping(
        self,
        artist_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_id: UUID | None = None,
        tx: Transaction | None = None,
    ) -> list[AvailabilityBlock]:
        """Blocks of the artist intersecting [start_at, end_at), optionally skipping one block."""
        rows = self._db(tx).execute(
            """
            SELECT * FROM availability_blocks
            WHERE artist_id = %s
              AND start_at < %s
              AND end_at > %s
              AND (%s::uuid IS NULL OR id <> %s::uuid)
            ORDER BY start_at ASC
            """,
            (artist_id, end_at, start_at, exclude_id, exclude_id)
        )
        return [AvailabilityBlock.model_validate(row) for row in rows]

    def list_containing(
        self,
        artist_id: UUID,
        start_at: datetime,
        end_at: datetime,
        tx: Transaction | None = None,
    ) -> list[AvailabilityBlock]:
        """Blocks of the artist that fully contain [start_at, end_at)."""
        rows = self._db(tx).execute(
            """
            SELECT * FROM availability_blocks
            WHERE artist_id = %s
              AND start_at <= %s
              AND end_at >= %s
            ORDER BY start_at ASC
            """,
            (artist_id, start_at, end_at)
        )
        return [AvailabilityBlock.model_validate(row) for row in rows]

    def list_future(
        self,
        now: datetime,
        artist_id: UUID | None = None,
        tx: Transaction | None = None,
    ) -> list[AvailabilityBlock]:
        """Blocks starting after `now` that belong to approved artists."""
        rows = self._db(tx).execute(
            """
            SELECT b.* FROM availability_blocks b
            JOIN artists a ON a.id = b.artist_id
            WHERE a.approved = true
              AND b.start_at > %s
              AND (%s::uuid IS NULL OR b.artist_id = %s::uuid)
            ORDER BY b.start_at ASC
            """,
            (now, artist_id, artist_id)
        )
        return [AvailabilityBlock.model_validate(row) for row in rows]

    def update_fields(
        self,
        block_id: UUID,
        fields: dict,
        now: datetime,
        tx: Transaction | None = None,
    ) -> AvailabilityBlock | None:
        valid = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        for field in set(fields) - set(valid):
            logger.warning(f"Attempted to update unknown field '{field}' on availability block {block_id}")

        if not valid:
            return self.get_by_id(block_id, tx=tx)

        set_parts = [f"{field} = %s" for field in valid]
        params = list(valid.values())
        set_parts.append("updated_at = %s")
        params.extend([now, block_id])

        rows = self._db(tx).execute_returning(
            f"""
            UPDATE availability_blocks
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )
        return AvailabilityBlock.model_validate(rows[0]) if rows else None

    def delete(self, block_id: UUID, tx: Transaction | None = None) -> bool:
        """Hard delete. Returns False if the block did not exist."""
        rows = self._db(tx).execute_returning(
            "DELETE FROM availability_blocks WHERE id = %s RETURNING id",
            (block_id,)
        )
        return len(rows) > 0
