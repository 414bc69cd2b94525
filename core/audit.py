"""
Audit trail for availability, offer and booking changes.

Every mutation is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (who made the change; NULL for system actions such as
  payment callbacks or the reservation sweep)
- Detailed (captures old and new values)

Entries written with a transaction handle commit or roll back together with
the change they describe.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient, Transaction
from utils.timezone import now_utc
from utils.user_context import get_current_actor


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    Always pass model_dump(mode="json") output so UUIDs and datetimes are
    JSON-compatible.

    Usage:
        audit = AuditLogger(postgres)

        with postgres.transaction(lock_key=...) as tx:
            booking = bookings.insert(..., tx=tx)
            audit.log_change(
                entity_type="booking",
                entity_id=booking.id,
                action=AuditAction.CREATE,
                changes={"created": booking.model_dump(mode="json")},
                tx=tx,
            )
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None,
        tx: Transaction | None = None,
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: "availability_block", "booking" or "offer"
            entity_id: ID of the entity
            action: The action performed
            changes: CREATE {"created": {...}}, UPDATE {"field": {"old", "new"}},
                DELETE {"deleted": {...}}
            user_id: Acting user (defaults to the current actor, if any)
            tx: Open transaction to write through
        """
        if user_id is None:
            actor = get_current_actor()
            user_id = actor.id if actor is not None else None

        db = tx if tx is not None else self.postgres
        db.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                user_id,
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )
