"""Tests for the audit trail."""

from unittest.mock import Mock
from uuid import uuid4

import pytest
from psycopg2.extras import Json

from tests.fakes import ADMIN_ID, CUSTOMER_ID
from utils.user_context import Actor, ActorRole, actor_context


class TestAuditAction:
    """Tests for AuditAction enum."""

    def test_has_create_update_delete(self):
        """AuditAction has required values."""
        from core.audit import AuditAction

        assert AuditAction.CREATE.value == "create"
        assert AuditAction.UPDATE.value == "update"
        assert AuditAction.DELETE.value == "delete"


class TestComputeChanges:
    """Tests for compute_changes utility function."""

    def test_detects_changed_fields(self):
        """Different values for same key detected."""
        from core.audit import compute_changes

        old = {"status": "reserved", "notes": None}
        new = {"status": "confirmed", "notes": None}

        changes = compute_changes(old, new)

        assert changes == {"status": {"old": "reserved", "new": "confirmed"}}

    def test_detects_added_and_removed_fields(self):
        from core.audit import compute_changes

        changes = compute_changes({"note": "walk-ins"}, {"end_at": "2026-03-03T16:00:00+00:00"})

        assert changes["note"] == {"old": "walk-ins", "new": None}
        assert changes["end_at"]["old"] is None

    def test_excludes_updated_at_by_default(self):
        """updated_at not reported as change."""
        from core.audit import compute_changes

        old = {"status": "pending", "updated_at": "2026-03-02T09:00:00+00:00"}
        new = {"status": "pending", "updated_at": "2026-03-02T09:05:00+00:00"}

        assert compute_changes(old, new) == {}

    def test_custom_exclude_fields(self):
        """Can exclude additional fields."""
        from core.audit import compute_changes

        old = {"status": "pending", "reservation_expires_at": "a"}
        new = {"status": "cancelled", "reservation_expires_at": "b"}

        changes = compute_changes(old, new, exclude_fields={"updated_at", "reservation_expires_at"})

        assert list(changes) == ["status"]


class TestAuditLoggerWrites:
    """AuditLogger against a mocked client: what gets written, and through which handle."""

    def test_writes_through_transaction_when_given(self):
        from core.audit import AuditLogger, AuditAction

        postgres, tx = Mock(), Mock()
        AuditLogger(postgres).log_change(
            entity_type="booking",
            entity_id=uuid4(),
            action=AuditAction.CREATE,
            changes={"created": {}},
            tx=tx,
        )

        tx.execute.assert_called_once()
        postgres.execute.assert_not_called()

    def test_params_carry_entity_and_json_changes(self):
        from core.audit import AuditLogger, AuditAction

        postgres = Mock()
        entity_id = uuid4()
        AuditLogger(postgres).log_change(
            entity_type="availability_block",
            entity_id=entity_id,
            action=AuditAction.DELETE,
            changes={"deleted": {"note": "x"}},
            user_id=ADMIN_ID,
        )

        _, params = postgres.execute.call_args.args
        assert params[1] == ADMIN_ID
        assert params[2:5] == ("availability_block", entity_id, "delete")
        assert isinstance(params[5], Json)
        assert params[5].adapted == {"deleted": {"note": "x"}}

    def test_defaults_to_current_actor(self):
        from core.audit import AuditLogger, AuditAction

        postgres = Mock()
        with actor_context(Actor(id=CUSTOMER_ID, role=ActorRole.CUSTOMER)):
            AuditLogger(postgres).log_change("booking", uuid4(), AuditAction.UPDATE, {})

        _, params = postgres.execute.call_args.args
        assert params[1] == CUSTOMER_ID

    def test_system_action_has_no_user(self):
        from core.audit import AuditLogger, AuditAction

        postgres = Mock()
        AuditLogger(postgres).log_change("booking", uuid4(), AuditAction.UPDATE, {})

        _, params = postgres.execute.call_args.args
        assert params[1] is None


@pytest.mark.postgres
class TestAuditLoggerDatabase:
    """Round trips through a real audit_log table."""

    @staticmethod
    def _entries(db, entity_type, entity_id):
        return db.execute(
            "SELECT * FROM audit_log WHERE entity_type = %s AND entity_id = %s ORDER BY created_at DESC",
            (entity_type, entity_id),
        )

    def test_log_change_creates_entry(self, clean_db):
        from core.audit import AuditLogger, AuditAction

        logger = AuditLogger(clean_db)
        entity_id = uuid4()
        changes = {"status": {"old": "reserved", "new": "confirmed"}}

        logger.log_change("booking", entity_id, AuditAction.UPDATE, changes, user_id=ADMIN_ID)

        entries = self._entries(clean_db, "booking", entity_id)
        assert len(entries) == 1
        assert entries[0]["action"] == "update"
        assert str(entries[0]["user_id"]) == str(ADMIN_ID)
        # JSONB comes back as dict
        assert entries[0]["changes"] == changes

    def test_rolled_back_with_transaction(self, clean_db):
        from core.audit import AuditLogger, AuditAction

        logger = AuditLogger(clean_db)
        entity_id = uuid4()

        with pytest.raises(RuntimeError):
            with clean_db.transaction() as tx:
                logger.log_change("booking", entity_id, AuditAction.CREATE, {"created": {}}, tx=tx)
                raise RuntimeError("abort")

        assert self._entries(clean_db, "booking", entity_id) == []
