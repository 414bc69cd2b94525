"""Tests for utils/user_context.py - actor identity propagation via contextvars."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from utils.user_context import (
    Actor,
    ActorRole,
    actor_context,
    clear_current_actor,
    get_current_actor,
    set_current_actor,
)


def _actor(role: ActorRole = ActorRole.CUSTOMER) -> Actor:
    return Actor(id=uuid4(), role=role)


class TestActor:
    def test_admin_flag(self):
        assert _actor(ActorRole.ADMIN).is_admin
        assert not _actor(ActorRole.ARTIST).is_admin

    def test_role_parsed_from_string(self):
        actor = Actor(id=uuid4(), role="artist")
        assert actor.role == ActorRole.ARTIST

    def test_frozen(self):
        actor = _actor()
        with pytest.raises(ValidationError):
            actor.role = ActorRole.ADMIN


class TestGetCurrent:
    def test_actor_none_without_set(self):
        clear_current_actor()
        assert get_current_actor() is None

    def test_set_then_get(self):
        actor = _actor()
        set_current_actor(actor)
        assert get_current_actor() == actor
        clear_current_actor()


class TestActorContextManager:
    def test_sets_and_clears(self):
        actor = _actor()
        with actor_context(actor):
            assert get_current_actor() == actor
        assert get_current_actor() is None

    def test_restores_previous(self):
        outer, inner = _actor(), _actor(ActorRole.ADMIN)

        with actor_context(outer):
            with actor_context(inner):
                assert get_current_actor() == inner
            assert get_current_actor() == outer

    def test_clears_on_exception(self):
        with pytest.raises(ValueError):
            with actor_context(_actor()):
                raise ValueError("test exception")

        assert get_current_actor() is None
