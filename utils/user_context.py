"""Propagate the authenticated actor through the call stack using contextvars.

Authentication itself happens upstream. By the time a request reaches the
booking engine, the caller identity and role are known; this module only
carries them so the audit trail can attribute changes.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ActorRole(str, Enum):
    """Role of the authenticated caller."""

    CUSTOMER = "customer"
    ARTIST = "artist"
    ADMIN = "admin"


class Actor(BaseModel):
    """An already-authenticated caller."""

    id: UUID
    role: ActorRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


_current_actor: ContextVar[Actor | None] = ContextVar("current_actor", default=None)


def get_current_actor() -> Actor | None:
    """Current actor, or None outside a request (background jobs, payment webhooks)."""
    return _current_actor.get()


def set_current_actor(actor: Actor) -> None:
    """Set current actor in context. Called by the request middleware."""
    _current_actor.set(actor)


def clear_current_actor() -> None:
    """
    Clear actor context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_actor.set(None)


@contextmanager
def actor_context(actor: Actor):
    """
    Temporarily set the current actor.

    Example:
        with actor_context(Actor(id=user_id, role=ActorRole.ARTIST)):
            audit.log_change(...)  # attributed to user_id
    """
    previous = _current_actor.get()
    set_current_actor(actor)
    try:
        yield actor
    finally:
        if previous is None:
            clear_current_actor()
        else:
            set_current_actor(previous)
