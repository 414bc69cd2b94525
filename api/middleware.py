"""Request-scoped middleware for API requests."""

from typing import Callable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from api.errors import NotAuthenticatedError
from utils.user_context import Actor, actor_context


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def _actor_from_state(request: Request) -> Actor | None:
    return getattr(request.state, "actor", None)


class ActorContextMiddleware(BaseHTTPMiddleware):
    """
    Binds the authenticated actor to the request's context.

    The auth layer in front of the engine puts an Actor on request.state.actor.
    A custom resolver can be supplied instead (tests, internal callers).
    """

    def __init__(self, app, resolve_actor: Callable[[Request], Actor | None] | None = None):
        super().__init__(app)
        self.resolve_actor = resolve_actor or _actor_from_state

    async def dispatch(self, request: Request, call_next):
        actor = self.resolve_actor(request)
        request.state.actor = actor
        if actor is None:
            return await call_next(request)

        with actor_context(actor):
            return await call_next(request)


def require_actor(request: Request) -> Actor:
    """The request's actor, or NotAuthenticatedError (401)."""
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise NotAuthenticatedError()
    return actor
