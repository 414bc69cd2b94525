"""Availability routes: public open windows and slots, artist block management."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import Field

from api.base import request_id_of, success_response
from api.middleware import require_actor
from core.models import AvailabilityBlockCreate, AvailabilityBlockUpdate, WeeklyScheduleCreate


class BlockCreateRequest(AvailabilityBlockCreate):
    """Block payload; admins name the artist, artists act on their own profile."""

    artist_id: UUID | None = Field(None, description="Required for admins")


def _ok(request: Request, data) -> dict:
    return success_response(data, request_id=request_id_of(request)).model_dump(mode="json")


def create_availability_router(services: dict) -> APIRouter:
    router = APIRouter()

    availability_svc = services["availability"]

    # -------------------------------------------------------------------------
    # Public reads
    # -------------------------------------------------------------------------

    @router.get("/availability")
    def list_availability(request: Request, artist_id: UUID | None = Query(None)):
        windows = availability_svc.list_future_unbooked_blocks(artist_id)
        return _ok(request, [w.model_dump(mode="json") for w in windows])

    @router.get("/artists/{artist_id}/slots")
    def list_open_slots(
        request: Request,
        artist_id: UUID,
        duration_minutes: int = Query(..., ge=1, le=1440),
        step_minutes: int | None = Query(None, ge=5, le=240),
    ):
        slots = availability_svc.list_open_slots(artist_id, duration_minutes, step_minutes)
        return _ok(request, [s.model_dump(mode="json") for s in slots])

    # -------------------------------------------------------------------------
    # Artist block management
    # -------------------------------------------------------------------------

    @router.post("/availability", status_code=201)
    def create_block(request: Request, body: BlockCreateRequest):
        actor = require_actor(request)
        artist_id = availability_svc.artist_for_actor(actor, body.artist_id)
        data = AvailabilityBlockCreate(start_at=body.start_at, end_at=body.end_at, note=body.note)
        block = availability_svc.create_block(artist_id, data, actor=actor)
        return _ok(request, block.model_dump(mode="json"))

    @router.post("/artists/{artist_id}/availability/weekly", status_code=201)
    def generate_weekly(request: Request, artist_id: UUID, body: WeeklyScheduleCreate):
        actor = require_actor(request)
        blocks = availability_svc.generate_weekly_blocks(artist_id, body, actor=actor)
        return _ok(request, [b.model_dump(mode="json") for b in blocks])

    @router.patch("/availability/{block_id}")
    def update_block(request: Request, block_id: UUID, body: AvailabilityBlockUpdate):
        actor = require_actor(request)
        block = availability_svc.update_block(block_id, body, actor=actor)
        return _ok(request, block.model_dump(mode="json"))

    @router.delete("/availability/{block_id}")
    def delete_block(request: Request, block_id: UUID):
        actor = require_actor(request)
        availability_svc.delete_block(block_id, actor=actor)
        return _ok(request, {"id": str(block_id), "deleted": True})

    return router
