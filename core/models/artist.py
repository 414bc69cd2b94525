"""Artist domain model (read-only to the booking engine)."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Artist(BaseModel):
    """Tattoo artist profile as stored. Profile editing lives elsewhere."""

    id: UUID
    user_id: UUID
    display_name: str
    approved: bool
    hourly_rate_cents: int | None = None
    timezone: str = "UTC"
    created_at: datetime

    model_config = {"from_attributes": True}
