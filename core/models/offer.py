"""Offer (artist quote with candidate slots) domain models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from utils.timezone import parse_iso


class OfferCreate(BaseModel):
    """Data required for an artist to quote a customer request."""

    request_id: UUID = Field(..., description="Customer request being answered")
    quoted_amount_cents: int = Field(..., ge=1)
    deposit_percent: int = Field(..., ge=0, le=100)
    available_slots: list[str] = Field(..., min_length=1)
    duration_minutes: int | None = Field(None, ge=1)
    message: str = Field(..., min_length=1, max_length=2000)
    expires_at: datetime | None = None

    @field_validator("available_slots")
    @classmethod
    def _slots_are_iso(cls, slots: list[str]) -> list[str]:
        for slot in slots:
            try:
                parse_iso(slot)
            except ValueError:
                raise ValueError(f"Slot {slot!r} is not a timezone-aware ISO datetime")
        return slots


class Offer(BaseModel):
    """Full offer entity as stored."""

    id: UUID
    artist_id: UUID
    request_id: UUID
    quoted_amount_cents: int
    deposit_percent: int
    available_slots: list[str]
    duration_minutes: int
    message: str
    expires_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def deposit_amount_cents(self) -> int:
        return round(self.quoted_amount_cents * self.deposit_percent / 100)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def slot_instants(self) -> list[datetime]:
        """Candidate slots as UTC instants, in offer order."""
        return [parse_iso(slot) for slot in self.available_slots]

    def offers_slot(self, chosen: datetime) -> bool:
        """Whether `chosen` is one of the candidate slots (compared as instants)."""
        return chosen in self.slot_instants()
