"""Availability block domain models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from core.errors import InvalidFormatError
from utils.time_math import time_of_day_to_minutes


class AvailabilityBlockCreate(BaseModel):
    """Data required to declare an availability block."""

    start_at: datetime
    end_at: datetime
    note: str | None = Field(None, max_length=500)


class AvailabilityBlockUpdate(BaseModel):
    """
    Patch for an availability block.

    Only fields present in the request are applied (model_fields_set).
    An explicit note=None clears the note; start_at/end_at cannot be cleared.
    """

    start_at: datetime | None = None
    end_at: datetime | None = None
    note: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def _times_not_null(self) -> "AvailabilityBlockUpdate":
        for field in ("start_at", "end_at"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be cleared")
        return self

    @property
    def changes_time(self) -> bool:
        return bool({"start_at", "end_at"} & self.model_fields_set)

    def changes(self) -> dict:
        """Fields explicitly provided, including explicit nulls."""
        return self.model_dump(include=self.model_fields_set)


class AvailabilityBlock(BaseModel):
    """Full availability block as stored."""

    id: UUID
    artist_id: UUID
    start_at: datetime
    end_at: datetime
    note: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)


class BookableWindow(BaseModel):
    """Public view of an open availability block."""

    id: UUID
    artist_id: UUID
    start_at: datetime
    end_at: datetime
    note: str | None = None


class OpenSlot(BaseModel):
    """A concrete appointment slot nobody holds yet."""

    block_id: UUID
    start_at: datetime
    end_at: datetime


class WeeklyWindow(BaseModel):
    """
    Recurring weekly working hours.

    Expanded into explicit availability blocks; never stored as-is.
    """

    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: str = Field(..., description="Local time HH:MM or HH:MM:SS")
    end_time: str = Field(..., description="Local time HH:MM or HH:MM:SS")
    note: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _parseable(cls, value: str) -> str:
        try:
            time_of_day_to_minutes(value)
        except InvalidFormatError as e:
            raise ValueError(str(e))
        return value

    @model_validator(mode="after")
    def _ordered(self) -> "WeeklyWindow":
        if time_of_day_to_minutes(self.end_time) <= time_of_day_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class WeeklyScheduleCreate(BaseModel):
    """Generate explicit blocks from weekly windows over a date range."""

    windows: list[WeeklyWindow] = Field(..., min_length=1)
    start_date: date
    days: int = Field(28, ge=1, le=120)
    timezone: str = "UTC"
