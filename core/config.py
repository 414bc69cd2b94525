"""Booking engine configuration."""

from pydantic import BaseModel, Field, model_validator


class BookingConfig(BaseModel):
    """
    Booking engine configuration.

    Durations are in minutes, money in cents.
    """

    # Reservation holds
    reservation_hold_minutes: int = Field(
        default=15,
        description="How long a picked slot is held before it lapses",
        ge=1,
        le=120,
    )

    # Availability blocks
    min_block_minutes: int = Field(
        default=30,
        description="Shortest availability block an artist may declare",
        ge=5,
    )
    max_block_minutes: int = Field(
        default=720,  # 12 hours
        description="Longest availability block an artist may declare",
        le=1440,
    )

    # Appointments
    min_booking_minutes: int = Field(
        default=30,
        description="Shortest bookable appointment",
        ge=5,
    )
    max_booking_minutes: int = Field(
        default=720,
        description="Longest bookable appointment",
        le=1440,
    )
    slot_step_minutes: int = Field(
        default=30,
        description="Granularity of candidate slot start times",
        ge=5,
        le=240,
    )
    default_offer_duration_minutes: int = Field(
        default=120,
        description="Appointment length when an offer does not specify one",
        ge=5,
    )

    # Pricing for direct bookings
    default_hourly_rate_cents: int = Field(
        default=15000,
        description="Hourly rate used when the artist has none on file",
        ge=0,
    )
    default_deposit_percent: int = Field(
        default=25,
        description="Deposit share of the quoted amount for direct bookings",
        ge=0,
        le=100,
    )

    # Storage
    transaction_retries: int = Field(
        default=3,
        description="Attempts for a unit of work aborted by the storage engine",
        ge=1,
        le=10,
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "BookingConfig":
        if self.min_block_minutes > self.max_block_minutes:
            raise ValueError("min_block_minutes must not exceed max_block_minutes")
        if self.min_booking_minutes > self.max_booking_minutes:
            raise ValueError("min_booking_minutes must not exceed max_booking_minutes")
        return self
