"""
Interval arithmetic for availability and booking windows.

All intervals are half-open: [start, end). Two appointments that touch
(one ends at 12:00, the next starts at 12:00) do not overlap.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from core.errors import InvalidFormatError
from utils.timezone import local_to_utc

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """True iff [a_start, a_end) and [b_start, b_end) share any instant."""
    return a_start < b_end and b_start < a_end


def contains(outer_start, outer_end, inner_start, inner_end) -> bool:
    """True iff [inner_start, inner_end) lies entirely within [outer_start, outer_end)."""
    return outer_start <= inner_start and outer_end >= inner_end


def time_of_day_to_minutes(value: str) -> int:
    """
    Parse "HH:MM" or "HH:MM:SS" into minutes since midnight.

    Seconds are validated then dropped.

    Raises:
        InvalidFormatError: Wrong shape, or hour/minute/second out of range
    """
    match = _TIME_OF_DAY.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidFormatError(f"Time of day must be HH:MM or HH:MM:SS, got {value!r}")

    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = int(match.group(3) or 0)

    if hours > 23 or minutes > 59 or seconds > 59:
        raise InvalidFormatError(f"Time of day out of range: {value!r}")

    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> time:
    """Inverse of time_of_day_to_minutes for 0 <= minutes < 1440."""
    return time(hour=minutes // 60, minute=minutes % 60)


class SlotRange:
    """
    Fixed-length candidate slots inside a window.

    Lazy and restartable: each iteration starts over from window_start.
    The step may be shorter than the slot, giving overlapping candidates
    (2-hour slots offered every 30 minutes).
    """

    def __init__(
        self,
        window_start: datetime,
        window_end: datetime,
        slot_duration: timedelta,
        step: timedelta,
    ):
        if slot_duration <= timedelta(0):
            raise ValueError("slot_duration must be positive")
        if step <= timedelta(0):
            raise ValueError("step must be positive")

        self.window_start = window_start
        self.window_end = window_end
        self.slot_duration = slot_duration
        self.step = step

    def __iter__(self) -> Iterator[tuple[datetime, datetime]]:
        slot_start = self.window_start
        while slot_start + self.slot_duration <= self.window_end:
            yield slot_start, slot_start + self.slot_duration
            slot_start += self.step

    def __repr__(self) -> str:
        return (
            f"SlotRange({self.window_start.isoformat()} .. {self.window_end.isoformat()}, "
            f"slot={self.slot_duration}, step={self.step})"
        )


def enumerate_slots(
    window_start: datetime,
    window_end: datetime,
    slot_duration: timedelta,
    step: timedelta,
) -> SlotRange:
    """Candidate (slot_start, slot_end) pairs inside a window. See SlotRange."""
    return SlotRange(window_start, window_end, slot_duration, step)


@dataclass(frozen=True)
class GeneratedWindow:
    """A concrete UTC window produced from a recurring weekly definition."""

    start_at: datetime
    end_at: datetime
    note: str | None = None


def day_of_week(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def expand_weekly_windows(
    windows: Iterable,
    start_date: date,
    days: int,
    tz_name: str,
) -> list[GeneratedWindow]:
    """
    Expand recurring weekly windows into concrete UTC windows.

    Args:
        windows: Objects with day_of_week, start_time, end_time, note
        start_date: First local calendar day to generate for
        days: Number of consecutive days to cover
        tz_name: Artist's IANA timezone; wall-clock times are local to it

    Returns:
        Generated windows ordered by start

    Raises:
        InvalidFormatError: Bad time-of-day string
        ValueError: Unknown timezone
    """
    parsed = []
    for window in windows:
        start_minutes = time_of_day_to_minutes(window.start_time)
        end_minutes = time_of_day_to_minutes(window.end_time)
        parsed.append((window.day_of_week, start_minutes, end_minutes, window.note))

    generated = []
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        weekday = day_of_week(day)
        for dow, start_minutes, end_minutes, note in parsed:
            if dow != weekday:
                continue
            generated.append(GeneratedWindow(
                start_at=local_to_utc(day, minutes_to_time(start_minutes), tz_name),
                end_at=local_to_utc(day, minutes_to_time(end_minutes), tz_name),
                note=note,
            ))

    generated.sort(key=lambda w: w.start_at)
    return generated
