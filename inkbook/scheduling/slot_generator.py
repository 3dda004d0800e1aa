"""
Slot generation: turns an artist's hours into bookable windows for one date.

Pure computation over already-fetched data. Wall-clock ranges are converted
to absolute instants once, at the boundary, and every overlap comparison
afterwards happens in UTC.

Usage:
    slots = generate_slots(availability, date(2025, 3, 17), bookings, now,
                           duration_minutes=120, cutoff_hours=48)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from inkbook.errors import ValidationError
from inkbook.schemas.availability_schema import Availability
from inkbook.schemas.booking_schema import Booking, Slot
from inkbook.utils import MINUTES_PER_DAY, ensure_utc, local_instant, overlaps

logger = logging.getLogger(__name__)


def resolve_duration(availability: Availability, duration_minutes: Optional[int]) -> int:
    """Default to one slot; otherwise require a positive multiple of ``slot_minutes``."""
    if duration_minutes is None:
        return availability.slot_minutes
    if duration_minutes <= 0 or duration_minutes % availability.slot_minutes:
        raise ValidationError(
            f"duration_minutes must be a positive multiple of {availability.slot_minutes}, "
            f"got {duration_minutes}",
            {"duration_minutes": duration_minutes, "slot_minutes": availability.slot_minutes},
        )
    return duration_minutes


def open_windows(availability: Availability, day: date) -> list[tuple[datetime, datetime]]:
    """The day's open ranges as UTC ``(start, end)`` pairs, zero-length ranges dropped."""
    zone = availability.zone
    windows = []
    for time_range in availability.ranges_for(day):
        start = local_instant(day, time_range.start_minutes, zone)
        end = local_instant(day, time_range.end_minutes, zone)
        if end > start:
            windows.append((start, end))
    return windows


def day_bounds(
    availability: Availability, day: date, pad_minutes: int = 0
) -> tuple[datetime, datetime]:
    """UTC bounds of the artist's local ``day``, widened by ``pad_minutes`` each side."""
    pad = timedelta(minutes=pad_minutes)
    zone = availability.zone
    return (
        local_instant(day, 0, zone) - pad,
        local_instant(day, MINUTES_PER_DAY, zone) + pad,
    )


def blocked_intervals(
    bookings: Iterable[Booking], buffer_minutes: int, exclude_id: Optional[str] = None
) -> list[tuple[datetime, datetime]]:
    """Buffered intervals of the bookings that still occupy the calendar."""
    return [
        b.blocked_interval(buffer_minutes)
        for b in bookings
        if b.occupies_calendar and b.id != exclude_id
    ]


def find_conflict(
    start: datetime,
    end: datetime,
    blocked: Iterable[tuple[datetime, datetime]],
) -> Optional[tuple[datetime, datetime]]:
    """Return the first blocked interval overlapping ``[start, end)``, if any."""
    for b_start, b_end in blocked:
        if overlaps(start, end, b_start, b_end):
            return b_start, b_end
    return None


def _make_slot(availability: Availability, day: date, start: datetime, end: datetime) -> Slot:
    zone = availability.zone
    return Slot(
        date=day.isoformat(),
        start_at=start,
        end_at=end,
        local_start=start.astimezone(zone).strftime("%H:%M"),
        local_end=end.astimezone(zone).strftime("%H:%M"),
        duration_minutes=int((end - start).total_seconds() // 60),
    )


def candidate_slots(
    availability: Availability, day: date, duration_minutes: int
) -> list[Slot]:
    """Every window of ``duration_minutes`` on the slot grid that fits an open range."""
    step = timedelta(minutes=availability.slot_minutes)
    length = timedelta(minutes=duration_minutes)
    candidates = []
    for window_start, window_end in open_windows(availability, day):
        cursor = window_start
        while cursor + length <= window_end:
            candidates.append(_make_slot(availability, day, cursor, cursor + length))
            cursor += step
    return candidates


def generate_slots(
    availability: Availability,
    day: date,
    bookings: Iterable[Booking],
    now: datetime,
    duration_minutes: Optional[int] = None,
    cutoff_hours: int = 0,
) -> list[Slot]:
    """
    Bookable slots for ``day``, ascending by start.

    Args:
        availability: The artist's validated availability.
        day: Calendar date in the artist's timezone.
        bookings: Existing bookings for the artist around ``day``.
        now: Current instant (timezone-aware).
        duration_minutes: Requested length; defaults to ``slot_minutes``.
        cutoff_hours: Minimum lead time before a slot may start.

    Raises:
        ValidationError: If ``duration_minutes`` is not a multiple of ``slot_minutes``.
    """
    duration = resolve_duration(availability, duration_minutes)
    earliest = ensure_utc(now) + timedelta(hours=cutoff_hours)
    blocked = blocked_intervals(bookings, availability.buffer_minutes)

    seen: set[datetime] = set()
    slots = []
    for slot in candidate_slots(availability, day, duration):
        if slot.start_at in seen:
            continue
        if find_conflict(slot.start_at, slot.end_at, blocked) is not None:
            continue
        if slot.start_at < earliest:
            continue
        seen.add(slot.start_at)
        slots.append(slot)

    slots.sort(key=lambda s: s.start_at)
    logger.debug(
        "Generated %d slot(s) for %s on %s (duration=%d)",
        len(slots), availability.artist_id, day.isoformat(), duration,
    )
    return slots


def slot_fits_availability(availability: Availability, slot: Slot) -> bool:
    """True when ``slot`` is one of the grid candidates for its date."""
    try:
        day = date.fromisoformat(slot.date)
        duration = resolve_duration(availability, slot.duration_minutes)
    except (ValueError, ValidationError):
        return False
    return any(
        c.start_at == slot.start_at and c.end_at == slot.end_at
        for c in candidate_slots(availability, day, duration)
    )
