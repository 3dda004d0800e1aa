"""Shared time helpers used across the scheduling engine."""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$|^24:00$")

MINUTES_PER_DAY = 24 * 60


def is_hhmm(value: str) -> bool:
    """Return True for a 24h ``HH:MM`` string; ``24:00`` is allowed as end of day."""
    return bool(_HHMM_RE.match(value or ""))


def hhmm_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight.

    Examples:
        >>> hhmm_to_minutes("09:30")
        570
        >>> hhmm_to_minutes("24:00")
        1440
    """
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def local_instant(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    """Wall-clock minutes on ``day`` in ``tz`` as a UTC instant."""
    # Same-zone arithmetic is wall-clock arithmetic; the offset is resolved afterwards.
    local = datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(minutes=minutes)
    return local.astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def ensure_utc(value: datetime) -> datetime:
    """Reject naive datetimes and normalise aware ones to UTC."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600
