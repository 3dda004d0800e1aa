"""Availability data models: recurring weekly hours plus date exceptions.

All validation happens here, at the model boundary. Invalid hours are
rejected rather than clamped, so an artist can never persist an
inconsistent calendar.
"""

import re
from datetime import date
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from inkbook.config import settings
from inkbook.utils import hhmm_to_minutes, is_hhmm

WEEKDAY_KEYS: tuple[str, ...] = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def weekday_key(day: date) -> str:
    """Map a date to its ``sun``..``sat`` key (Python counts Monday as 0)."""
    return WEEKDAY_KEYS[(day.weekday() + 1) % 7]


def _empty_week() -> dict[str, list["TimeRange"]]:
    return {key: [] for key in WEEKDAY_KEYS}


class TimeRange(BaseModel):
    """A wall-clock ``[start, end)`` window; ``end`` may be ``24:00``."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if not is_hhmm(value):
            raise ValueError(f"time must be HH:MM (24h), got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start == "24:00":
            raise ValueError("range cannot start at 24:00")
        if self.end_minutes <= self.start_minutes:
            raise ValueError(f"range end {self.end} must be after start {self.start}")
        return self

    @property
    def start_minutes(self) -> int:
        return hhmm_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return hhmm_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes


def _check_ranges(label: str, ranges: list[TimeRange]) -> None:
    """Ranges must be sorted ascending and must not overlap (touching is fine)."""
    for prev, cur in zip(ranges, ranges[1:]):
        if cur.start_minutes < prev.start_minutes:
            raise ValueError(
                f"{label}: ranges must be sorted ascending "
                f"({cur.start}-{cur.end} listed after {prev.start}-{prev.end})"
            )
        if cur.start_minutes < prev.end_minutes:
            raise ValueError(
                f"{label}: range {cur.start}-{cur.end} overlaps {prev.start}-{prev.end}"
            )


class Availability(BaseModel):
    """An artist's bookable hours, interpreted in ``timezone``."""

    artist_id: str = Field(min_length=1)
    timezone: str = Field(default_factory=lambda: settings.availability.default_timezone)
    slot_minutes: int = 60
    buffer_minutes: int = 0
    weekly: dict[str, list[TimeRange]] = Field(default_factory=_empty_week)
    exceptions: dict[str, list[TimeRange]] = Field(default_factory=dict)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {value!r}") from None
        return value

    @field_validator("slot_minutes")
    @classmethod
    def _check_slot_minutes(cls, value: int) -> int:
        low = settings.availability.min_slot_minutes
        high = settings.availability.max_slot_minutes
        if not low <= value <= high:
            raise ValueError(f"slot_minutes must be between {low} and {high}, got {value}")
        return value

    @field_validator("buffer_minutes")
    @classmethod
    def _check_buffer_minutes(cls, value: int) -> int:
        high = settings.availability.max_buffer_minutes
        if not 0 <= value <= high:
            raise ValueError(f"buffer_minutes must be between 0 and {high}, got {value}")
        return value

    @field_validator("weekly")
    @classmethod
    def _check_weekly(cls, value: dict[str, list[TimeRange]]) -> dict[str, list[TimeRange]]:
        unknown = sorted(set(value) - set(WEEKDAY_KEYS))
        if unknown:
            raise ValueError(f"unknown weekday keys {unknown}; expected {list(WEEKDAY_KEYS)}")
        week = {key: list(value.get(key, [])) for key in WEEKDAY_KEYS}
        for key, ranges in week.items():
            _check_ranges(f"weekly[{key}]", ranges)
        return week

    @field_validator("exceptions")
    @classmethod
    def _check_exceptions(
        cls, value: dict[str, list[TimeRange]]
    ) -> dict[str, list[TimeRange]]:
        for key, ranges in value.items():
            if not _ISO_DATE_RE.match(key):
                raise ValueError(f"exception key must be YYYY-MM-DD, got {key!r}")
            try:
                date.fromisoformat(key)
            except ValueError:
                raise ValueError(f"exception key is not a calendar date: {key!r}") from None
            _check_ranges(f"exceptions[{key}]", ranges)
        return dict(sorted(value.items()))

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def ranges_for(self, day: date) -> list[TimeRange]:
        """Open ranges for ``day``: the exception entry if present, else the weekday."""
        override: Optional[list[TimeRange]] = self.exceptions.get(day.isoformat())
        if override is not None:
            return list(override)
        return list(self.weekly[weekday_key(day)])

    def is_closed(self, day: date) -> bool:
        return not self.ranges_for(day)
