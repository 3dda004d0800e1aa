"""Injectable clocks. All instants are timezone-aware UTC."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol

from inkbook.utils import ensure_utc


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock backed by the host time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Deterministic clock for tests and demos; only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(value)

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new instant."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now
