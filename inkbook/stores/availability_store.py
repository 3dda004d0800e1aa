"""
In-memory availability store.

In production, this would persist to the marketplace database; the
contract (validate on upsert, exact round-trip on get) stays the same.
"""

import logging
import threading
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from inkbook.errors import NotFound, ValidationError
from inkbook.schemas.availability_schema import Availability

logger = logging.getLogger(__name__)


class AvailabilityStore:
    """Per-artist availability records, mutated only by the owning artist."""

    def __init__(self) -> None:
        self._records: dict[str, Availability] = {}
        self._lock = threading.Lock()

    def get(self, artist_id: str) -> Availability:
        """Return the artist's availability or raise NotFound."""
        record = self.find(artist_id)
        if record is None:
            raise NotFound("Availability", artist_id)
        return record

    def find(self, artist_id: str) -> Optional[Availability]:
        with self._lock:
            record = self._records.get(artist_id)
            return record.model_copy(deep=True) if record is not None else None

    def upsert(
        self, artist_id: str, data: Union[Availability, dict[str, Any]]
    ) -> Availability:
        """
        Validate and store availability for ``artist_id``.

        Raises:
            ValidationError: If the payload fails validation or names another artist.
        """
        payload = data.model_dump() if isinstance(data, Availability) else dict(data)
        payload.setdefault("artist_id", artist_id)
        if payload["artist_id"] != artist_id:
            raise ValidationError(
                "availability artist_id does not match the target artist",
                {"artist_id": artist_id, "payload_artist_id": payload["artist_id"]},
            )

        try:
            record = Availability.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic("Invalid availability payload", exc) from exc

        with self._lock:
            self._records[artist_id] = record.model_copy(deep=True)
        logger.info(
            "Availability saved for %s (tz=%s, slot=%dmin, buffer=%dmin)",
            artist_id, record.timezone, record.slot_minutes, record.buffer_minutes,
        )
        return record

    def reset(self) -> None:
        """Clear all records. Used by test fixtures for isolation."""
        with self._lock:
            self._records.clear()
