"""
In-memory deposit policy store.

In production, this would sit alongside the artist profile record.
"""

import logging
import threading
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from inkbook.errors import NotFound, ValidationError
from inkbook.schemas.policy_schema import (
    FlatDepositPolicy,
    PercentDepositPolicy,
    parse_deposit_policy,
)

logger = logging.getLogger(__name__)

PolicyRecord = Union[PercentDepositPolicy, FlatDepositPolicy]


class PolicyStore:
    """Deposit policy per artist. A missing record means no policy is configured."""

    def __init__(self) -> None:
        self._policies: dict[str, PolicyRecord] = {}
        self._lock = threading.Lock()

    def get(self, artist_id: str) -> PolicyRecord:
        policy = self.find(artist_id)
        if policy is None:
            raise NotFound("DepositPolicy", artist_id)
        return policy

    def find(self, artist_id: str) -> Optional[PolicyRecord]:
        with self._lock:
            return self._policies.get(artist_id)

    def set(self, artist_id: str, data: Union[PolicyRecord, dict[str, Any]]) -> PolicyRecord:
        """Validate and store a policy; the variant is chosen by its ``mode``."""
        try:
            policy = parse_deposit_policy(data)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic("Invalid deposit policy", exc) from exc
        with self._lock:
            self._policies[artist_id] = policy
        logger.info("Deposit policy saved for %s (mode=%s)", artist_id, policy.mode)
        return policy

    def reset(self) -> None:
        with self._lock:
            self._policies.clear()
