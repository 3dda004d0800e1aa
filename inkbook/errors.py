"""
Error taxonomy for the scheduling engine.

Every error carries a stable ``code`` and a ``details`` dict with enough
context (booking id, requested vs. actual state, conflicting interval) for
the caller to act without re-deriving it from logs.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError


class BookingEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "ENGINE_ERROR"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render as the error envelope returned to the API layer."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(BookingEngineError):
    """Malformed availability, policy, or slot request."""

    code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, message: str, exc: PydanticValidationError) -> "ValidationError":
        errors = [
            {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        return cls(message, {"errors": errors})


class NotFound(BookingEngineError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, key: str) -> None:
        super().__init__(f"{resource} '{key}' not found", {"resource": resource, "key": key})


class Forbidden(BookingEngineError):
    """Actor is not a party to the booking."""

    code = "FORBIDDEN"


class Conflict(BookingEngineError):
    """Slot no longer free, or a concurrent transition won the race."""

    code = "CONFLICT"
    retryable = True

    def __init__(
        self,
        message: str,
        conflicting_start: Optional[datetime] = None,
        conflicting_end: Optional[datetime] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if conflicting_start is not None and conflicting_end is not None:
            details["conflicting_interval"] = {
                "start": conflicting_start.isoformat(),
                "end": conflicting_end.isoformat(),
            }
        super().__init__(message, details)


class ReservationTimeout(Conflict):
    """The per-artist critical section could not be acquired in time."""

    code = "RESERVATION_TIMEOUT"

    def __init__(self, artist_id: str, timeout_sec: float) -> None:
        super().__init__(
            f"Timed out after {timeout_sec}s waiting to reserve for artist '{artist_id}'",
            details={"artist_id": artist_id, "timeout_sec": timeout_sec},
        )


class CooldownActive(BookingEngineError):
    """Client recently cancelled or denied with this artist."""

    code = "COOLDOWN_ACTIVE"

    def __init__(self, client_id: str, artist_id: str, expires_at: datetime) -> None:
        super().__init__(
            f"Client '{client_id}' cannot book artist '{artist_id}' "
            f"until {expires_at.isoformat()}",
            {"client_id": client_id, "artist_id": artist_id, "expires_at": expires_at.isoformat()},
        )
        self.expires_at = expires_at


class InvalidTransition(BookingEngineError):
    """State machine rule violation."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        booking_id: str,
        current: str,
        requested: str,
        role: str,
        reason: str = "",
    ) -> None:
        message = (
            f"Cannot move booking '{booking_id}' from '{current}' to '{requested}' "
            f"as {role}"
        )
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            {
                "booking_id": booking_id,
                "current_state": current,
                "requested_state": requested,
                "actor_role": role,
                "reason": reason,
            },
        )
        self.current = current
        self.requested = requested
        self.role = role


class PolicyNotConfigured(BookingEngineError):
    """Deposit policy missing or incomplete for a paid appointment."""

    code = "POLICY_NOT_CONFIGURED"

    def __init__(self, artist_id: str, reason: str) -> None:
        super().__init__(
            f"Deposit policy for artist '{artist_id}' is not configured: {reason}",
            {"artist_id": artist_id, "reason": reason},
        )


class UpstreamFailure(BookingEngineError):
    """Payment processor failed; the booking was not advanced."""

    code = "UPSTREAM_FAILURE"
    retryable = True
