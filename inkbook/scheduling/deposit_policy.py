"""Deposit policy evaluation: how much a booking owes and whether it is refundable."""

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from inkbook.errors import PolicyNotConfigured
from inkbook.schemas.policy_schema import (
    DepositQuote,
    FlatDepositPolicy,
    PercentDepositPolicy,
)
from inkbook.utils import ensure_utc

logger = logging.getLogger(__name__)

Policy = Union[PercentDepositPolicy, FlatDepositPolicy]


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_deposit(
    policy: Optional[Policy], price_cents: int, artist_id: str = "unknown"
) -> DepositQuote:
    """
    Compute the deposit owed for ``price_cents`` under ``policy``.

    A free appointment never needs a deposit, even with no policy at all.

    Raises:
        PolicyNotConfigured: If a paid appointment has no usable policy.
    """
    if price_cents < 0:
        raise ValueError(f"price_cents must be >= 0, got {price_cents}")
    if price_cents == 0:
        return DepositQuote(
            amount_cents=0,
            non_refundable=policy.non_refundable if policy is not None else False,
        )

    if policy is None:
        raise PolicyNotConfigured(artist_id, "no deposit policy on file")

    if isinstance(policy, FlatDepositPolicy):
        if not policy.amount_cents:
            raise PolicyNotConfigured(artist_id, "flat mode requires amount_cents > 0")
        amount = policy.amount_cents
    else:
        if not policy.percent:
            raise PolicyNotConfigured(artist_id, "percent mode requires percent > 0")
        raw = _round_half_up(Decimal(price_cents) * Decimal(str(policy.percent)))
        amount = max(raw, policy.min_cents)
        if policy.max_cents is not None:
            amount = min(amount, policy.max_cents)
        if amount != raw:
            logger.debug("Deposit clamped from %d to %d for %s", raw, amount, artist_id)

    return DepositQuote(amount_cents=amount, non_refundable=policy.non_refundable)


def cutoff_deadline(start_at: datetime, cutoff_hours: int) -> datetime:
    """Last instant at which a penalty-free cancellation is still possible."""
    return ensure_utc(start_at) - timedelta(hours=cutoff_hours)


def is_refund_eligible(
    non_refundable: bool, start_at: datetime, cutoff_hours: int, now: datetime
) -> bool:
    """Refundable unless the deposit is non-refundable and ``now`` is inside the cutoff."""
    if not non_refundable:
        return True
    return ensure_utc(now) < cutoff_deadline(start_at, cutoff_hours)
