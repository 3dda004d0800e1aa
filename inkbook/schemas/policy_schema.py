"""Deposit policy models: a closed ``percent | flat`` variant per artist."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class _PolicyBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    non_refundable: bool = True
    cutoff_hours: int = Field(default=0, ge=0)


class PercentDepositPolicy(_PolicyBase):
    """Deposit is a share of the price, bounded by ``min_cents``/``max_cents``."""

    mode: Literal["percent"] = "percent"
    percent: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    min_cents: int = Field(default=0, ge=0)
    max_cents: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PercentDepositPolicy":
        if self.max_cents is not None and self.min_cents > self.max_cents:
            raise ValueError(
                f"min_cents ({self.min_cents}) cannot exceed max_cents ({self.max_cents})"
            )
        return self


class FlatDepositPolicy(_PolicyBase):
    """Deposit is a fixed amount regardless of price."""

    mode: Literal["flat"] = "flat"
    amount_cents: Optional[int] = Field(default=None, ge=0)


DepositPolicy = Annotated[
    Union[PercentDepositPolicy, FlatDepositPolicy],
    Field(discriminator="mode"),
]

_policy_adapter: TypeAdapter[Any] = TypeAdapter(DepositPolicy)


def parse_deposit_policy(data: Any) -> Union[PercentDepositPolicy, FlatDepositPolicy]:
    """Validate a raw mapping (or an existing model) into a policy variant."""
    if isinstance(data, (PercentDepositPolicy, FlatDepositPolicy)):
        return data
    return _policy_adapter.validate_python(data)


class DepositQuote(BaseModel):
    """Computed deposit for one booking."""

    model_config = ConfigDict(frozen=True)

    amount_cents: int
    non_refundable: bool
