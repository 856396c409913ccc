"""
Discount rule schemas.

Rules are stored as JSON on class instances (instance scope) and on the
template snapshot (template scope). Conditions and discounts are tagged unions
keyed on ``type`` so new variants can be added without touching stored data.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from classcredits.core.enums import DiscountSource


class AlwaysCondition(BaseModel):
    type: Literal["always"] = "always"


class HoursBeforeMinCondition(BaseModel):
    """Passes when the class starts at least ``hours`` from now (early bird)."""

    type: Literal["hours_before_min"] = "hours_before_min"
    hours: float = Field(ge=0)


class HoursBeforeMaxCondition(BaseModel):
    """Passes when the class starts within ``hours`` from now (last minute)."""

    type: Literal["hours_before_max"] = "hours_before_max"
    hours: float = Field(ge=0)


DiscountCondition = Annotated[
    Union[AlwaysCondition, HoursBeforeMinCondition, HoursBeforeMaxCondition],
    Field(discriminator="type"),
]


class FixedAmountDiscount(BaseModel):
    """Flat discount in cents."""

    type: Literal["fixed_amount"] = "fixed_amount"
    value: int = Field(ge=0)


class PercentageDiscount(BaseModel):
    """Discount as a whole-number percentage of the price."""

    type: Literal["percentage"] = "percentage"
    value: int = Field(ge=0, le=100)


DiscountValue = Annotated[
    Union[FixedAmountDiscount, PercentageDiscount],
    Field(discriminator="type"),
]


class DiscountRule(BaseModel):
    """
    A conditional discount.

    The list a rule is stored in decides its scope. ``scope`` is optional and
    only tags the rule: a rule whose tag disagrees with its list is skipped.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    condition: DiscountCondition
    discount: DiscountValue
    scope: Optional[Literal["template", "instance"]] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None


class AppliedDiscount(BaseModel):
    """Discount snapshot frozen on a booking."""

    source: DiscountSource
    discount_type: str
    rule_id: Optional[str] = None
    rule_name: str
    discount_cents: int = Field(ge=0)
    credits_saved: int = Field(ge=0)
