"""
Discount rule evaluation.

Rule sources are checked in precedence order (instance rules, then template
rules). Within a source the first rule whose condition passes wins, and the
first source that yields a match decides the discount: this is not a search
for the largest discount. Capping against the price is left to pricing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from classcredits.core.enums import DiscountSource
from classcredits.schemas.discount import (
    AlwaysCondition,
    DiscountRule,
    FixedAmountDiscount,
    HoursBeforeMaxCondition,
    HoursBeforeMinCondition,
    PercentageDiscount,
)

logger = logging.getLogger(__name__)

_SECONDS_PER_HOUR = 3600

_SCOPE_BY_SOURCE = {
    DiscountSource.INSTANCE_RULE: "instance",
    DiscountSource.TEMPLATE_RULE: "template",
}


@dataclass(frozen=True)
class DiscountContext:
    now: datetime
    class_start_time: datetime
    instance_rules: Sequence[Any] = field(default_factory=tuple)
    template_rules: Sequence[Any] = field(default_factory=tuple)
    # Needed only for percentage discounts
    original_price_cents: int = 0

    @property
    def hours_until_start(self) -> float:
        return (self.class_start_time - self.now).total_seconds() / _SECONDS_PER_HOUR


@dataclass(frozen=True)
class DiscountEvaluation:
    """The single matched rule, before capping."""

    source: DiscountSource
    rule_id: str
    rule_name: str
    discount_type: str
    raw_discount_cents: int


def _coerce_rules(raw_rules: Iterable[Any], source: DiscountSource) -> List[DiscountRule]:
    rules: List[DiscountRule] = []
    for raw in raw_rules or ():
        if isinstance(raw, DiscountRule):
            parsed = raw
        else:
            try:
                parsed = DiscountRule.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed %s discount rule %r: %s", source.value, raw, exc)
                continue
        if parsed.scope is not None and parsed.scope != _SCOPE_BY_SOURCE[source]:
            logger.warning(
                "Skipping %s scoped discount rule %s stored as %s", parsed.scope, parsed.id, source.value
            )
            continue
        rules.append(parsed)
    return rules


def condition_passes(rule: DiscountRule, context: DiscountContext) -> bool:
    condition = rule.condition
    if isinstance(condition, AlwaysCondition):
        return True
    hours = context.hours_until_start
    if isinstance(condition, HoursBeforeMinCondition):
        return hours >= condition.hours
    if isinstance(condition, HoursBeforeMaxCondition):
        return 0 <= hours <= condition.hours
    raise ValueError(f"Unsupported discount condition: {condition!r}")


def raw_discount_cents(rule: DiscountRule, original_price_cents: int) -> int:
    discount = rule.discount
    if isinstance(discount, FixedAmountDiscount):
        return int(discount.value)
    if isinstance(discount, PercentageDiscount):
        amount = Decimal(original_price_cents) * Decimal(discount.value) / Decimal(100)
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    raise ValueError(f"Unsupported discount type: {discount!r}")


class DiscountEngine:
    """Stateless evaluator over ordered rule sources."""

    def sources(self, context: DiscountContext) -> List[Tuple[DiscountSource, List[DiscountRule]]]:
        return [
            (DiscountSource.INSTANCE_RULE, _coerce_rules(context.instance_rules, DiscountSource.INSTANCE_RULE)),
            (DiscountSource.TEMPLATE_RULE, _coerce_rules(context.template_rules, DiscountSource.TEMPLATE_RULE)),
        ]

    def evaluate(self, context: DiscountContext) -> Optional[DiscountEvaluation]:
        """Return the first passing rule of the first source that has one, or None."""
        for source, rules in self.sources(context):
            for rule in rules:
                if not condition_passes(rule, context):
                    continue
                return DiscountEvaluation(
                    source=source,
                    rule_id=rule.id,
                    rule_name=rule.name,
                    discount_type=rule.discount.type,
                    raw_discount_cents=raw_discount_cents(rule, context.original_price_cents),
                )
        return None
