"""
Pricing calculator.

Combines a class's effective price with the discount engine result, caps the
discount at the price, converts cents to credits and computes refund tiers.
All rounding is half-up on Decimal values.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
import logging
from typing import Optional

from classcredits.core.config import settings
from classcredits.core.enums import CancelledBy
from classcredits.models.class_instance import ClassInstance
from classcredits.schemas.discount import AppliedDiscount

from .discount_engine import DiscountContext, DiscountEngine, DiscountEvaluation

logger = logging.getLogger(__name__)

FULL_REFUND_PERCENT = 100


@dataclass(frozen=True)
class PriceBreakdown:
    original_price: int
    final_price: int
    discount_amount: int
    discount_percentage: int


@dataclass(frozen=True)
class InstancePriceQuote:
    original_price: int
    final_price: int
    discount_amount: int
    discount_percentage: int
    credits: int
    applied_discount: Optional[AppliedDiscount]


@dataclass(frozen=True)
class RefundQuote:
    refund_percentage: int
    refund_credits: int
    refund_amount_cents: int


class PricingService:
    """Deterministic price, credit and refund arithmetic."""

    def __init__(
        self,
        credit_value_cents: Optional[int] = None,
        discount_engine: Optional[DiscountEngine] = None,
        late_cancellation_refund_percent: Optional[int] = None,
        post_start_refund_percent: Optional[int] = None,
    ):
        self.credit_value_cents = credit_value_cents or settings.credit_value_cents
        self.discount_engine = discount_engine or DiscountEngine()
        self.late_cancellation_refund_percent = (
            settings.late_cancellation_refund_percent
            if late_cancellation_refund_percent is None
            else late_cancellation_refund_percent
        )
        self.post_start_refund_percent = (
            settings.post_start_refund_percent
            if post_start_refund_percent is None
            else post_start_refund_percent
        )

    @staticmethod
    def _round_to_int(value: Decimal) -> int:
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def compute_final_price(
        self, original_price_cents: int, discount: Optional[DiscountEvaluation]
    ) -> PriceBreakdown:
        """Apply a matched discount, never letting the price drop below zero."""
        original = max(0, int(original_price_cents))
        raw = discount.raw_discount_cents if discount else 0
        final_price = max(0, original - raw)
        discount_amount = original - final_price
        if original == 0:
            percentage = 0
        else:
            percentage = self._round_to_int(Decimal(discount_amount) * 100 / Decimal(original))
        return PriceBreakdown(
            original_price=original,
            final_price=final_price,
            discount_amount=discount_amount,
            discount_percentage=percentage,
        )

    def credits_for_price(self, cents: int) -> int:
        return self._round_to_int(Decimal(cents) / Decimal(self.credit_value_cents))

    def cents_for_credits(self, credits: int) -> int:
        return int(credits) * self.credit_value_cents

    def refund_percentage(
        self,
        class_start_time: datetime,
        cancellation_window_hours: int,
        now: datetime,
        cancelled_by: CancelledBy | str = CancelledBy.CONSUMER,
    ) -> int:
        """
        Refund tier for a cancellation at ``now``.

        Business-initiated cancellations always refund in full. Consumers get a
        full refund up to the window boundary, the late tier until class start,
        and the post-start tier afterwards.
        """
        if CancelledBy(cancelled_by) == CancelledBy.BUSINESS:
            return FULL_REFUND_PERCENT
        cutoff = class_start_time - timedelta(hours=cancellation_window_hours or 0)
        if now <= cutoff:
            return FULL_REFUND_PERCENT
        if now < class_start_time:
            return self.late_cancellation_refund_percent
        return self.post_start_refund_percent

    def compute_refund(self, final_price: int, credits_used: int, percentage: int) -> RefundQuote:
        """
        Refund for a booking's frozen price.

        Partial refunds round credits up; the cents figure follows the credits
        and never exceeds what was paid.
        """
        if percentage >= FULL_REFUND_PERCENT:
            return RefundQuote(
                refund_percentage=FULL_REFUND_PERCENT,
                refund_credits=int(credits_used),
                refund_amount_cents=int(final_price),
            )
        if percentage <= 0 or credits_used <= 0:
            return RefundQuote(refund_percentage=max(percentage, 0), refund_credits=0, refund_amount_cents=0)

        refund_credits = int(
            (Decimal(credits_used) * Decimal(percentage) / Decimal(100)).quantize(
                Decimal("1"), rounding=ROUND_CEILING
            )
        )
        refund_cents = min(int(final_price), self.cents_for_credits(refund_credits))
        return RefundQuote(
            refund_percentage=percentage,
            refund_credits=refund_credits,
            refund_amount_cents=refund_cents,
        )

    def calculate_final_price_from_instance(
        self, instance: ClassInstance, now: datetime
    ) -> InstancePriceQuote:
        """Price an instance as a booking made at ``now`` would be priced."""
        original = instance.effective_price
        evaluation = self.discount_engine.evaluate(
            DiscountContext(
                now=now,
                class_start_time=instance.start_time,
                instance_rules=instance.instance_discount_rules,
                template_rules=instance.template_discount_rules,
                original_price_cents=original,
            )
        )
        breakdown = self.compute_final_price(original, evaluation)

        applied: Optional[AppliedDiscount] = None
        if evaluation is not None and breakdown.discount_amount > 0:
            applied = AppliedDiscount(
                source=evaluation.source,
                discount_type=evaluation.discount_type,
                rule_id=evaluation.rule_id,
                rule_name=evaluation.rule_name,
                discount_cents=breakdown.discount_amount,
                credits_saved=self.credits_for_price(breakdown.discount_amount),
            )

        return InstancePriceQuote(
            original_price=breakdown.original_price,
            final_price=breakdown.final_price,
            discount_amount=breakdown.discount_amount,
            discount_percentage=breakdown.discount_percentage,
            credits=self.credits_for_price(breakdown.final_price),
            applied_discount=applied,
        )
