"""Unit tests for price, credit and refund arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from classcredits.core.enums import CancelledBy, DiscountSource
from classcredits.models.class_instance import ClassInstance
from classcredits.services.discount_engine import DiscountEvaluation
from classcredits.services.pricing_service import PricingService
from tests.factories.discount_rules import always, fixed, hours_before_min, percentage, rule

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _evaluation(raw: int) -> DiscountEvaluation:
    return DiscountEvaluation(
        source=DiscountSource.INSTANCE_RULE,
        rule_id="r1",
        rule_name="Flash sale",
        discount_type="fixed_amount",
        raw_discount_cents=raw,
    )


@pytest.fixture
def pricing() -> PricingService:
    return PricingService(
        credit_value_cents=50, late_cancellation_refund_percent=50, post_start_refund_percent=0
    )


class TestComputeFinalPrice:
    def test_applies_discount(self, pricing):
        breakdown = pricing.compute_final_price(2000, _evaluation(700))

        assert breakdown.final_price == 1300
        assert breakdown.discount_amount == 700
        assert breakdown.discount_percentage == 35

    def test_discount_is_capped_at_price(self, pricing):
        breakdown = pricing.compute_final_price(2000, _evaluation(5000))

        assert breakdown.final_price == 0
        assert breakdown.discount_amount == 2000
        assert breakdown.discount_percentage == 100

    def test_no_discount(self, pricing):
        breakdown = pricing.compute_final_price(2000, None)
        assert (breakdown.final_price, breakdown.discount_amount, breakdown.discount_percentage) == (
            2000,
            0,
            0,
        )

    def test_free_class_has_zero_percentage(self, pricing):
        breakdown = pricing.compute_final_price(0, _evaluation(100))
        assert breakdown.final_price == 0
        assert breakdown.discount_percentage == 0

    def test_percentage_rounds_half_up(self, pricing):
        # 1 / 3 = 33.33%
        assert pricing.compute_final_price(300, _evaluation(100)).discount_percentage == 33
        # 1 / 8 = 12.5%
        assert pricing.compute_final_price(800, _evaluation(100)).discount_percentage == 13


class TestCredits:
    @pytest.mark.parametrize("cents,credits", [(1300, 26), (1325, 27), (1324, 26), (0, 0), (24, 0), (25, 1)])
    def test_credits_for_price_rounds_half_up(self, pricing, cents, credits):
        assert pricing.credits_for_price(cents) == credits

    def test_cents_for_credits(self, pricing):
        assert pricing.cents_for_credits(26) == 1300


class TestRefundPercentage:
    def test_before_window_is_full_refund(self, pricing):
        assert pricing.refund_percentage(NOW + timedelta(hours=48), 24, NOW) == 100

    def test_exactly_at_window_boundary_is_full_refund(self, pricing):
        assert pricing.refund_percentage(NOW + timedelta(hours=24), 24, NOW) == 100

    def test_inside_window_is_late_tier(self, pricing):
        assert pricing.refund_percentage(NOW + timedelta(hours=8), 24, NOW) == 50

    def test_after_start_is_post_start_tier(self, pricing):
        assert pricing.refund_percentage(NOW - timedelta(minutes=5), 24, NOW) == 0

    def test_business_cancellation_is_always_full(self, pricing):
        start = NOW - timedelta(minutes=5)
        assert pricing.refund_percentage(start, 24, NOW, CancelledBy.BUSINESS) == 100
        assert pricing.refund_percentage(start, 24, NOW, "business") == 100

    def test_zero_window_refunds_in_full_until_start(self, pricing):
        assert pricing.refund_percentage(NOW + timedelta(minutes=1), 0, NOW) == 100


class TestComputeRefund:
    def test_full_refund_returns_exact_amounts(self, pricing):
        quote = pricing.compute_refund(final_price=1325, credits_used=27, percentage=100)

        assert quote.refund_percentage == 100
        assert quote.refund_credits == 27
        assert quote.refund_amount_cents == 1325

    def test_half_refund(self, pricing):
        quote = pricing.compute_refund(final_price=2000, credits_used=40, percentage=50)

        assert quote.refund_credits == 20
        assert quote.refund_amount_cents == 1000

    def test_partial_refund_rounds_credits_up(self, pricing):
        quote = pricing.compute_refund(final_price=1250, credits_used=25, percentage=50)

        assert quote.refund_credits == 13
        assert quote.refund_amount_cents == 650

    def test_refund_cents_never_exceed_price_paid(self, pricing):
        quote = pricing.compute_refund(final_price=1325, credits_used=27, percentage=99)

        assert quote.refund_credits == 27
        assert quote.refund_amount_cents == 1325

    def test_zero_percent_refunds_nothing(self, pricing):
        quote = pricing.compute_refund(final_price=2000, credits_used=40, percentage=0)
        assert (quote.refund_credits, quote.refund_amount_cents) == (0, 0)

    def test_free_booking_refunds_nothing(self, pricing):
        quote = pricing.compute_refund(final_price=0, credits_used=0, percentage=50)
        assert (quote.refund_credits, quote.refund_amount_cents) == (0, 0)


class TestInstanceQuote:
    def _instance(self, **kwargs) -> ClassInstance:
        defaults = dict(
            business_id="biz",
            start_time=NOW + timedelta(hours=48),
            end_time=NOW + timedelta(hours=49),
            price=2000,
            template_snapshot={},
        )
        defaults.update(kwargs)
        return ClassInstance(**defaults)

    def test_instance_rule_wins_over_template_rule(self, pricing):
        instance = self._instance(
            discount_rules=[rule("inst", always(), fixed(700), name="Instance deal")],
            template_snapshot={"discount_rules": [rule("tmpl", always(), fixed(300))]},
        )

        quote = pricing.calculate_final_price_from_instance(instance, NOW)

        assert quote.original_price == 2000
        assert quote.final_price == 1300
        assert quote.credits == 26
        assert quote.applied_discount is not None
        assert quote.applied_discount.source == DiscountSource.INSTANCE_RULE
        assert quote.applied_discount.rule_name == "Instance deal"
        assert quote.applied_discount.discount_cents == 700
        assert quote.applied_discount.credits_saved == 14

    def test_template_price_and_rules_are_used_when_instance_has_none(self, pricing):
        instance = self._instance(
            price=None,
            template_snapshot={
                "price": 1500,
                "discount_rules": [rule("early", hours_before_min(24), percentage(20))],
            },
        )

        quote = pricing.calculate_final_price_from_instance(instance, NOW)

        assert quote.original_price == 1500
        assert quote.final_price == 1200
        assert quote.credits == 24
        assert quote.applied_discount.source == DiscountSource.TEMPLATE_RULE

    def test_zero_discount_rule_is_not_recorded(self, pricing):
        instance = self._instance(discount_rules=[rule("zero", always(), fixed(0))])

        quote = pricing.calculate_final_price_from_instance(instance, NOW)

        assert quote.final_price == 2000
        assert quote.applied_discount is None
