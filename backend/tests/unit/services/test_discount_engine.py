"""Unit tests for discount rule evaluation."""

from datetime import datetime, timedelta, timezone
import logging

import pytest

from classcredits.core.enums import DiscountSource
from classcredits.schemas.discount import DiscountRule
from classcredits.services.discount_engine import (
    DiscountContext,
    DiscountEngine,
    condition_passes,
    raw_discount_cents,
)
from tests.factories.discount_rules import (
    always,
    fixed,
    hours_before_max,
    hours_before_min,
    percentage,
    rule,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _context(hours_until_start: float, instance_rules=(), template_rules=(), price: int = 2000):
    return DiscountContext(
        now=NOW,
        class_start_time=NOW + timedelta(hours=hours_until_start),
        instance_rules=list(instance_rules),
        template_rules=list(template_rules),
        original_price_cents=price,
    )


@pytest.fixture
def engine() -> DiscountEngine:
    return DiscountEngine()


class TestConditions:
    def test_always_passes_even_after_start(self):
        parsed = DiscountRule.model_validate(rule("r", always(), fixed(100)))
        assert condition_passes(parsed, _context(-2))

    @pytest.mark.parametrize("hours,expected", [(48, True), (24, True), (23.9, False)])
    def test_hours_before_min_is_early_bird(self, hours, expected):
        parsed = DiscountRule.model_validate(rule("r", hours_before_min(24), fixed(100)))
        assert condition_passes(parsed, _context(hours)) is expected

    @pytest.mark.parametrize("hours,expected", [(0, True), (4, True), (6, True), (6.5, False), (-0.5, False)])
    def test_hours_before_max_is_last_minute_and_excludes_started_classes(self, hours, expected):
        parsed = DiscountRule.model_validate(rule("r", hours_before_max(6), fixed(100)))
        assert condition_passes(parsed, _context(hours)) is expected


class TestRawDiscount:
    def test_fixed_amount_is_not_capped_here(self):
        parsed = DiscountRule.model_validate(rule("r", always(), fixed(5000)))
        assert raw_discount_cents(parsed, 2000) == 5000

    def test_percentage_rounds_half_up(self):
        parsed = DiscountRule.model_validate(rule("r", always(), percentage(15)))
        # 1999 * 0.15 = 299.85
        assert raw_discount_cents(parsed, 1999) == 300
        # 1990 * 0.15 = 298.5
        assert raw_discount_cents(parsed, 1990) == 299


class TestEvaluate:
    def test_no_rules_means_no_discount(self, engine):
        assert engine.evaluate(_context(48)) is None

    def test_instance_rule_takes_precedence_over_larger_template_rule(self, engine):
        context = _context(
            48,
            instance_rules=[rule("inst", always(), fixed(300))],
            template_rules=[rule("tmpl", always(), fixed(700))],
        )

        result = engine.evaluate(context)

        assert result is not None
        assert result.source == DiscountSource.INSTANCE_RULE
        assert result.rule_id == "inst"
        assert result.raw_discount_cents == 300

    def test_first_passing_rule_wins_within_a_source(self, engine):
        context = _context(
            48,
            instance_rules=[
                rule("last-minute", hours_before_max(6), fixed(900)),
                rule("early-bird", hours_before_min(24), fixed(200), name="Early bird"),
                rule("flat", always(), fixed(500)),
            ],
        )

        result = engine.evaluate(context)

        assert result is not None
        assert result.rule_id == "early-bird"
        assert result.rule_name == "Early bird"
        assert result.discount_type == "fixed_amount"

    def test_falls_through_to_template_when_no_instance_rule_passes(self, engine):
        context = _context(
            2,
            instance_rules=[rule("early-bird", hours_before_min(24), fixed(200))],
            template_rules=[rule("tmpl-pct", always(), percentage(10))],
        )

        result = engine.evaluate(context)

        assert result is not None
        assert result.source == DiscountSource.TEMPLATE_RULE
        assert result.raw_discount_cents == 200

    def test_malformed_rules_are_skipped_and_logged(self, engine, caplog):
        context = _context(
            48,
            instance_rules=[
                {"id": "broken", "name": "broken", "condition": {"type": "someday"}, "discount": fixed(1)},
                rule("ok", always(), fixed(250)),
            ],
        )

        with caplog.at_level(logging.WARNING, logger="classcredits.services.discount_engine"):
            result = engine.evaluate(context)

        assert result is not None
        assert result.rule_id == "ok"
        assert "malformed" in caplog.text

    def test_accepts_parsed_rules(self, engine):
        parsed = DiscountRule.model_validate(rule("parsed", always(), fixed(150)))
        result = engine.evaluate(_context(10, template_rules=[parsed]))
        assert result is not None
        assert result.raw_discount_cents == 150

    def test_rule_tagged_for_the_other_scope_is_skipped(self, engine, caplog):
        mismatched = rule("tmpl-only", always(), fixed(900))
        mismatched["scope"] = "template"
        matching = rule("inst", always(), fixed(300))
        matching["scope"] = "instance"
        context = _context(48, instance_rules=[mismatched, matching])

        with caplog.at_level(logging.WARNING, logger="classcredits.services.discount_engine"):
            result = engine.evaluate(context)

        assert result is not None
        assert result.source == DiscountSource.INSTANCE_RULE
        assert result.rule_id == "inst"
        assert "tmpl-only" in caplog.text
