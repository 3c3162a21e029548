"""Tests for discount resolution and final prices."""

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from cartengine.core.pricing_engine import (
    is_within_window,
    price_line,
    resolve_discount,
    resolve_final_price,
)
from cartengine.models.discount import AppliedDiscount, DealShorthand, DiscountRule, DiscountTier


def _rule(**fields) -> DiscountRule:
    return DiscountRule(**fields)


class TestScenarios:
    def test_percent_rule_only(self, now):
        applied, final = price_line(
            "20", 1, _rule(percent_off=10, minimum_quantity=1), None, now
        )
        assert applied.is_applicable
        assert applied.source == "discount"
        assert applied.discount_value == Decimal("2.00")
        assert final == Decimal("18.00")

    def test_absolute_deal_only(self, now):
        applied, final = price_line("20", 1, None, DealShorthand.parse("$5"), now)
        assert applied.source == "deal"
        assert applied.discount_value == Decimal("5.00")
        assert final == Decimal("15.00")

    def test_rule_and_bare_number_deal_combine(self, now):
        applied, final = price_line("20", 1, _rule(amount_off=8), DealShorthand.parse("10"), now)
        assert applied.source == "combined"
        assert applied.rule_value == Decimal("8")
        assert applied.deal_value == Decimal("2")
        assert applied.discount_value == Decimal("10.00")
        assert applied.discount_display == "$8.00 + 10%"
        assert final == Decimal("10.00")

    def test_combined_sum_is_clamped_to_base_price(self, now):
        applied, final = price_line("20", 1, _rule(percent_off=80), DealShorthand.parse("50%"), now)
        assert applied.source == "combined"
        assert applied.discount_value == Decimal("20.00")
        assert final == Decimal("0.00")


class TestRuleEligibility:
    def test_minimum_quantity_threshold(self, now):
        rule = _rule(percent_off=10, minimum_quantity=3)
        assert not resolve_discount("20", 2, rule, None, now).is_applicable
        assert resolve_discount("20", 3, rule, None, now).is_applicable
        assert resolve_discount("20", 7, rule, None, now).is_applicable

    def test_minimum_spending_uses_base_line_total(self, now):
        rule = _rule(amount_off=5, minimum_spending=50)
        assert not resolve_discount("20", 2, rule, None, now).is_applicable
        assert resolve_discount("20", 3, rule, None, now).discount_value == Decimal("5")

    def test_outside_date_window(self, now):
        rule = _rule(percent_off=10, start_date=date(2025, 7, 1), end_date=date(2025, 7, 31))
        assert not resolve_discount("20", 1, rule, None, now).is_applicable

    def test_end_date_includes_whole_day_without_end_time(self):
        rule = _rule(percent_off=10, end_date=date(2025, 6, 4))
        assert is_within_window(rule, datetime(2025, 6, 4, 23, 59))
        assert not is_within_window(rule, datetime(2025, 6, 5, 0, 1))

    def test_daily_hours(self, now):
        rule = _rule(
            percent_off=10,
            start_date=date(2025, 6, 1), start_time=time(16, 0),
            end_date=date(2025, 6, 30), end_time=time(20, 0),
        )
        assert not is_within_window(rule, datetime(2025, 5, 31, 18, 0))
        assert is_within_window(rule, datetime(2025, 6, 1, 17, 0))
        assert not is_within_window(rule, datetime(2025, 6, 30, 21, 0))

    def test_days_of_week(self, now):
        assert not resolve_discount("20", 1, _rule(percent_off=10, days_of_week=["mon"]), None, now).is_applicable
        assert resolve_discount("20", 1, _rule(percent_off=10, days_of_week=["Wednesday"]), None, now).is_applicable

    def test_always_skips_date_range_only(self, now):
        future = dict(percent_off=10, always=True, start_date=date(2030, 1, 1))
        assert resolve_discount("20", 1, _rule(**future, days_of_week=["wed"]), None, now).is_applicable
        assert not resolve_discount("20", 1, _rule(**future, days_of_week=["mon"]), None, now).is_applicable

    def test_always_still_honours_days_of_week(self):
        rule = _rule(percent_off=10, always=True, days_of_week=["sat", "sun"])
        assert is_within_window(rule, datetime(2025, 6, 7, 3, 0))
        assert not is_within_window(rule, datetime(2025, 6, 4, 12, 0))

    def test_rule_without_value_is_not_applicable(self, now):
        assert not resolve_discount("20", 1, _rule(amount_off=0), None, now).is_applicable

    def test_percent_takes_precedence_over_amount(self, now):
        applied = resolve_discount("20", 1, _rule(percent_off=25, amount_off=1), None, now)
        assert applied.discount_value == Decimal("5")
        assert applied.discount_display == "25%"

    def test_percent_over_hundred_rejected(self):
        with pytest.raises(ValidationError):
            _rule(percent_off=150)

    def test_vendor_payload_mapping(self, now):
        rule = DiscountRule.from_vendor_payload({
            "discount_name": "Happy hour",
            "discount_percentage": "15",
            "minimum_qty": "2",
            "24hours_checkbox": "1",
            "days_of_week": ["Wed"],
        })
        assert rule.percent_off == Decimal("15")
        assert rule.minimum_quantity == 2
        assert rule.always
        assert resolve_discount("20", 2, rule, None, now).discount_value == Decimal("3")


class TestTieredDiscount:
    PAYLOAD = {
        "id": 7,
        "name": "Spend more, save more",
        "status": "active",
        "applies_to_id": "311",
        "applies_to_type": "product",
        "lines": [
            {"id": 1, "quantity": "0", "discount_type": "percentage", "discount_value": "5", "minimum_purchase": "0"},
            {"id": 2, "quantity": "0", "discount_type": "percentage", "discount_value": "10", "minimum_purchase": "50"},
            {"id": 3, "quantity": "0", "discount_type": "amount", "discount_value": "4", "minimum_purchase": "100"},
        ],
    }

    def test_payload_mapping(self):
        rule = DiscountRule.from_discount_lines(self.PAYLOAD)
        assert rule.name == "Spend more, save more"
        assert rule.scope_id == "311"
        assert len(rule.tiers) == 3
        top = rule.tiers[2]
        assert (top.discount_type, top.discount_value, top.minimum_purchase, top.minimum_quantity) == (
            "amount", Decimal("4"), Decimal("100"), 0
        )
        assert rule.has_value

    def test_below_second_threshold_uses_base_tier(self, now):
        rule = DiscountRule.from_discount_lines(self.PAYLOAD)
        applied = resolve_discount("20", 2, rule, None, now)
        assert applied.discount_value == Decimal("1")
        assert applied.discount_display == "5%"

    def test_threshold_is_inclusive(self, now):
        rule = DiscountRule.from_discount_lines(self.PAYLOAD)
        applied = resolve_discount("10", 5, rule, None, now)
        assert applied.discount_value == Decimal("1")
        assert applied.discount_display == "10%"

    def test_highest_per_unit_value_wins(self, now):
        rule = DiscountRule.from_discount_lines(self.PAYLOAD)
        # $25 x 4 = $100 unlocks every tier: 5% = 1.25, 10% = 2.50, $4 flat = 4
        applied = resolve_discount("25", 4, rule, None, now)
        assert applied.discount_value == Decimal("4")
        assert applied.discount_display == "$4.00"

        # $50 x 2 also unlocks every tier but 10% = 5 beats $4
        applied = resolve_discount("50", 2, rule, None, now)
        assert applied.discount_value == Decimal("5")
        assert applied.discount_display == "10%"

    def test_no_tier_reached(self, now):
        rule = DiscountRule.from_discount_lines({
            "name": "Bulk",
            "lines": [{"discount_type": "amount", "discount_value": "3", "minimum_purchase": "60"}],
        })
        assert not resolve_discount("20", 2, rule, None, now).is_applicable
        assert resolve_discount("20", 3, rule, None, now).discount_value == Decimal("3")

    def test_tier_quantity_threshold(self, now):
        rule = _rule(tiers=[DiscountTier(discount_type="percentage", discount_value=20, minimum_quantity=3)])
        assert not resolve_discount("10", 2, rule, None, now).is_applicable
        assert resolve_discount("10", 3, rule, None, now).discount_value == Decimal("2")

    def test_tier_stacks_with_deal_and_is_clamped(self, now):
        rule = DiscountRule.from_discount_lines(self.PAYLOAD)
        applied, final = price_line("5", 20, rule, DealShorthand.parse("$3"), now)
        assert applied.source == "combined"
        assert applied.rule_value == Decimal("4")
        assert applied.discount_value == Decimal("5")
        assert final == Decimal("0")

    def test_inactive_discount_never_applies(self, now):
        rule = DiscountRule.from_discount_lines(dict(self.PAYLOAD, status="inactive"))
        assert not rule.has_value
        assert not resolve_discount("50", 2, rule, None, now).is_applicable


class TestDealShorthand:
    @pytest.mark.parametrize("token,kind,value", [
        ("10%", "percent", "10"),
        ("12.5 %", "percent", "12.5"),
        ("$5", "absolute", "5"),
        ("5$", "absolute", "5"),
        ("10", "percent", "10"),
        (15, "percent", "15"),
    ])
    def test_parse(self, token, kind, value):
        deal = DealShorthand.parse(token)
        assert deal.kind == kind
        assert deal.value == Decimal(value)

    @pytest.mark.parametrize("token", [None, "", "abc", "0", "$0", "-5", "5 dollars"])
    def test_unusable_tokens(self, token):
        assert DealShorthand.parse(token) is None


class TestInvariants:
    def test_discount_never_exceeds_base_price(self, now):
        applied, final = price_line("3.50", 1, _rule(amount_off=50), DealShorthand.parse("$10"), now)
        assert applied.discount_value == Decimal("3.50")
        assert final == Decimal("0")

    def test_resolution_is_idempotent(self, now):
        rule = _rule(percent_off=15, minimum_quantity=2)
        deal = DealShorthand.parse("$1")
        assert resolve_discount("19.99", 2, rule, deal, now) == resolve_discount("19.99", 2, rule, deal, now)

    def test_exact_decimal_arithmetic(self, now):
        applied, final = price_line("0.30", 1, None, DealShorthand.parse("$0.10"), now)
        assert final == Decimal("0.20")

    def test_zero_base_price(self, now):
        applied, final = price_line("0", 1, _rule(percent_off=10), DealShorthand.parse("$5"), now)
        assert not applied.is_applicable
        assert final == Decimal("0")

    def test_final_price_without_discount(self):
        assert resolve_final_price("12.00", None) == Decimal("12.00")
        assert resolve_final_price("12.00", AppliedDiscount()) == Decimal("12.00")


def test_line_items_parse_deal_once(make_item):
    item = make_item(deal_shorthand="5$")
    assert item.deal_shorthand == DealShorthand(kind="absolute", value=Decimal("5"), token="5$")
    assert make_item(deal_shorthand="half off").deal_shorthand is None
