"""
Pricing engine - resolves the per-unit discount for a cart line.

A line can carry a vendor discount rule and a deal shorthand. Each is
evaluated on its own, clamped to the base price, and the two stack into a
"combined" discount that can never exceed the base price.
"""

import logging
from datetime import datetime, time
from decimal import Decimal
from typing import Optional, Tuple

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.money import (
    ZERO, clamp, format_money, format_percent, non_negative, percent_of, to_money
)
from cartengine.core.promotion_rules import to_local_naive
from cartengine.models.discount import AppliedDiscount, DealShorthand, DiscountRule, DiscountTier, WEEKDAYS

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)


def parse_deal_shorthand(token) -> Optional[DealShorthand]:
    """Parse a deal token once, at ingestion. None means no usable deal."""
    deal = DealShorthand.parse(token)
    if deal is None and token not in (None, ""):
        logger.warning(f"[PRICING] Ignoring unreadable deal shorthand {token!r}")
    return deal


def is_within_window(rule: DiscountRule, at: datetime) -> bool:
    """
    Check the rule's days of week and validity window.

    An "always" rule only skips the date/time range; its days still apply.
    """
    at = to_local_naive(at)

    if rule.days_of_week and WEEKDAYS[at.weekday()] not in rule.days_of_week:
        return False

    if rule.always:
        return True

    if rule.start_date is not None:
        start = datetime.combine(rule.start_date, rule.start_time or time.min)
        if at < start:
            return False

    if rule.end_date is not None:
        end = datetime.combine(rule.end_date, rule.end_time or time.max)
        if at > end:
            return False

    return True


def is_rule_eligible(
    rule: DiscountRule,
    base_price: Decimal,
    quantity: int,
    at: datetime
) -> bool:
    """
    Evaluate a discount rule's own eligibility.

    Args:
        rule: Vendor discount rule
        base_price: Unit price before discounts
        quantity: Line quantity
        at: Moment the window is checked against

    Returns:
        True when every threshold set on the rule is met
    """
    if not rule.has_value:
        return False

    if rule.minimum_quantity is not None and quantity < rule.minimum_quantity:
        return False

    if rule.minimum_spending is not None and base_price * quantity < rule.minimum_spending:
        return False

    if rule.tiers and best_tier(rule, base_price, quantity) is None:
        return False

    return is_within_window(rule, at)


def tier_amount(tier: DiscountTier, base_price: Decimal) -> Decimal:
    if tier.discount_type == "percentage":
        return percent_of(base_price, tier.discount_value)
    return tier.discount_value


def best_tier(rule: DiscountRule, base_price: Decimal, quantity: int) -> Optional[DiscountTier]:
    """Highest per-unit tier whose purchase and quantity thresholds are met."""
    line_total = base_price * quantity
    best = None
    for tier in rule.tiers:
        if tier.discount_value <= ZERO or line_total < tier.minimum_purchase:
            continue
        if tier.minimum_quantity and quantity < tier.minimum_quantity:
            continue
        if best is None or tier_amount(tier, base_price) > tier_amount(best, base_price):
            best = tier
    return best


def rule_discount_amount(rule: DiscountRule, base_price: Decimal, quantity: int = 1) -> Decimal:
    """Per-unit amount of a rule, clamped to the base price."""
    if rule.tiers:
        tier = best_tier(rule, base_price, quantity)
        raw = tier_amount(tier, base_price) if tier is not None else ZERO
    elif rule.percent_off is not None:
        raw = percent_of(base_price, rule.percent_off)
    elif rule.amount_off is not None:
        raw = rule.amount_off
    else:
        raw = ZERO
    return clamp(raw, ZERO, base_price)


def deal_discount_amount(deal: DealShorthand, base_price: Decimal) -> Decimal:
    """Per-unit amount of a deal, clamped to the base price."""
    if deal.kind == "percent":
        raw = percent_of(base_price, deal.value)
    else:
        raw = deal.value
    return clamp(raw, ZERO, base_price)


def _rule_display(rule: DiscountRule, base_price: Decimal, quantity: int) -> str:
    if rule.tiers:
        tier = best_tier(rule, base_price, quantity)
        if tier is None:
            return ""
        if tier.discount_type == "percentage":
            return format_percent(tier.discount_value)
        return format_money(tier.discount_value)
    if rule.percent_off is not None:
        return format_percent(rule.percent_off)
    return format_money(rule.amount_off)


def _deal_display(deal: DealShorthand) -> str:
    if deal.kind == "percent":
        return format_percent(deal.value)
    return format_money(deal.value)


def resolve_discount(
    base_price,
    quantity: int,
    discount_rule: Optional[DiscountRule] = None,
    deal_shorthand: Optional[DealShorthand] = None,
    at: Optional[datetime] = None
) -> AppliedDiscount:
    """
    Resolve the single applicable discount for one unit.

    Rule only -> "discount", deal only -> "deal", both -> "combined"
    (each part clamped to the base price, then the sum clamped again).

    Args:
        base_price: Unit price before discounts
        quantity: Line quantity, used by the rule thresholds
        discount_rule: Optional vendor rule
        deal_shorthand: Optional parsed deal
        at: Moment for the validity window check (defaults to now)

    Returns:
        AppliedDiscount with discount_value <= base_price
    """
    base_price = non_negative(to_money(base_price))
    if at is None:
        at = datetime.now()

    rule_value = ZERO
    if discount_rule is not None and is_rule_eligible(discount_rule, base_price, quantity, at):
        rule_value = rule_discount_amount(discount_rule, base_price, quantity)

    deal_value = ZERO
    if deal_shorthand is not None:
        deal_value = deal_discount_amount(deal_shorthand, base_price)

    if rule_value > ZERO and deal_value > ZERO:
        return AppliedDiscount(
            is_applicable=True,
            discount_value=clamp(rule_value + deal_value, ZERO, base_price),
            deal_value=deal_value,
            rule_value=rule_value,
            source="combined",
            discount_display=f"{_rule_display(discount_rule, base_price, quantity)} + {_deal_display(deal_shorthand)}"
        )

    if rule_value > ZERO:
        return AppliedDiscount(
            is_applicable=True,
            discount_value=rule_value,
            rule_value=rule_value,
            source="discount",
            discount_display=_rule_display(discount_rule, base_price, quantity)
        )

    if deal_value > ZERO:
        return AppliedDiscount(
            is_applicable=True,
            discount_value=deal_value,
            deal_value=deal_value,
            source="deal",
            discount_display=_deal_display(deal_shorthand)
        )

    return AppliedDiscount()


def resolve_final_price(base_price, applied_discount: Optional[AppliedDiscount]) -> Decimal:
    """Final unit price, never below zero."""
    base_price = to_money(base_price)
    if applied_discount is None or not applied_discount.is_applicable:
        return non_negative(base_price)
    return non_negative(base_price - applied_discount.discount_value)


def price_line(
    base_price,
    quantity: int,
    discount_rule: Optional[DiscountRule] = None,
    deal_shorthand: Optional[DealShorthand] = None,
    at: Optional[datetime] = None
) -> Tuple[AppliedDiscount, Decimal]:
    """Resolve the discount and final unit price in one call."""
    applied = resolve_discount(base_price, quantity, discount_rule, deal_shorthand, at)
    final_price = resolve_final_price(base_price, applied)
    logger.debug(
        f"[PRICING] base={base_price} qty={quantity} source={applied.source} "
        f"discount={applied.discount_value} final={final_price}"
    )
    return applied, final_price
