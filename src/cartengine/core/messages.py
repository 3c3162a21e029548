"""
Customer-facing text for discounts, promotions and savings.
"""

from decimal import Decimal
from typing import Optional, Tuple

from cartengine.core.money import ZERO, format_money, to_money
from cartengine.models.discount import AppliedDiscount
from cartengine.models.promotion import AppliedPromotion


def discount_message(applied: Optional[AppliedDiscount], minimum_purchase=ZERO) -> str:
    if applied is None:
        return ""

    minimum = to_money(minimum_purchase)
    if applied.is_applicable:
        if minimum > ZERO:
            return f"Save {applied.discount_display} on orders over {format_money(minimum)}"
        return f"Save {applied.discount_display}"

    if not applied.discount_display:
        return ""
    return f"Spend {format_money(minimum)} more to unlock {applied.discount_display} discount"


def promotion_message(promotion: Optional[AppliedPromotion]) -> str:
    if promotion is None:
        return ""

    if not promotion.is_applicable:
        if promotion.error_message:
            return promotion.error_message
        if promotion.minimum_purchase > ZERO:
            return (
                f"Spend {format_money(promotion.minimum_purchase)} more to unlock "
                f"{promotion.discount_display} promotion"
            )
        return "Promotion code not applicable"

    if promotion.source == "automatic":
        return f"Automatic promotion applied: Save {promotion.discount_display}"
    return f"Promotion code {promotion.code} applied: Save {promotion.discount_display}"


def savings_breakdown(discount_amount, promotion_amount) -> Tuple[Decimal, str]:
    """
    Combine line discounts and promotions for the cart's savings banner.

    Returns:
        (total savings, e.g. "Discounts & Deals: $4.00 + Promotions: $5.00")
    """
    discount_amount = to_money(discount_amount)
    promotion_amount = to_money(promotion_amount)

    parts = []
    if discount_amount > ZERO:
        parts.append(f"Discounts & Deals: {format_money(discount_amount)}")
    if promotion_amount > ZERO:
        parts.append(f"Promotions: {format_money(promotion_amount)}")

    return discount_amount + promotion_amount, " + ".join(parts)
