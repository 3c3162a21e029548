"""
Promotion code rules - format checks and discount evaluation.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from cartengine.core.money import ZERO, clamp, format_money, format_percent, percent_of, to_money
from cartengine.models.promotion import PromotionRecord, PromotionResponse

CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,20}$", re.IGNORECASE)

INVALID_FORMAT_MESSAGE = "Invalid promotion code format. Codes must be 3-20 alphanumeric characters."
NOT_FOUND_MESSAGE = "Promotion code is invalid or expired."
INACTIVE_MESSAGE = "Promotion code is no longer active."
EXPIRED_MESSAGE = "Promotion code has expired."
NOT_STARTED_MESSAGE = "Promotion code is not valid yet."
SERVICE_ERROR_MESSAGE = "Error connecting to promotion service. Please try again."


def validate_code_format(code) -> bool:
    if not code or not isinstance(code, str):
        return False
    return bool(CODE_PATTERN.match(code.strip()))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def to_local_naive(moment: datetime) -> datetime:
    """Aware datetimes are converted to local time so they compare with naive ones."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def promotion_display(discount_type: str, discount_value: Decimal) -> str:
    if discount_type == "percentage":
        return format_percent(discount_value)
    return format_money(discount_value)


def calculate_promotion_discount(subtotal: Decimal, discount_type: str, discount_value: Decimal) -> Decimal:
    """Discount against a vendor subtotal, clamped to [0, subtotal]."""
    if discount_type == "percentage":
        raw = percent_of(subtotal, discount_value)
    else:
        raw = discount_value
    return clamp(raw, ZERO, subtotal)


def minimum_purchase(record: PromotionRecord) -> Decimal:
    if record.minimum_order_type == "no_minimum":
        return ZERO
    return record.minimum_amount


def evaluate_promotion(
    record: Optional[PromotionRecord],
    subtotal,
    at: Optional[datetime] = None
) -> PromotionResponse:
    """
    Decide whether a stored promotion applies to a vendor subtotal.

    Args:
        record: Promotion found for the code, or None
        subtotal: Vendor subtotal before discounts
        at: Evaluation time (defaults to now)

    Returns:
        PromotionResponse in the wire format
    """
    if record is None:
        return PromotionResponse(is_applicable=False, error_message=NOT_FOUND_MESSAGE)

    subtotal = to_money(subtotal)
    if at is None:
        at = datetime.now()
    code = record.code or ""
    display = promotion_display(record.discount_type, record.discount_value)

    def rejected(message: str) -> PromotionResponse:
        return PromotionResponse(
            is_applicable=False,
            code=code,
            discount_display=display,
            error_message=message,
            promotion_id=record.id,
            discount_type=record.discount_type,
        )

    if record.status != "active":
        return rejected(INACTIVE_MESSAGE)

    if record.valid_to is not None and to_local_naive(record.valid_to) < to_local_naive(at):
        return rejected(EXPIRED_MESSAGE)

    if record.valid_from is not None and to_local_naive(record.valid_from) > to_local_naive(at):
        return rejected(NOT_STARTED_MESSAGE)

    minimum = minimum_purchase(record)
    if subtotal < minimum:
        return PromotionResponse(
            is_applicable=False,
            code=code,
            discount_display=display,
            error_message=f"Spend {format_money(minimum - subtotal)} more to unlock {display} promotion",
            promotion_id=record.id,
            discount_type=record.discount_type,
            minimum_purchase=minimum,
        )

    return PromotionResponse(
        is_applicable=True,
        discount_value=calculate_promotion_discount(subtotal, record.discount_type, record.discount_value),
        discount_display=display,
        code=code,
        promotion_id=record.id,
        discount_type=record.discount_type,
        minimum_purchase=minimum,
    )
