"""
Fixed-point money helpers.

Money is carried as Decimal end to end. Arithmetic stays exact; values are
only rounded to cents when they are displayed or handed to checkout.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Convert API/user input into a Decimal amount.

    Floats are converted through their string form so 0.1 stays 0.1.
    None and empty strings are treated as zero.

    Raises:
        ValueError: if the value cannot be read as a finite number
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"Invalid money value: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return ZERO
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid money value: {value!r}")
    else:
        raise ValueError(f"Invalid money value: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid money value: {value!r}")
    return amount


def to_optional_money(value: Any) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_money(value)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    if high < low:
        high = low
    return max(low, min(value, high))


def non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return amount * percent / HUNDRED


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"${round_money(value):.2f}"


def format_percent(value: Decimal) -> str:
    # 10.00 -> "10%", 12.50 -> "12.5%"
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal("1"))
    return f"{normalized:f}%"
