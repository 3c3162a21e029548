"""
Discount rule, deal shorthand and applied discount models.
"""

import re
from datetime import date, time
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel

from cartengine.core.money import ZERO, HUNDRED, to_money, to_optional_money

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_PERCENT_TOKEN = re.compile(r"^(\d+(?:\.\d+)?)\s*%$")
_AMOUNT_TOKEN = re.compile(r"^\$\s*(\d+(?:\.\d+)?)$|^(\d+(?:\.\d+)?)\s*\$$")
_BARE_TOKEN = re.compile(r"^(\d+(?:\.\d+)?)$")


class DiscountTier(BaseModel):
    """One line of a tiered discount: a value unlocked by a purchase threshold."""
    discount_type: Literal["percentage", "amount"]
    discount_value: Decimal
    minimum_purchase: Decimal = ZERO
    minimum_quantity: int = 0

    @validator("discount_value", "minimum_purchase", pre=True)
    def parse_amount(cls, v):
        amount = to_optional_money(v)
        if amount is None or amount < ZERO:
            return ZERO
        return amount

    @validator("minimum_quantity", pre=True)
    def parse_minimum_quantity(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return max(int(to_money(v)), 0)

    @validator("discount_value")
    def check_percent(cls, v, values):
        if values.get("discount_type") == "percentage" and v > HUNDRED:
            raise ValueError("Percentage cannot be greater than 100%")
        return v

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DiscountRule(BaseModel):
    """Vendor-defined discount attached to a product."""
    name: Optional[str] = None
    amount_off: Optional[Decimal] = None
    percent_off: Optional[Decimal] = None

    # Carried through from the vendor's setup, not evaluated here
    scope_id: Optional[str] = None
    membership_id: Optional[str] = None
    type_id: Optional[str] = None

    minimum_quantity: Optional[int] = None
    minimum_spending: Optional[Decimal] = None

    always: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    days_of_week: List[str] = Field(default_factory=list)

    # Tiered lines; when present they replace amount_off/percent_off
    tiers: List[DiscountTier] = Field(default_factory=list)

    @validator("amount_off", "percent_off", "minimum_spending", pre=True)
    def parse_amount(cls, v):
        amount = to_optional_money(v)
        # Zero or negative values mean "not set"
        if amount is None or amount <= ZERO:
            return None
        return amount

    @validator("percent_off")
    def check_percent(cls, v):
        if v is not None and v > HUNDRED:
            raise ValueError("Percentage cannot be greater than 100%")
        return v

    @validator("minimum_quantity", pre=True)
    def parse_minimum_quantity(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        quantity = int(to_money(v))
        return quantity if quantity > 0 else None

    @validator("scope_id", "membership_id", "type_id", pre=True)
    def stringify_ids(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @validator("start_date", "end_date", "start_time", "end_time", pre=True)
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @validator("days_of_week", pre=True)
    def normalize_days(cls, v):
        if v is None:
            return []
        days = []
        for day in v:
            key = str(day).strip().lower()[:3]
            if key not in WEEKDAYS:
                raise ValueError(f"Unknown day of week: {day}")
            if key not in days:
                days.append(key)
        return days

    @property
    def has_value(self) -> bool:
        if self.tiers:
            return any(tier.discount_value > ZERO for tier in self.tiers)
        return self.amount_off is not None or self.percent_off is not None

    @classmethod
    def from_discount_lines(cls, data: dict) -> "DiscountRule":
        """
        Build a tiered rule from the vendor discount payload.

        Each entry of data["lines"] carries discount_type ("percentage" or
        "amount"), discount_value, minimum_purchase and quantity. Inactive
        or deleted discounts produce a rule with no tiers, which never applies.
        """
        active = data.get("status", "active") == "active" and str(data.get("is_delete", "0")) != "1"
        tiers = []
        if active:
            for line in data.get("lines") or []:
                tiers.append(DiscountTier(
                    discount_type=line.get("discount_type"),
                    discount_value=line.get("discount_value"),
                    minimum_purchase=line.get("minimum_purchase"),
                    minimum_quantity=line.get("quantity"),
                ))
        return cls(
            name=data.get("name"),
            scope_id=data.get("applies_to_id"),
            type_id=data.get("applies_to_type"),
            tiers=tiers,
        )

    @classmethod
    def from_vendor_payload(cls, data: dict) -> "DiscountRule":
        """Build a rule from the vendor deal payload (add-deal form fields)."""
        return cls(
            name=data.get("discount_name"),
            amount_off=data.get("discount_amount", data.get("amount")),
            percent_off=data.get("discount_percentage", data.get("percentage")),
            scope_id=data.get("scope_id"),
            membership_id=data.get("membership_id"),
            type_id=data.get("type_id"),
            minimum_quantity=data.get("minimum_qty", data.get("minimum_quantity")),
            minimum_spending=data.get("minimum_spending"),
            always=bool(int(data.get("24hours_checkbox", 0) or 0)) or bool(data.get("is_24_hours", False)),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            days_of_week=data.get("days_of_week") or [],
        )

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DealShorthand(BaseModel):
    """
    Compact per-item deal, parsed once from its token.

    "10%" and "10" are percent deals, "$5" and "5$" are flat amounts.
    """
    kind: Literal["percent", "absolute"]
    value: Decimal
    token: str

    @validator("value")
    def check_positive(cls, v):
        if v <= ZERO:
            raise ValueError("Deal value must be positive")
        return v

    @classmethod
    def parse(cls, token) -> Optional["DealShorthand"]:
        """Parse a deal token. Returns None when there is no usable deal."""
        if token is None:
            return None
        if isinstance(token, (int, float, Decimal)) and not isinstance(token, bool):
            token = str(token)
        if not isinstance(token, str):
            return None

        text = token.strip()
        if not text:
            return None

        match = _PERCENT_TOKEN.match(text)
        if match:
            kind, raw = "percent", match.group(1)
        else:
            match = _AMOUNT_TOKEN.match(text)
            if match:
                kind, raw = "absolute", match.group(1) or match.group(2)
            else:
                match = _BARE_TOKEN.match(text)
                if not match:
                    return None
                kind, raw = "percent", match.group(1)

        value = Decimal(raw)
        if value <= ZERO:
            return None
        return cls(kind=kind, value=value, token=text)


class AppliedDiscount(BaseModel):
    """Resolved per-unit outcome of a discount rule and a deal."""
    is_applicable: bool = False
    discount_value: Decimal = ZERO
    deal_value: Decimal = ZERO
    rule_value: Decimal = ZERO
    source: Optional[Literal["discount", "deal", "combined"]] = None
    discount_display: str = ""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

