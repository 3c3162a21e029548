"""
Promotion request/response models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel

from cartengine.core.money import ZERO, to_money


class PromotionRequest(BaseModel):
    """Body sent to the promotion validation endpoint."""
    code: str
    subtotal: Decimal
    vendor_id: str

    @validator("subtotal", pre=True)
    def parse_subtotal(cls, v):
        return to_money(v)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PromotionResponse(BaseModel):
    """Answer from the promotion validation endpoint."""
    is_applicable: bool
    discount_value: Decimal = ZERO
    discount_display: str = ""
    code: str = ""
    error_message: Optional[str] = None

    # Extra details the service may include
    promotion_id: Optional[str] = None
    discount_type: Optional[Literal["percentage", "amount"]] = None
    minimum_purchase: Decimal = ZERO

    @validator("discount_value", "minimum_purchase", pre=True)
    def parse_amount(cls, v):
        return to_money(v)

    @validator("promotion_id", pre=True)
    def stringify_id(cls, v):
        return None if v is None else str(v)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AppliedPromotion(BaseModel):
    """Promotion held in the cart's per-vendor ledger."""
    vendor_id: str
    code: Optional[str] = None
    is_applicable: bool = False
    discount_value: Decimal = ZERO
    discount_display: str = ""
    error_message: Optional[str] = None
    promotion_id: Optional[str] = None
    discount_type: Optional[Literal["percentage", "amount"]] = None
    minimum_purchase: Decimal = ZERO
    source: Literal["manual", "automatic"] = "manual"
    applied_at: datetime = Field(default_factory=datetime.now)

    @validator("discount_value", "minimum_purchase", pre=True)
    def parse_amount(cls, v):
        return to_money(v)

    @validator("discount_value", "minimum_purchase")
    def check_non_negative(cls, v):
        if v < ZERO:
            raise ValueError("Must be non-negative")
        return v

    @classmethod
    def rejected(cls, vendor_id: str, code: Optional[str], message: str) -> "AppliedPromotion":
        return cls(vendor_id=vendor_id, code=code, is_applicable=False, error_message=message)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PromotionRecord(BaseModel):
    """Promotion code as stored by a vendor."""
    id: str
    code: Optional[str] = None
    vendor_id: str
    discount_type: Literal["percentage", "amount"]
    discount_value: Decimal
    minimum_order_type: Literal["no_minimum", "amount", "products"] = "no_minimum"
    minimum_amount: Decimal = ZERO
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    promo_code_required: bool = True
    display_on_menu: bool = False
    status: Literal["active", "inactive", "expired"] = "active"

    @validator("id", "vendor_id", pre=True)
    def stringify_ids(cls, v):
        return str(v)

    @validator("discount_value", "minimum_amount", pre=True)
    def parse_amount(cls, v):
        return to_money(v)

    @validator("valid_from", "valid_to", pre=True)
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        alias_generator = to_camel
        populate_by_name = True
