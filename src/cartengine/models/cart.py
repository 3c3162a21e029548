"""
Shopping cart models.

Every line keeps its inputs (base price, rule, deal) and a cached price.
The cached price is only ever written by reprice(), so it always matches
what the pricing engine produces from the inputs.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel

from cartengine.core.money import ZERO, to_money
from cartengine.core import pricing_engine
from cartengine.models.discount import AppliedDiscount, DealShorthand, DiscountRule
from cartengine.models.promotion import AppliedPromotion

MatchKey = Tuple[str, str, Optional[str], Optional[str]]


class CartLineItem(BaseModel):
    """Item selected for the shopping cart."""
    cart_item_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    product_id: str
    vendor_id: str
    quantity: int = Field(default=1, ge=1)
    base_price: Decimal

    selected_variant: Optional[str] = None
    selected_flavor: Optional[str] = None

    discount_rule: Optional[DiscountRule] = None
    deal_shorthand: Optional[DealShorthand] = None

    # Derived, written by reprice()
    price: Decimal = ZERO
    applied_discount: AppliedDiscount = Field(default_factory=AppliedDiscount)

    # Display only
    product_name: str = ""
    vendor_name: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    image_url: Optional[str] = None
    is_sample: bool = False
    added_at: datetime = Field(default_factory=datetime.now)

    @validator("product_id", "vendor_id", pre=True)
    def stringify_ids(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("Identifier is required")
        return str(v)

    @validator("base_price", pre=True)
    def parse_base_price(cls, v):
        return to_money(v)

    @validator("base_price")
    def check_non_negative(cls, v):
        if v < ZERO:
            raise ValueError("Must be non-negative")
        return v

    @validator("deal_shorthand", pre=True)
    def parse_deal(cls, v):
        if v is None or isinstance(v, (DealShorthand, dict)):
            return v
        return pricing_engine.parse_deal_shorthand(v)

    @property
    def match_key(self) -> MatchKey:
        return (self.product_id, self.vendor_id, self.selected_variant, self.selected_flavor)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def reprice(self, at: Optional[datetime] = None) -> "CartLineItem":
        """Return a copy with applied_discount and price recomputed from the inputs."""
        applied, final_price = pricing_engine.price_line(
            self.base_price, self.quantity, self.discount_rule, self.deal_shorthand, at
        )
        return self.model_copy(update={"applied_discount": applied, "price": final_price})

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Cart(BaseModel):
    """Ordered line items plus one promotion per vendor."""
    items: List[CartLineItem] = Field(default_factory=list)
    promotions: Dict[str, AppliedPromotion] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)

    def find_item(self, cart_item_id: str) -> Optional[CartLineItem]:
        return next((i for i in self.items if i.cart_item_id == cart_item_id), None)

    def vendor_ids(self) -> List[str]:
        seen = []
        for item in self.items:
            if item.vendor_id not in seen:
                seen.append(item.vendor_id)
        return seen

    def has_vendor(self, vendor_id: str) -> bool:
        return any(i.vendor_id == vendor_id for i in self.items)

    def add_item(self, item: CartLineItem, at: Optional[datetime] = None) -> CartLineItem:
        """
        Add an item, merging with an existing line that has the same
        product, vendor, variant and flavor.

        On merge the quantities are summed; a rule or deal supplied with the
        new item replaces the stored one, otherwise the stored one is kept.
        """
        for idx, existing in enumerate(self.items):
            if existing.match_key == item.match_key:
                merged = existing.model_copy(update={
                    "quantity": existing.quantity + item.quantity,
                    "discount_rule": item.discount_rule or existing.discount_rule,
                    "deal_shorthand": item.deal_shorthand or existing.deal_shorthand,
                }).reprice(at)
                self.items[idx] = merged
                break
        else:
            merged = item.reprice(at)
            self.items.append(merged)

        self.last_updated = datetime.now()
        return merged

    def remove_item(self, cart_item_id: str) -> bool:
        remaining = [i for i in self.items if i.cart_item_id != cart_item_id]
        removed = len(remaining) != len(self.items)
        self.items = remaining
        if removed:
            self.last_updated = datetime.now()
        return removed

    def set_quantity(
        self,
        cart_item_id: str,
        quantity: int,
        at: Optional[datetime] = None
    ) -> Optional[CartLineItem]:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(cart_item_id)
            return None

        for idx, existing in enumerate(self.items):
            if existing.cart_item_id == cart_item_id:
                updated = existing.model_copy(update={"quantity": quantity}).reprice(at)
                self.items[idx] = updated
                self.last_updated = datetime.now()
                return updated
        return None

    def apply_promotion(self, vendor_id: str, promotion: Optional[AppliedPromotion]):
        if promotion is None:
            self.promotions.pop(vendor_id, None)
        else:
            self.promotions[vendor_id] = promotion
        self.last_updated = datetime.now()

    def recalculate(self, at: Optional[datetime] = None):
        """Re-run the pricing engine on every line."""
        self.items = [i.reprice(at) for i in self.items]
        self.last_updated = datetime.now()

    def clear(self):
        self.items = []
        self.promotions = {}
        self.last_updated = datetime.now()

    class Config:
        arbitrary_types_allowed = True
