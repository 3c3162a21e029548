"""
Read-side totals over a cart snapshot.

Grand totals are always sums of per-vendor totals, so a vendor's floor at
zero holds even when other vendors have money left over.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cartengine.core.money import ZERO, non_negative, round_money
from cartengine.models.cart import Cart, CartLineItem


class VendorGroup(BaseModel):
    vendor_id: str
    vendor_name: Optional[str] = None
    items: List[CartLineItem] = Field(default_factory=list)


class LineSummary(BaseModel):
    cart_item_id: str
    product_id: str
    product_name: str
    vendor_id: str
    quantity: int
    base_price: Decimal
    unit_price: Decimal
    unit_discount: Decimal
    discount_source: Optional[str] = None
    line_total: Decimal


class VendorSummary(BaseModel):
    vendor_id: str
    vendor_name: Optional[str] = None
    item_count: int
    subtotal: Decimal
    discount_total: Decimal
    promotion_code: Optional[str] = None
    promotion_discount: Decimal
    savings: Decimal
    total: Decimal


class CartSummary(BaseModel):
    """Totals handed to checkout, rounded to cents."""
    vendors: List[VendorSummary]
    lines: List[LineSummary]
    item_count: int
    vendor_count: int
    subtotal: Decimal
    savings: Decimal
    total: Decimal


class Aggregator:
    """Pure read operations over a Cart."""

    def __init__(self, cart: Cart):
        self.cart = cart

    def vendor_groups(self) -> List[VendorGroup]:
        """Partition line items by vendor, in first-seen order."""
        groups: Dict[str, VendorGroup] = {}
        for item in self.cart.items:
            group = groups.get(item.vendor_id)
            if group is None:
                group = VendorGroup(vendor_id=item.vendor_id, vendor_name=item.vendor_name)
                groups[item.vendor_id] = group
            group.items.append(item)
        return list(groups.values())

    def _vendor_items(self, vendor_id: str) -> List[CartLineItem]:
        return [i for i in self.cart.items if i.vendor_id == vendor_id]

    def vendor_subtotal(self, vendor_id: str) -> Decimal:
        return sum((i.base_price * i.quantity for i in self._vendor_items(vendor_id)), ZERO)

    def vendor_discount_total(self, vendor_id: str) -> Decimal:
        return sum(
            (i.applied_discount.discount_value * i.quantity for i in self._vendor_items(vendor_id)),
            ZERO
        )

    def vendor_promotion_discount(self, vendor_id: str) -> Decimal:
        promotion = self.cart.promotions.get(vendor_id)
        if promotion is None or not promotion.is_applicable:
            return ZERO
        return promotion.discount_value

    def vendor_total(self, vendor_id: str) -> Decimal:
        return non_negative(
            self.vendor_subtotal(vendor_id)
            - self.vendor_discount_total(vendor_id)
            - self.vendor_promotion_discount(vendor_id)
        )

    def vendor_savings(self, vendor_id: str) -> Decimal:
        return self.vendor_subtotal(vendor_id) - self.vendor_total(vendor_id)

    def grand_subtotal(self) -> Decimal:
        return sum((self.vendor_subtotal(v) for v in self.cart.vendor_ids()), ZERO)

    def grand_total(self) -> Decimal:
        return sum((self.vendor_total(v) for v in self.cart.vendor_ids()), ZERO)

    def grand_savings(self) -> Decimal:
        return self.grand_subtotal() - self.grand_total()

    def grand_discount_total(self) -> Decimal:
        return sum((self.vendor_discount_total(v) for v in self.cart.vendor_ids()), ZERO)

    def grand_promotion_discount(self) -> Decimal:
        return self.grand_savings() - self.grand_discount_total()

    def item_count(self) -> int:
        return sum(i.quantity for i in self.cart.items)

    def vendor_count(self) -> int:
        return len(self.cart.vendor_ids())

    def summary(self) -> CartSummary:
        vendors = []
        for group in self.vendor_groups():
            vendor_id = group.vendor_id
            promotion = self.cart.promotions.get(vendor_id)
            subtotal = round_money(self.vendor_subtotal(vendor_id))
            total = round_money(self.vendor_total(vendor_id))
            vendors.append(VendorSummary(
                vendor_id=vendor_id,
                vendor_name=group.vendor_name,
                item_count=sum(i.quantity for i in group.items),
                subtotal=subtotal,
                discount_total=round_money(self.vendor_discount_total(vendor_id)),
                promotion_code=promotion.code if promotion and promotion.is_applicable else None,
                promotion_discount=round_money(self.vendor_promotion_discount(vendor_id)),
                savings=subtotal - total,
                total=total,
            ))

        lines = [
            LineSummary(
                cart_item_id=i.cart_item_id,
                product_id=i.product_id,
                product_name=i.product_name,
                vendor_id=i.vendor_id,
                quantity=i.quantity,
                base_price=round_money(i.base_price),
                unit_price=round_money(i.price),
                unit_discount=round_money(i.applied_discount.discount_value),
                discount_source=i.applied_discount.source,
                line_total=round_money(i.line_total),
            )
            for i in self.cart.items
        ]

        return CartSummary(
            vendors=vendors,
            lines=lines,
            item_count=self.item_count(),
            vendor_count=self.vendor_count(),
            # Cart totals are the sums of the rounded vendor rows
            subtotal=sum((v.subtotal for v in vendors), ZERO),
            savings=sum((v.savings for v in vendors), ZERO),
            total=sum((v.total for v in vendors), ZERO),
        )
