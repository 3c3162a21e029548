"""
cartengine - multi-vendor cart pricing and discount stacking.
"""

from cartengine.models import (
    AppliedDiscount,
    AppliedPromotion,
    Cart,
    CartLineItem,
    DealShorthand,
    DiscountRule,
    DiscountTier,
)
from cartengine.core.pricing_engine import resolve_discount, resolve_final_price
from cartengine.core.aggregator import Aggregator, CartSummary
from cartengine.core.cart_store import CartStore
from cartengine.core.promotion_flow import apply_promotion_code, remove_promotion_code
from cartengine.utils.promotion_api_utils import PromotionValidator
from cartengine.utils.storage import InMemoryStorage, SQLiteStorage, StorageKeys

__version__ = "0.1.0"

__all__ = [
    "AppliedDiscount",
    "AppliedPromotion",
    "Cart",
    "CartLineItem",
    "DealShorthand",
    "DiscountRule",
    "DiscountTier",
    "resolve_discount",
    "resolve_final_price",
    "Aggregator",
    "CartSummary",
    "CartStore",
    "apply_promotion_code",
    "remove_promotion_code",
    "PromotionValidator",
    "InMemoryStorage",
    "SQLiteStorage",
    "StorageKeys",
]
