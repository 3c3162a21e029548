"""
Models package - data validation schemas for carts, discounts and promotions.
"""

# Discount models
from .discount import DiscountRule, DiscountTier, DealShorthand, AppliedDiscount

# Promotion models
from .promotion import PromotionRequest, PromotionResponse, AppliedPromotion, PromotionRecord

# Cart models
from .cart import CartLineItem, Cart

__all__ = [
    # Discount
    "DiscountRule",
    "DiscountTier",
    "DealShorthand",
    "AppliedDiscount",
    # Promotion
    "PromotionRequest",
    "PromotionResponse",
    "AppliedPromotion",
    "PromotionRecord",
    # Cart
    "CartLineItem",
    "Cart",
]
