"""
Utils module initialization.
"""

from .storage import InMemoryStorage, SQLiteStorage, StorageKeys, migrate_guest_cart
from .promotion_api_utils import PromotionValidator

__all__ = [
    # Storage utilities
    "InMemoryStorage",
    "SQLiteStorage",
    "StorageKeys",
    "migrate_guest_cart",
    # Promotion API utilities
    "PromotionValidator",
]
