"""Shared pytest fixtures for the cart engine tests."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from cartengine.core.cart_store import CartStore
from cartengine.models.cart import CartLineItem
from cartengine.utils.storage import InMemoryStorage, StorageKeys

# Wednesday, inside every sample discount window
NOW = datetime(2025, 6, 4, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def keys():
    return StorageKeys.for_user("42")


@pytest.fixture
def store(storage, keys):
    return CartStore(storage=storage, keys=keys, clock=lambda: NOW)


@pytest.fixture
def make_item():
    """Factory for line items with sensible defaults."""
    def _make(**overrides) -> CartLineItem:
        data = {
            "product_id": "p-1",
            "vendor_id": "vendor-a",
            "quantity": 1,
            "base_price": "20.00",
            "product_name": "Blue Dream 3.5g",
            "vendor_name": "Green Leaf",
        }
        data.update(overrides)
        return CartLineItem(**data)
    return _make
