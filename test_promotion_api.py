"""Tests for the FastAPI promotion service, alone and behind PromotionValidator."""

import asyncio
import sqlite3
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cartengine.api.promotion_api import app
from cartengine.core.config import settings
from cartengine.core.db import init_database
from cartengine.core.promotion_flow import apply_promotion_code
from cartengine.core.promotion_rules import (
    EXPIRED_MESSAGE,
    INACTIVE_MESSAGE,
    INVALID_FORMAT_MESSAGE,
    NOT_FOUND_MESSAGE,
)
from cartengine.core.retry_utils import RetryConfig
from cartengine.utils.promotion_api_utils import PromotionValidator

CSV_PATH = Path(__file__).parent / "data" / "promotions.csv"


@pytest.fixture
def client(tmp_path, monkeypatch):
    db_path = tmp_path / "promotions.db"
    init_database(db_path, csv_path=CSV_PATH)
    monkeypatch.setattr(settings, "db_path", db_path)
    return TestClient(app)


def _validate(client, code, subtotal, vendor_id="9398"):
    response = client.post("/api/promotions/validate", json={
        "code": code, "subtotal": subtotal, "vendorId": vendor_id,
    })
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_amount_code(client):
    data = _validate(client, "GREEN5", "40.00")

    assert data["isApplicable"] is True
    assert Decimal(data["discountValue"]) == Decimal("5")
    assert data["discountDisplay"] == "$5.00"
    assert data["code"] == "GREEN5"


def test_code_lookup_is_case_insensitive(client):
    assert _validate(client, "green5", "40")["isApplicable"] is True


def test_code_belongs_to_one_vendor(client):
    data = _validate(client, "GREEN5", "40", vendor_id="9399")
    assert data["isApplicable"] is False
    assert data["errorMessage"] == NOT_FOUND_MESSAGE


def test_percentage_code_with_minimum(client):
    short = _validate(client, "HIGH20", "50")
    assert short["isApplicable"] is False
    assert short["errorMessage"] == "Spend $50.00 more to unlock 20% promotion"

    enough = _validate(client, "HIGH20", "150")
    assert enough["isApplicable"] is True
    assert Decimal(enough["discountValue"]) == Decimal("30")


def test_expired_and_inactive_codes(client):
    assert _validate(client, "SPRING15", "40", vendor_id="9399")["errorMessage"] == EXPIRED_MESSAGE
    assert _validate(client, "RETIRED", "40", vendor_id="9400")["errorMessage"] == INACTIVE_MESSAGE


def test_malformed_code(client):
    assert _validate(client, "A!", "40")["errorMessage"] == INVALID_FORMAT_MESSAGE


def test_automatic_promotion(client):
    data = client.get("/api/promotions/auto", params={"vendorId": "9400", "subtotal": "40"}).json()

    assert data["success"] is True
    assert Decimal(data["promotion"]["discountValue"]) == Decimal("2")


def test_no_automatic_promotion(client):
    data = client.get("/api/promotions/auto", params={"vendorId": "9398", "subtotal": "40"}).json()
    assert data == {"success": False, "promotion": None}


def test_bad_subtotal_for_automatic_promotion(client):
    response = client.get("/api/promotions/auto", params={"vendorId": "9400", "subtotal": "lots"})
    assert response.status_code == 422


def test_available_promotions(client):
    data = client.get("/api/promotions/available", params={"vendorId": "9398"}).json()

    assert data["count"] == 1
    assert data["promotions"][0]["code"] == "GREEN5"



def test_available_promotions_with_utc_offsets(client):
    conn = sqlite3.connect(str(settings.db_path))
    conn.executemany(
        """
        INSERT INTO promotions (code, vendor_id, discount_type, discount_value,
                                valid_from, valid_to, display_on_menu, status)
        VALUES (?, '9401', 'amount', '3', ?, ?, 1, 'active')
        """,
        [
            ("CURRENT3", "2020-01-01T00:00:00+00:00", "2099-12-31T23:59:59+00:00"),
            ("OLD3", "2020-01-01T00:00:00+00:00", "2021-01-01T00:00:00+00:00"),
        ],
    )
    conn.commit()
    conn.close()

    response = client.get("/api/promotions/available", params={"vendorId": "9401"})

    assert response.status_code == 200
    assert [p["code"] for p in response.json()["promotions"]] == ["CURRENT3"]


def test_validator_against_service(client, store, make_item):
    store.add_item(make_item(vendor_id="9398", base_price="60", quantity=2))
    store.add_item(make_item(product_id="p-2", vendor_id="9399", base_price="30"))
    validator = PromotionValidator(
        base_url="http://testserver",
        session=client,
        retry_config=RetryConfig(max_retries=0),
    )

    result = asyncio.run(apply_promotion_code(store, validator, "9398", "high20"))

    assert result.is_applicable
    assert result.code == "HIGH20"
    assert result.discount_type == "percentage"
    assert result.minimum_purchase == Decimal("100")

    aggregator = store.aggregator()
    assert aggregator.vendor_promotion_discount("9398") == Decimal("24")
    assert aggregator.grand_total() == Decimal("126")

    # Dropping below the minimum removes the promotion again
    line = next(i for i in store.items if i.vendor_id == "9398")
    store.set_quantity(line.cart_item_id, 1)
    assert "9398" not in store.promotions
