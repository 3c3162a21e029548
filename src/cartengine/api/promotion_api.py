"""
FastAPI promotion service backed by the SQLite promotions table.
Validates vendor promotion codes against a vendor subtotal and lists the
automatic and on-menu promotions each vendor offers.
"""

import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.db import get_db_connection
from cartengine.core.money import non_negative, to_money
from cartengine.core.promotion_rules import (
    INVALID_FORMAT_MESSAGE,
    evaluate_promotion,
    normalize_code,
    to_local_naive,
    validate_code_format,
)
from cartengine.models.promotion import PromotionRecord, PromotionRequest, PromotionResponse

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Vendor Promotion API")

# Enable CORS for storefront clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db() -> sqlite3.Connection:
    """Get database connection."""
    return get_db_connection(settings.db_path)


def promotion_row_to_record(row: sqlite3.Row) -> PromotionRecord:
    """Convert database row to PromotionRecord model."""
    return PromotionRecord(
        id=row["id"],
        code=row["code"],
        vendor_id=row["vendor_id"],
        discount_type=row["discount_type"],
        discount_value=row["discount_value"],
        minimum_order_type=row["minimum_order_type"] or "no_minimum",
        minimum_amount=row["minimum_amount"] or "0",
        valid_from=row["valid_from"],
        valid_to=row["valid_to"],
        promo_code_required=bool(row["promo_code_required"]),
        display_on_menu=bool(row["display_on_menu"]),
        status=row["status"] or "active"
    )


def fetch_records(query: str, params: tuple) -> List[PromotionRecord]:
    conn = get_db()
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    return [promotion_row_to_record(row) for row in rows]


def to_wire(response: PromotionResponse) -> dict:
    return response.model_dump(mode="json", by_alias=True)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.post("/api/promotions/validate")
def validate_promotion(request: PromotionRequest) -> dict:
    """
    Check a promotion code against one vendor's subtotal.
    Rejections are answered with isApplicable false, not an HTTP error.
    """
    logger.info(f"[PROMO-API] Validate {request.code!r} for vendor {request.vendor_id}")

    if not validate_code_format(request.code):
        return to_wire(PromotionResponse(is_applicable=False, error_message=INVALID_FORMAT_MESSAGE))

    code = normalize_code(request.code)

    try:
        records = fetch_records("""
            SELECT * FROM promotions
            WHERE vendor_id = ? AND UPPER(code) = ?
            ORDER BY id DESC
            LIMIT 1
        """, (request.vendor_id, code))
    except sqlite3.Error as e:
        logger.error(f"[PROMO-API] Lookup error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    record: Optional[PromotionRecord] = records[0] if records else None
    response = evaluate_promotion(record, non_negative(request.subtotal))
    if response.is_applicable:
        logger.info(f"[PROMO-API] {code} applies to vendor {request.vendor_id}: -{response.discount_value}")
    else:
        logger.info(f"[PROMO-API] {code} rejected for vendor {request.vendor_id}: {response.error_message}")
    return to_wire(response)


@app.get("/api/promotions/auto")
def automatic_promotion(vendorId: str, subtotal: str = "0") -> dict:
    """Best code-free promotion that applies to the vendor subtotal, if any."""
    try:
        amount = non_negative(to_money(subtotal))
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid subtotal: {subtotal}")

    try:
        records = fetch_records("""
            SELECT * FROM promotions
            WHERE vendor_id = ? AND promo_code_required = 0 AND status = 'active'
            ORDER BY id ASC
        """, (vendorId,))
    except sqlite3.Error as e:
        logger.error(f"[PROMO-API] Automatic lookup error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    applicable = [
        r for r in (evaluate_promotion(record, amount) for record in records)
        if r.is_applicable
    ]
    if not applicable:
        return {"success": False, "promotion": None}

    best = max(applicable, key=lambda r: r.discount_value)
    logger.info(f"[PROMO-API] Automatic promotion {best.promotion_id} for vendor {vendorId}")
    return {"success": True, "promotion": to_wire(best)}


@app.get("/api/promotions/available")
def available_promotions(vendorId: str) -> dict:
    """Active promotions the vendor shows on its menu."""
    now = datetime.now()

    try:
        records = fetch_records("""
            SELECT * FROM promotions
            WHERE vendor_id = ? AND display_on_menu = 1 AND status = 'active'
            ORDER BY id ASC
        """, (vendorId,))
    except sqlite3.Error as e:
        logger.error(f"[PROMO-API] Listing error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    current = [
        r for r in records
        if (r.valid_to is None or to_local_naive(r.valid_to) >= now)
        and (r.valid_from is None or to_local_naive(r.valid_from) <= now)
    ]
    return {
        "promotions": [r.model_dump(mode="json", by_alias=True) for r in current],
        "count": len(current),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
