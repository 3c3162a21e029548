"""
Asynchronous promotion validation against a live CartStore.

Validation runs in a worker thread so the cart keeps accepting mutations
while the promotion service answers. Each call takes a request token from
the store; only the newest request for a vendor can commit its result.
"""

import asyncio
import logging
from typing import Dict, Optional

from cartengine.core.cart_store import CartStore
from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.models.promotion import AppliedPromotion
from cartengine.utils.promotion_api_utils import PromotionValidator

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

EMPTY_VENDOR_MESSAGE = "Add items from this vendor before applying a promotion code."
SUPERSEDED_MESSAGE = "Your cart changed while the code was being checked. Please try again."


async def apply_promotion_code(
    store: CartStore,
    validator: PromotionValidator,
    vendor_id: str,
    code: str
) -> AppliedPromotion:
    """
    Validate a code for one vendor and apply it if it still fits the cart.

    Returns:
        The validation result. Rejected codes leave the ledger untouched;
        results that arrive after the vendor emptied or after a newer request
        come back with is_applicable False and an explanation.
    """
    vendor_id = str(vendor_id)

    if not store.snapshot().has_vendor(vendor_id):
        return AppliedPromotion.rejected(vendor_id, code, EMPTY_VENDOR_MESSAGE)

    token = store.begin_promotion_request(vendor_id)
    subtotal = store.aggregator().vendor_subtotal(vendor_id)
    logger.info(f"[PROMO-FLOW] Request {token}: {code!r} for vendor {vendor_id}")

    result = await asyncio.to_thread(validator.validate, code, subtotal, vendor_id)

    committed = store.commit_promotion(vendor_id, token, result)
    if committed or not result.is_applicable:
        return result

    logger.info(f"[PROMO-FLOW] Request {token} for vendor {vendor_id} no longer current")
    return result.model_copy(update={"is_applicable": False, "error_message": SUPERSEDED_MESSAGE})


def remove_promotion_code(store: CartStore, vendor_id: str) -> bool:
    """Drop a vendor's promotion and cancel any validation in flight."""
    return store.apply_promotion(str(vendor_id), None)


async def apply_automatic_promotions(
    store: CartStore,
    validator: PromotionValidator
) -> Dict[str, Optional[AppliedPromotion]]:
    """
    Fill in code-free promotions for vendors that have none yet.

    Returns:
        vendor_id -> promotion committed for it (None when nothing applied)
    """
    aggregator = store.aggregator()
    existing = store.promotions
    vendor_ids = [g.vendor_id for g in aggregator.vendor_groups() if g.vendor_id not in existing]

    async def check(vendor_id: str) -> Optional[AppliedPromotion]:
        token = store.begin_promotion_request(vendor_id)
        promotion = await asyncio.to_thread(
            validator.fetch_automatic_promotion,
            vendor_id,
            aggregator.vendor_subtotal(vendor_id)
        )
        if promotion is None or not store.commit_promotion(vendor_id, token, promotion):
            return None
        return promotion

    results = await asyncio.gather(*(check(v) for v in vendor_ids))
    applied = dict(zip(vendor_ids, results))
    logger.info(
        f"[PROMO-FLOW] Automatic promotions applied for "
        f"{sum(1 for p in applied.values() if p is not None)}/{len(vendor_ids)} vendors"
    )
    return applied
