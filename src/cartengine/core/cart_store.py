"""
CartStore - owns the cart, persists it, and keeps prices in sync.

Every mutation re-runs the pricing engine for the lines it touches,
persists the whole cart before returning and then notifies observers.
"""

import itertools
import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from cartengine.core.aggregator import Aggregator
from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.errors import CorruptPersistedState
from cartengine.core.money import ZERO
from cartengine.models.cart import Cart, CartLineItem
from cartengine.models.promotion import AppliedPromotion
from cartengine.utils.storage import InMemoryStorage, KeyValueStorage, StorageKeys

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

CART_KEY = "cart"
PROMOTIONS_KEY = "promotions"

Observer = Callable[[Cart], None]


class CartStore:
    """
    Single writer of a persisted cart.

    Args:
        storage: Key-value persistence port (defaults to in-memory)
        keys: Storage keys for this cart (defaults to the guest keys)
        clock: Source of "now" for discount validity windows
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        keys: Optional[StorageKeys] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.keys = keys or StorageKeys.for_user(None)
        self.clock = clock
        self._cart = Cart()
        self._observers: List[Observer] = []
        self._token_counter = itertools.count(1)
        self._promotion_tokens: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[CartLineItem]:
        return [item.model_copy(deep=True) for item in self._cart.items]

    @property
    def promotions(self) -> Dict[str, AppliedPromotion]:
        return {vendor_id: p.model_copy() for vendor_id, p in self._cart.promotions.items()}

    def get_item(self, cart_item_id: str) -> Optional[CartLineItem]:
        item = self._cart.find_item(cart_item_id)
        return item.model_copy(deep=True) if item is not None else None

    def snapshot(self) -> Cart:
        return self._cart.model_copy(deep=True)

    def aggregator(self) -> Aggregator:
        return Aggregator(self.snapshot())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, item: Union[CartLineItem, dict]) -> CartLineItem:
        """Add a line, merging with an existing line for the same product/vendor/variant/flavor."""
        if isinstance(item, dict):
            item = CartLineItem.model_validate(item)

        stored = self._cart.add_item(item, self.clock())
        logger.info(
            f"[CART] Added {item.quantity} x {item.product_id} (vendor {item.vendor_id}) "
            f"-> qty {stored.quantity}, unit price {stored.price}"
        )
        self._after_item_change()
        return stored.model_copy(deep=True)

    def remove_item(self, cart_item_id: str) -> bool:
        """Delete a line. Unknown ids are a no-op."""
        removed = self._cart.remove_item(cart_item_id)
        if not removed:
            logger.debug(f"[CART] Remove ignored, {cart_item_id} not in cart")
            return False

        logger.info(f"[CART] Removed {cart_item_id}")
        self._after_item_change()
        return True

    def set_quantity(self, cart_item_id: str, quantity: int) -> Optional[CartLineItem]:
        """
        Set a line's quantity and re-resolve its discount.
        Zero or negative quantities remove the line.
        """
        if quantity <= 0:
            self.remove_item(cart_item_id)
            return None

        updated = self._cart.set_quantity(cart_item_id, quantity, self.clock())
        if updated is None:
            logger.debug(f"[CART] Quantity update ignored, {cart_item_id} not in cart")
            return None

        logger.info(
            f"[CART] {cart_item_id} quantity -> {quantity}, unit price {updated.price} "
            f"({updated.applied_discount.source or 'no discount'})"
        )
        self._after_item_change()
        return updated.model_copy(deep=True)

    def apply_promotion(self, vendor_id: str, promotion: Optional[AppliedPromotion]) -> bool:
        """
        Replace (or with None, remove) the promotion for one vendor.
        Any validation still in flight for that vendor is superseded.
        """
        self._promotion_tokens.pop(vendor_id, None)
        return self._set_promotion(vendor_id, promotion)

    def clear(self):
        """Remove every line and every promotion together."""
        self._cart.clear()
        self._promotion_tokens.clear()
        logger.info("[CART] Cleared")
        self._commit()

    def recompute(self):
        """Re-price every line, e.g. after a discount window opened or closed."""
        self._cart.recalculate(self.clock())
        self._after_item_change()

    # ------------------------------------------------------------------
    # Promotion request tokens
    # ------------------------------------------------------------------

    def begin_promotion_request(self, vendor_id: str) -> int:
        """Issue a token for a validation call; only the latest one can commit."""
        token = next(self._token_counter)
        self._promotion_tokens[vendor_id] = token
        return token

    def commit_promotion(self, vendor_id: str, token: int, promotion: AppliedPromotion) -> bool:
        """
        Apply a validated promotion if its request is still current.

        Returns:
            True if the ledger was updated
        """
        if self._promotion_tokens.get(vendor_id) != token:
            logger.info(f"[CART] Discarding superseded promotion result for vendor {vendor_id}")
            return False

        self._promotion_tokens.pop(vendor_id, None)

        if not self._cart.has_vendor(vendor_id):
            logger.info(f"[CART] Discarding promotion result, vendor {vendor_id} has no items")
            return False

        if not promotion.is_applicable:
            return False

        # The cart may have changed while the request was in flight
        subtotal = Aggregator(self._cart).vendor_subtotal(vendor_id)
        if promotion.minimum_purchase > ZERO and subtotal < promotion.minimum_purchase:
            logger.info(
                f"[CART] Discarding promotion {promotion.code} for vendor {vendor_id}: "
                f"subtotal {subtotal} below minimum {promotion.minimum_purchase}"
            )
            return False

        if promotion.discount_value > subtotal:
            promotion = promotion.model_copy(update={"discount_value": subtotal})

        return self._set_promotion(vendor_id, promotion)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a callback run after every persisted mutation."""
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def serialize(self) -> Dict[str, str]:
        """
        Encode the cart as two JSON blobs.
        Derived fields (price, appliedDiscount) are left out.
        """
        records = []
        for item in self._cart.items:
            record = item.model_dump(
                mode="json",
                by_alias=True,
                exclude={"price", "applied_discount", "deal_shorthand"}
            )
            record["dealShorthand"] = item.deal_shorthand.token if item.deal_shorthand else None
            records.append(record)

        promotions = {
            vendor_id: promotion.model_dump(mode="json", by_alias=True)
            for vendor_id, promotion in self._cart.promotions.items()
        }

        return {
            CART_KEY: json.dumps(records),
            PROMOTIONS_KEY: json.dumps(promotions),
        }

    def hydrate(self, blob: Mapping[str, Optional[str]]):
        """
        Replace the cart with a persisted one.

        Every line is re-priced instead of trusting stored prices. A corrupt
        cart blob falls back to an empty cart, a corrupt promotion blob to no
        promotions.
        """
        try:
            items = _decode_items(blob.get(CART_KEY))
        except CorruptPersistedState as e:
            logger.warning(f"[CART] {e}; starting with an empty cart")
            items = []

        try:
            promotions = _decode_promotions(blob.get(PROMOTIONS_KEY))
        except CorruptPersistedState as e:
            logger.warning(f"[CART] {e}; dropping stored promotions")
            promotions = {}

        at = self.clock()
        cart = Cart()
        for item in items:
            cart.add_item(item, at)
        for vendor_id, promotion in promotions.items():
            if cart.has_vendor(vendor_id):
                cart.promotions[vendor_id] = promotion

        self._cart = cart
        self._promotion_tokens.clear()
        self._prune_promotions()
        logger.info(
            f"[CART] Hydrated {len(cart.items)} items, {len(cart.promotions)} promotions"
        )
        self._commit()

    def load(self):
        """Hydrate from the configured storage."""
        self.hydrate({
            CART_KEY: self.storage.get(self.keys.cart),
            PROMOTIONS_KEY: self.storage.get(self.keys.promotions),
        })

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_promotion(self, vendor_id: str, promotion: Optional[AppliedPromotion]) -> bool:
        if promotion is not None and not self._cart.has_vendor(vendor_id):
            logger.warning(f"[CART] Not applying promotion, vendor {vendor_id} has no items")
            return False

        if promotion is not None and promotion.vendor_id != vendor_id:
            promotion = promotion.model_copy(update={"vendor_id": vendor_id})

        self._cart.apply_promotion(vendor_id, promotion)
        if promotion is None:
            logger.info(f"[CART] Removed promotion for vendor {vendor_id}")
        else:
            logger.info(
                f"[CART] Promotion {promotion.code} for vendor {vendor_id}: -{promotion.discount_value}"
            )
        self._commit()
        return True

    def _prune_promotions(self):
        """Drop promotions for vendors with no items or whose minimum is no longer met."""
        aggregator = Aggregator(self._cart)
        for vendor_id, promotion in list(self._cart.promotions.items()):
            if not self._cart.has_vendor(vendor_id):
                reason = "no items left"
            elif (
                promotion.minimum_purchase > ZERO
                and aggregator.vendor_subtotal(vendor_id) < promotion.minimum_purchase
            ):
                reason = f"subtotal below minimum {promotion.minimum_purchase}"
            else:
                continue

            del self._cart.promotions[vendor_id]
            logger.info(f"[CART] Dropped promotion {promotion.code} for vendor {vendor_id}: {reason}")

        for vendor_id in list(self._promotion_tokens):
            if not self._cart.has_vendor(vendor_id):
                del self._promotion_tokens[vendor_id]

    def _after_item_change(self):
        self._prune_promotions()
        self._commit()

    def _commit(self):
        self._persist()
        self._notify()

    def _persist(self):
        blob = self.serialize()
        saved_cart = self.storage.set(self.keys.cart, blob[CART_KEY])
        saved_promotions = self.storage.set(self.keys.promotions, blob[PROMOTIONS_KEY])
        if not (saved_cart and saved_promotions):
            logger.warning(f"[CART] Failed to persist cart under {self.keys.cart}")

    def _notify(self):
        if not self._observers:
            return
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"[CART] Observer {observer!r} failed: {e}", exc_info=True)


def _decode_items(raw: Optional[str]) -> List[CartLineItem]:
    if raw is None or raw == "":
        return []

    try:
        records = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorruptPersistedState(CART_KEY, f"invalid JSON ({e})")

    if not isinstance(records, list):
        raise CorruptPersistedState(CART_KEY, "expected a list of line items")

    items = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise CorruptPersistedState(CART_KEY, f"item {index} is not an object")

        # Stored quantities of zero or less mean the line was removed
        quantity = record.get("quantity")
        if isinstance(quantity, (int, float)) and not isinstance(quantity, bool) and quantity <= 0:
            continue

        try:
            items.append(CartLineItem.model_validate(record))
        except ValidationError as e:
            raise CorruptPersistedState(CART_KEY, f"item {index}: {e.error_count()} invalid fields")

    return items


def _decode_promotions(raw: Optional[str]) -> Dict[str, AppliedPromotion]:
    if raw is None or raw == "":
        return {}

    try:
        records = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorruptPersistedState(PROMOTIONS_KEY, f"invalid JSON ({e})")

    if not isinstance(records, dict):
        raise CorruptPersistedState(PROMOTIONS_KEY, "expected an object keyed by vendor")

    promotions = {}
    for vendor_id, record in records.items():
        if not isinstance(record, dict):
            raise CorruptPersistedState(PROMOTIONS_KEY, f"promotion for {vendor_id} is not an object")
        record = {**record, "vendorId": vendor_id}
        try:
            promotions[vendor_id] = AppliedPromotion.model_validate(record)
        except ValidationError as e:
            raise CorruptPersistedState(
                PROMOTIONS_KEY, f"promotion for {vendor_id}: {e.error_count()} invalid fields"
            )

    return promotions
