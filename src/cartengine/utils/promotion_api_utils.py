"""
Promotion API utilities - promotion code validation with retry logic.
"""

import logging
from decimal import Decimal
from typing import List, Optional

import requests
from pydantic import ValidationError

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.money import ZERO, clamp, non_negative, to_money
from cartengine.core.promotion_rules import (
    INVALID_FORMAT_MESSAGE,
    NOT_FOUND_MESSAGE,
    SERVICE_ERROR_MESSAGE,
    normalize_code,
    validate_code_format,
)
from cartengine.core.retry_utils import (
    APIError,
    APIResponseValidator,
    PermanentError,
    RetryConfig,
    TransientError,
    retry_with_backoff,
)
from cartengine.models.promotion import (
    AppliedPromotion,
    PromotionRecord,
    PromotionRequest,
    PromotionResponse,
)

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "promotions"


def to_applied_promotion(
    response: PromotionResponse,
    vendor_id: str,
    vendor_subtotal: Decimal,
    requested_code: Optional[str] = None,
    source: str = "manual"
) -> AppliedPromotion:
    """
    Normalize a service answer into a ledger entry.
    The discount is clamped to [0, vendor_subtotal] whatever the service said.
    """
    code = response.code or requested_code

    if not response.is_applicable:
        return AppliedPromotion(
            vendor_id=vendor_id,
            code=code,
            is_applicable=False,
            discount_display=response.discount_display,
            error_message=response.error_message or NOT_FOUND_MESSAGE,
            promotion_id=response.promotion_id,
            discount_type=response.discount_type,
            minimum_purchase=response.minimum_purchase,
            source=source,
        )

    return AppliedPromotion(
        vendor_id=vendor_id,
        code=code,
        is_applicable=True,
        discount_value=clamp(response.discount_value, ZERO, vendor_subtotal),
        discount_display=response.discount_display,
        promotion_id=response.promotion_id,
        discount_type=response.discount_type,
        minimum_purchase=response.minimum_purchase,
        source=source,
    )


class PromotionValidator:
    """
    Client for the promotion service.

    Args:
        base_url: Service root, defaults to settings.promotion_api_base
        timeout: Per-request timeout in seconds
        retry_config: Backoff policy for transient failures
        session: requests.Session to use (injectable for tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None
    ):
        self.base_url = (base_url or settings.promotion_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.promotion_api_timeout
        self.retry_config = retry_config or RetryConfig.from_settings()
        self.session = session or requests.Session()
        self._post = retry_with_backoff(self._post_once, config=self.retry_config)
        self._get = retry_with_backoff(self._get_once, config=self.retry_config)

    def _post_once(self, path: str, payload: dict):
        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[PROMO-API] POST {path} failed: {str(e)}")
            raise TransientError(f"Promotion API error: {str(e)}", SERVICE_NAME)
        return self._decode(response, path)

    def _get_once(self, path: str, params: dict):
        try:
            response = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[PROMO-API] GET {path} failed: {str(e)}")
            raise TransientError(f"Promotion API error: {str(e)}", SERVICE_NAME)
        return self._decode(response, path)

    @staticmethod
    def _decode(response, path: str):
        if response.status_code >= 500:
            raise TransientError(f"{path} returned {response.status_code}", SERVICE_NAME, response.status_code)
        if response.status_code >= 400:
            raise PermanentError(f"{path} returned {response.status_code}", SERVICE_NAME, response.status_code)
        try:
            return response.json()
        except ValueError:
            raise PermanentError(f"{path} returned a non-JSON body", SERVICE_NAME)

    def validate(self, code: str, vendor_subtotal, vendor_id: str) -> AppliedPromotion:
        """
        Ask the service whether a code applies to a vendor's subtotal.

        Never raises for rejected codes or transport failures; those come back
        as a non-applicable promotion with error_message set.
        """
        vendor_id = str(vendor_id)
        subtotal = non_negative(to_money(vendor_subtotal))

        if not validate_code_format(code):
            logger.info(f"[PROMO-API] Rejected malformed code for vendor {vendor_id}")
            return AppliedPromotion.rejected(vendor_id, code, INVALID_FORMAT_MESSAGE)

        code = normalize_code(code)
        request = PromotionRequest(code=code, subtotal=subtotal, vendor_id=vendor_id)

        try:
            logger.info(f"[PROMO-API] Validating {code} for vendor {vendor_id} (subtotal {subtotal})")
            data = self._post("/api/promotions/validate", request.model_dump(mode="json", by_alias=True))
            APIResponseValidator.validate_promotion_response(data, SERVICE_NAME)
            response = PromotionResponse.model_validate(data)
            promotion = to_applied_promotion(response, vendor_id, subtotal, requested_code=code)
        except (APIError, ValidationError) as e:
            logger.error(f"[PROMO-API] Validation of {code} failed: {e}")
            return AppliedPromotion.rejected(vendor_id, code, SERVICE_ERROR_MESSAGE)

        if promotion.is_applicable:
            logger.info(f"[PROMO-API] {code} applies to vendor {vendor_id}: -{promotion.discount_value}")
        else:
            logger.info(f"[PROMO-API] {code} rejected for vendor {vendor_id}: {promotion.error_message}")
        return promotion

    def fetch_automatic_promotion(self, vendor_id: str, vendor_subtotal) -> Optional[AppliedPromotion]:
        """Look up a promotion the vendor applies without a code."""
        vendor_id = str(vendor_id)
        subtotal = non_negative(to_money(vendor_subtotal))

        try:
            data = self._get("/api/promotions/auto", {"vendorId": vendor_id, "subtotal": str(subtotal)})
            if not isinstance(data, dict) or not data.get("success") or not data.get("promotion"):
                return None
            APIResponseValidator.validate_promotion_response(data["promotion"], SERVICE_NAME)
            response = PromotionResponse.model_validate(data["promotion"])
            return to_applied_promotion(response, vendor_id, subtotal, source="automatic")
        except (APIError, ValidationError) as e:
            logger.warning(f"[PROMO-API] Automatic promotion lookup for vendor {vendor_id} failed: {e}")
            return None

    def fetch_available_promotions(self, vendor_id: str) -> List[PromotionRecord]:
        """List the promotions a vendor shows on its menu."""
        vendor_id = str(vendor_id)

        try:
            data = self._get("/api/promotions/available", {"vendorId": vendor_id})
        except APIError as e:
            logger.warning(f"[PROMO-API] Listing promotions for vendor {vendor_id} failed: {e}")
            return []

        records = []
        for record in (data or {}).get("promotions", []) if isinstance(data, dict) else []:
            if not APIResponseValidator.validate_promotion_record(record):
                logger.warning(f"[PROMO-API] Skipping invalid promotion entry for vendor {vendor_id}")
                continue
            try:
                records.append(PromotionRecord.model_validate(record))
            except ValidationError as e:
                logger.warning(f"[PROMO-API] Skipping promotion entry: {e.error_count()} invalid fields")

        logger.info(f"[PROMO-API] Vendor {vendor_id} has {len(records)} promotions on display")
        return records
