"""
Backoff policy and error types for calls to the promotion service.

Transient failures (timeouts, refused connections, 5xx) are retried with
exponential backoff. Permanent failures (4xx, malformed bodies) are raised
on the first attempt.
"""

import logging
import random
import time
from functools import wraps
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.errors import CartEngineError

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

T = TypeVar('T')

PROMOTION_RECORD_KEYS = ("id", "vendorId", "discountType", "discountValue")
DISCOUNT_TYPES = ("percentage", "amount")


class RetryConfig(BaseModel):
    """Backoff policy for one service client."""
    max_retries: int = Field(default=3, ge=0)
    initial_backoff: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_backoff: float = Field(default=32.0, ge=0)
    jitter: bool = True

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_retries=settings.promotion_max_retries,
            initial_backoff=settings.promotion_initial_backoff,
            backoff_multiplier=settings.promotion_backoff_multiplier,
            max_backoff=settings.promotion_max_backoff,
        )

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def get_backoff_time(self, attempt: int) -> float:
        """Seconds to wait after the zero-based attempt failed."""
        delay = min(self.initial_backoff * self.backoff_multiplier ** attempt, self.max_backoff)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


class APIError(CartEngineError):
    """A call to an external service did not produce a usable answer."""
    retryable = True

    def __init__(self, message: str, service: str, status_code: Optional[int] = None):
        self.message = message
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")

    @property
    def retry_possible(self) -> bool:
        return self.retryable


class TransientError(APIError):
    """Timeouts, refused connections and 5xx answers."""


class PermanentError(APIError):
    """4xx answers and bodies that cannot be read."""
    retryable = False


def retry_with_backoff(
    func: Optional[Callable[..., T]] = None,
    *,
    config: Optional[RetryConfig] = None,
    error_handler: Optional[Callable[[Exception, int], None]] = None
):
    """
    Retry a call on transient errors, sleeping between attempts.

    Works bare (@retry_with_backoff), with options
    (@retry_with_backoff(config=...)) or as a plain wrapper
    (retry_with_backoff(session_call, config=...)).

    Args:
        func: Callable to retry
        config: Backoff policy, defaults to RetryConfig()
        error_handler: Called with (error, attempt) before each sleep
    """
    if func is None:
        return lambda f: retry_with_backoff(f, config=config, error_handler=error_handler)

    policy = config or RetryConfig()
    name = getattr(func, "__name__", repr(func))

    @wraps(func)
    def wrapper(*args, **kwargs) -> T:
        for attempt in range(policy.attempts):
            try:
                result = func(*args, **kwargs)
            except PermanentError as e:
                logger.error(f"[RETRY] {name} not retried, {e.service} answered: {e.message}")
                raise
            except (TransientError, ConnectionError, TimeoutError) as e:
                if attempt == policy.max_retries:
                    logger.error(f"[RETRY] {name} failed {policy.attempts} times, giving up")
                    raise
                delay = policy.get_backoff_time(attempt)
                logger.warning(
                    f"[RETRY] {name} attempt {attempt + 1}/{policy.attempts} failed ({e}), "
                    f"next try in {delay:.2f}s"
                )
                if error_handler:
                    error_handler(e, attempt)
                time.sleep(delay)
            else:
                if attempt:
                    logger.info(f"[RETRY] {name} recovered on attempt {attempt + 1}")
                return result

    return wrapper


class APIResponseValidator:
    """Shape checks on decoded promotion service bodies."""

    @staticmethod
    def validate_promotion_response(response, service: str = "promotions") -> bool:
        """
        Check a validation answer before it is parsed.

        Raises:
            PermanentError: if isApplicable is missing or not a boolean, or an
                applicable answer has no discountValue
        """
        if not isinstance(response, dict):
            raise PermanentError(f"expected a JSON object, got {type(response).__name__}", service)

        applicable = response.get("isApplicable")
        if not isinstance(applicable, bool):
            raise PermanentError("isApplicable missing or not a boolean", service)

        if applicable and "discountValue" not in response:
            raise PermanentError("applicable promotion has no discountValue", service)

        return True

    @staticmethod
    def validate_promotion_record(record) -> bool:
        """True if a listing entry has the keys and discount type a PromotionRecord needs."""
        return (
            isinstance(record, dict)
            and all(key in record for key in PROMOTION_RECORD_KEYS)
            and record["discountType"] in DISCOUNT_TYPES
        )
