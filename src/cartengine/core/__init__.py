"""
Core module initialization.
"""

from .config import settings, Settings
from .errors import CartEngineError, CorruptPersistedState
from .retry_utils import (
    retry_with_backoff,
    RetryConfig,
    APIResponseValidator,
    APIError,
    TransientError,
    PermanentError
)

from .db import get_db_connection, init_database, import_promotions_csv

__all__ = [
    # Configuration
    "settings",
    "Settings",
    # Errors
    "CartEngineError",
    "CorruptPersistedState",
    # Retry and validation
    "retry_with_backoff",
    "RetryConfig",
    "APIResponseValidator",
    "APIError",
    "TransientError",
    "PermanentError",
    # Database
    "get_db_connection",
    "init_database",
    "import_promotions_csv",
]
