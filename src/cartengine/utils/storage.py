"""
Storage utilities - key-value persistence for carts.

CartStore only talks to the KeyValueStorage protocol, so any host can plug
in its own backend. Two adapters ship here: an in-memory dict and SQLite.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import BaseModel

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT
from cartengine.core.db import create_schema, get_db_connection

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

GUEST_SUFFIX = "temp_session"


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> bool:
        ...

    def remove(self, key: str) -> bool:
        ...


class StorageKeys(BaseModel):
    """Storage keys for one cart: line items and the promotion ledger."""
    cart: str = "cart"
    promotions: str = "promotions"

    @classmethod
    def for_user(cls, user_id: Optional[str] = None, namespace: Optional[str] = None) -> "StorageKeys":
        """
        Keys isolated per user, e.g. cart_42 / cart_42_promotions.
        Guests share the temp_session keys until they log in.
        """
        namespace = namespace or settings.storage_namespace
        suffix = str(user_id) if user_id else GUEST_SUFFIX
        base = f"{namespace}_{suffix}"
        return cls(cart=base, promotions=f"{base}_promotions")


class InMemoryStorage:
    """Dict-backed storage, used by tests and short-lived sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    def remove(self, key: str) -> bool:
        self.data.pop(key, None)
        return True


class SQLiteStorage:
    """Storage backed by the cart_storage table."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        # Connections are opened per call
        if str(db_path or settings.db_path) == ":memory:":
            raise ValueError("SQLiteStorage needs a database file, not :memory:")
        self.db_path = db_path
        conn = get_db_connection(self.db_path)
        try:
            create_schema(conn)
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        try:
            conn = get_db_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT value FROM cart_storage WHERE storage_key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
            return row["value"] if row else None

        except sqlite3.Error as e:
            logger.error(f"[STORAGE] Failed to read {key}: {e}", exc_info=True)
            return None

    def set(self, key: str, value: str) -> bool:
        try:
            conn = get_db_connection(self.db_path)
            try:
                conn.execute("""
                    INSERT INTO cart_storage (storage_key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(storage_key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, value))
                conn.commit()
            finally:
                conn.close()
            logger.debug(f"[STORAGE] Saved {key}")
            return True

        except sqlite3.Error as e:
            logger.error(f"[STORAGE] Failed to save {key}: {e}", exc_info=True)
            return False

    def remove(self, key: str) -> bool:
        try:
            conn = get_db_connection(self.db_path)
            try:
                conn.execute("DELETE FROM cart_storage WHERE storage_key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
            logger.debug(f"[STORAGE] Removed {key}")
            return True

        except sqlite3.Error as e:
            logger.error(f"[STORAGE] Failed to remove {key}: {e}", exc_info=True)
            return False


def migrate_guest_cart(storage: KeyValueStorage, user_id: str, namespace: Optional[str] = None) -> bool:
    """
    Move the guest cart to the user's keys after login.

    Returns:
        True if a guest cart was found and moved
    """
    guest = StorageKeys.for_user(None, namespace)
    user = StorageKeys.for_user(user_id, namespace)

    moved = False
    for guest_key, user_key in ((guest.cart, user.cart), (guest.promotions, user.promotions)):
        value = storage.get(guest_key)
        if value is None:
            continue
        if storage.set(user_key, value):
            storage.remove(guest_key)
            moved = True

    if moved:
        logger.info(f"[STORAGE] Migrated guest cart to user {user_id}")
    return moved
