"""
Database initialization and management utilities.
Handles SQLite schema creation and promotion CSV imports.
"""

import csv
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from cartengine.core.config import settings, LOG_FORMAT, LOG_DATEFMT

logging.basicConfig(
    level=settings.log_level,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def get_db_connection(db_path: Optional[PathLike] = None) -> sqlite3.Connection:
    """Get SQLite database connection."""
    path = Path(db_path) if db_path is not None else settings.db_path
    try:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
        conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to database: {path}")
        return conn
    except sqlite3.Error as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


def create_schema(conn: sqlite3.Connection):
    """Create the cart storage and promotion tables on an open connection."""
    cursor = conn.cursor()

    # Key-value blobs for persisted carts
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS cart_storage (
            storage_key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Vendor promotion codes served by the promotion API
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS promotions (
            id INTEGER PRIMARY KEY,
            code TEXT,
            vendor_id TEXT NOT NULL,
            discount_type TEXT NOT NULL,
            discount_value TEXT NOT NULL,
            minimum_order_type TEXT DEFAULT 'no_minimum',
            minimum_amount TEXT DEFAULT '0',
            valid_from TEXT,
            valid_to TEXT,
            promo_code_required INTEGER DEFAULT 1,
            display_on_menu INTEGER DEFAULT 0,
            status TEXT DEFAULT 'active',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()


def init_database(db_path: Optional[PathLike] = None, csv_path: Optional[PathLike] = None):
    """Initialize database schema and optionally load promotions from CSV."""
    conn = get_db_connection(db_path)

    try:
        create_schema(conn)
        logger.info("Database schema created successfully")
    except sqlite3.Error as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
    finally:
        conn.close()

    if csv_path is not None:
        import_promotions_csv(csv_path, db_path)


def import_promotions_csv(csv_path: PathLike, db_path: Optional[PathLike] = None) -> int:
    """Import promotion codes from a CSV file, replacing existing rows."""
    csv_path = Path(csv_path)

    if not csv_path.exists():
        logger.warning(f"CSV file not found: {csv_path}")
        return 0

    conn = get_db_connection(db_path)
    cursor = conn.cursor()
    imported = 0

    try:
        cursor.execute("DELETE FROM promotions")

        with open(csv_path, "r", newline="") as f:
            reader = csv.DictReader(f)
            for row in reader:
                cursor.execute("""
                    INSERT INTO promotions
                    (code, vendor_id, discount_type, discount_value, minimum_order_type,
                     minimum_amount, valid_from, valid_to, promo_code_required,
                     display_on_menu, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    (row.get("code") or "").strip().upper() or None,
                    row["vendor_id"],
                    row["discount_type"],
                    row["discount_value"],
                    row.get("minimum_order_type") or "no_minimum",
                    row.get("minimum_amount") or "0",
                    row.get("valid_from") or None,
                    row.get("valid_to") or None,
                    int(row.get("promo_code_required") or 1),
                    int(row.get("display_on_menu") or 0),
                    row.get("status") or "active",
                ))
                imported += 1

        conn.commit()
        logger.info(f"Imported {imported} promotions from CSV")
        return imported

    except (sqlite3.Error, KeyError, ValueError) as e:
        logger.error(f"Failed to import CSV data: {e}")
        raise
    finally:
        conn.close()
