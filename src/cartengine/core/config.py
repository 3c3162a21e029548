"""
Runtime settings for the cart engine.
Values can be overridden with CARTENGINE_* environment variables or a .env file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    # Promotion service
    promotion_api_base: str = "http://localhost:8000"
    promotion_api_timeout: float = 10.0
    promotion_max_retries: int = 3
    promotion_initial_backoff: float = 1.0
    promotion_backoff_multiplier: float = 2.0
    promotion_max_backoff: float = 32.0

    # Persistence
    db_path: Path = Path(__file__).parent.parent.parent.parent / "data" / "cart_engine.db"
    storage_namespace: str = "cart"

    log_level: str = "INFO"

    class Config:
        env_prefix = "CARTENGINE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
