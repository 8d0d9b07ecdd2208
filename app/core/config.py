# app/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Shopify store identity and credentials (required)
    SHOPIFY_SHOP: str
    SHOPIFY_ADMIN_API_ACCESS_TOKEN: str
    SHOPIFY_API_VERSION: str = "2025-07"

    # Shared secret used to sign webhook bodies (required)
    WEBHOOK_SECRET: str

    # Fallback location when an order carries none (numeric id or GID)
    SHOPIFY_LOCATION_ID: Optional[str] = None

    # Catalog client tuning
    SHOPIFY_BATCH_SIZE: int = 50
    SHOPIFY_REQUEST_TIMEOUT: float = 30.0
    SHOPIFY_MAX_RETRIES: int = 3

    # Sync tracker tuning
    SYNC_WINDOW_SECONDS: float = 30.0
    SYNC_LOCK_TIMEOUT_SECONDS: float = 30.0
    SYNC_QUANTITY_TOLERANCE: int = 0
    SYNC_TOLERANCE_WINDOW_SECONDS: float = 5.0
    SYNC_ORDER_WINDOW_SECONDS: float = 60.0
    SYNC_MAX_TRACKED_KEYS: int = 10000
    SYNC_SWEEP_INTERVAL_SECONDS: float = 60.0

    # Event handler tuning
    SYNC_LOCK_ATTEMPTS: int = 3
    SYNC_LOCK_BACKOFF_SECONDS: float = 0.5
    SYNC_JITTER_MAX_SECONDS: float = 0.25
    SYNC_PROCESSING_TIMEOUT_SECONDS: float = 25.0

    # Server
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("SHOPIFY_SHOP", "SHOPIFY_ADMIN_API_ACCESS_TOKEN", "WEBHOOK_SECRET")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("SHOPIFY_SHOP")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        # Accept "https://my-shop.myshopify.com/" as well as the bare domain
        for prefix in ("https://", "http://"):
            if value.startswith(prefix):
                value = value[len(prefix):]
        return value.rstrip("/")


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
