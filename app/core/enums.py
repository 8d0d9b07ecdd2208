"""
Shared enums and constants used across the application.
"""

from enum import Enum


class WebhookTopic(str, Enum):
    """Shopify webhook topics this service subscribes to"""
    INVENTORY_LEVELS_UPDATE = "inventory_levels/update"
    ORDERS_CREATE = "orders/create"
    ORDERS_CANCELLED = "orders/cancelled"


class AdjustmentReason(str, Enum):
    """Reason strings sent with inventory mutations"""
    CORRECTION = "correction"
    SALE = "sale"
    RETURN_OR_CANCEL = "return_or_cancel"


class SyncStatus(str, Enum):
    """Outcome of a single webhook sync run"""
    SYNCED = "synced"
    NO_SKU = "no_sku"
    NO_SIBLINGS = "no_siblings"
    NOTHING_TO_UPDATE = "nothing_to_update"
    SUPPRESSED = "suppressed"
    LOCKED = "locked"
    DUPLICATE = "duplicate"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_noop(self) -> bool:
        # A timed-out order may have adjusted some line items before stopping
        return self not in (SyncStatus.SYNCED, SyncStatus.FAILED, SyncStatus.TIMED_OUT)
