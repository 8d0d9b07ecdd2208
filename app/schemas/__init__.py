"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema, WebhookSchema

# Catalog and sync value types
from .inventory import (
    Variant,
    InventoryItem,
    QuantityUpdate,
    QuantityDelta,
    BatchResult,
    SyncOutcome
)

# Inbound webhook bodies
from .webhooks import (
    InventoryLevelWebhook,
    OrderLineItem,
    OrderFulfillment,
    OrderWebhook
)
