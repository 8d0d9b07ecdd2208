"""
Core module exports.
"""
from .enums import (
    WebhookTopic,
    AdjustmentReason,
    SyncStatus
)

from .exceptions import (
    BaseServiceError,
    PlatformServiceError,
    ShopifyServiceError,
    ShopifyAPIError,
    ShopifyGraphQLError,
    ShopifyThrottledError,
    ShopifyTransportError,
    ValidationError,
    WebhookPayloadError
)
