from typing import Any, Dict, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform service errors."""
    pass

class ShopifyServiceError(PlatformServiceError):
    """Base exception for Shopify-specific errors."""
    pass

class ShopifyAPIError(ShopifyServiceError):
    """Raised when Shopify API calls fail."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

class ShopifyGraphQLError(ShopifyAPIError):
    """Raised when a GraphQL response carries a top-level error list."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        message = "GraphQL query failed with errors:\n"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path', [])
            message += f"- Message: {msg}, Path: {path}\n"
        super().__init__(message)

class ShopifyThrottledError(ShopifyAPIError):
    """Raised when Shopify rejects a call for rate limiting (HTTP 429 or THROTTLED)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=429)

class ShopifyTransportError(ShopifyAPIError):
    """Raised on network failures and timeouts talking to Shopify."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class WebhookPayloadError(ValidationError):
    """Raised when a webhook body is not valid JSON or misses required fields."""
    pass
