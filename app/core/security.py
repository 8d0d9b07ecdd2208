"""
Webhook signature verification.

Shopify signs every webhook with a base64 HMAC-SHA256 of the raw request body,
sent in the X-Shopify-Hmac-Sha256 header. The digest has to be computed over
the bytes exactly as received; parsing and re-serializing the JSON changes
whitespace and key order and breaks the comparison.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"


def compute_signature(body: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 digest of ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_shopify_webhook(
    body: bytes,
    signature: Optional[str],
    secret: str
) -> bool:
    """
    Verify Shopify webhook signature.

    Args:
        body: Raw request body
        signature: X-Shopify-Hmac-Sha256 header value
        secret: Webhook secret from Shopify

    Returns:
        True if signature is valid. Missing or malformed signatures, and any
        error raised while comparing, count as a failed verification.
    """
    if not signature or not secret:
        return False

    try:
        expected = compute_signature(body, secret)
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("ascii"))
    except Exception as e:
        logger.warning(f"Webhook signature could not be verified: {e}")
        return False
