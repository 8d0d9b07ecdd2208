# app.services.shopify.client

import asyncio
import functools
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings
from app.core.enums import AdjustmentReason
from app.core.exceptions import (
    ShopifyAPIError,
    ShopifyGraphQLError,
    ShopifyThrottledError,
    ShopifyTransportError,
)
from app.schemas.inventory import (
    BatchResult,
    InventoryItem,
    QuantityDelta,
    QuantityUpdate,
    Variant,
)
from app.services.shopify.utils import chunked, normalize_sku, sku_search_query, to_gid

logger = logging.getLogger(__name__)


VARIANTS_BY_SKU_QUERY = """
query variantsBySku($query: String!) {
  productVariants(first: 100, query: $query) {
    edges {
      node {
        id
        sku
        inventoryItem {
          id
        }
      }
    }
  }
}
"""

INVENTORY_ITEM_QUERY = """
query inventoryItem($id: ID!) {
  inventoryItem(id: $id) {
    id
    sku
  }
}
"""

SET_QUANTITIES_MUTATION = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup {
      createdAt
      reason
    }
    userErrors {
      code
      field
      message
    }
  }
}
"""

ADJUST_QUANTITIES_MUTATION = """
mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    inventoryAdjustmentGroup {
      createdAt
      reason
    }
    userErrors {
      code
      field
      message
    }
  }
}
"""


def _retrying(*exception_types):
    """
    Retry the wrapped client coroutine on the given ShopifyAPIError subclasses.

    Attempts and backoff come from the client instance so tests and settings
    can tune them without redefining the decorator.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            retryer = AsyncRetrying(
                stop=stop_after_attempt(max(1, self.max_retries)),
                wait=wait_exponential(multiplier=self.retry_backoff, max=10),
                retry=retry_if_exception_type(exception_types),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            )
            async for attempt in retryer:
                with attempt:
                    return await func(self, *args, **kwargs)
        return wrapper
    return decorator


class ShopifyGraphQLClient:
    """
    Async client for the Shopify Admin GraphQL API, limited to what inventory
    sync needs:

    READ operations (retried on transport failures and throttling):
      - find_variants_by_sku()
      - get_inventory_item()

    WRITE operations (batched, best effort, retried on throttling only):
      - set_quantities()      absolute set of the "available" quantity
      - adjust_quantities()   signed delta of the "available" quantity

    Every call goes through _make_request(), which also tracks the query cost
    bucket reported in the response extensions and waits before a call that
    would drain it.
    """

    # --- Meta/Infrastructure ---

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = "2025-07",
        *,
        batch_size: int = 50,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        safety_buffer_percentage: float = 0.25,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not shop or not access_token:
            raise ValueError("SHOPIFY_SHOP and SHOPIFY_ADMIN_API_ACCESS_TOKEN must be set.")

        self.store_domain = shop
        self.api_version = api_version
        self.graphql_url = f"https://{shop}/admin/api/{api_version}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json"
        }
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

        # Throttle status, refreshed from every response
        self.max_available_points = 1000.0
        self.currently_available_points = self.max_available_points
        self.restore_rate = 50.0
        self.safety_buffer_percentage = safety_buffer_percentage

        logger.info(f"ShopifyGraphQLClient initialized for {self.store_domain} (API version {self.api_version})")

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ShopifyGraphQLClient":
        return cls(
            settings.SHOPIFY_SHOP,
            settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN,
            settings.SHOPIFY_API_VERSION,
            batch_size=settings.SHOPIFY_BATCH_SIZE,
            timeout=settings.SHOPIFY_REQUEST_TIMEOUT,
            max_retries=settings.SHOPIFY_MAX_RETRIES,
            **kwargs,
        )

    async def aclose(self):
        await self._http.aclose()

    @property
    def safety_buffer_points(self) -> float:
        return self.max_available_points * self.safety_buffer_percentage

    def _update_throttle_status(self, extensions: Optional[Dict[str, Any]]):
        throttle = ((extensions or {}).get("cost") or {}).get("throttleStatus")
        if not throttle:
            return
        self.max_available_points = float(throttle["maximumAvailable"])
        self.currently_available_points = float(throttle["currentlyAvailable"])
        self.restore_rate = float(throttle["restoreRate"])

    async def _wait_for_throttle(self, estimated_cost: int):
        # Proactive check: wait if available points are below safety buffer + estimated cost
        required_points = estimated_cost + self.safety_buffer_points
        if self.currently_available_points >= required_points:
            return

        points_needed = required_points - self.currently_available_points
        wait_time = (points_needed / self.restore_rate) if self.restore_rate > 0 else 10
        wait_time = max(wait_time, 0) + 0.5
        logger.warning(
            f"Rate limit approaching: {self.currently_available_points:.0f} points available, "
            f"need ~{required_points:.0f}. Waiting {wait_time:.2f}s"
        )
        await asyncio.sleep(wait_time)
        # Optimistic; the next response reports the real bucket
        self.currently_available_points = min(
            self.max_available_points,
            self.currently_available_points + self.restore_rate * wait_time
        )

    async def _make_request(self, query: str, variables: Optional[Dict[str, Any]] = None, estimated_cost: int = 10) -> Dict[str, Any]:
        """
        Makes a GraphQL request to Shopify and returns the ``data`` payload.

        Raises:
            ShopifyTransportError: network failure, timeout or 5xx
            ShopifyThrottledError: HTTP 429 or a THROTTLED GraphQL error
            ShopifyGraphQLError: any other top-level GraphQL error
            ShopifyAPIError: other non-2xx responses or an undecodable body
        """
        await self._wait_for_throttle(estimated_cost)

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self._http.post(self.graphql_url, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise ShopifyTransportError(f"Request timed out: {str(e)}")
        except httpx.TransportError as e:
            logger.error(f"Network error: {str(e)}")
            raise ShopifyTransportError(f"Network error: {str(e)}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"Received 429 Too Many Requests (Retry-After: {retry_after})")
            # Force the proactive wait on the next call
            self.currently_available_points = 0
            raise ShopifyThrottledError(
                "Shopify rate limit exceeded",
                retry_after=float(retry_after) if retry_after and retry_after.replace(".", "", 1).isdigit() else None
            )

        if response.status_code >= 500:
            logger.error(f"Shopify server error {response.status_code}: {response.text[:500]}")
            raise ShopifyTransportError(f"Server error {response.status_code}", status_code=response.status_code)

        if not 200 <= response.status_code < 300:
            logger.error(f"Shopify API error {response.status_code}: {response.text[:500]}")
            raise ShopifyAPIError(f"Request failed: {response.text[:500]}", status_code=response.status_code)

        try:
            response_data = response.json()
        except json.JSONDecodeError:
            logger.error(f"Failed to decode JSON response. Content: {response.text[:500]}")
            raise ShopifyAPIError("Failed to decode JSON response", status_code=response.status_code)

        self._update_throttle_status(response_data.get("extensions"))

        errors = response_data.get("errors")
        if errors:
            if isinstance(errors, str):
                errors = [{"message": errors}]
            if any((error.get("extensions") or {}).get("code") == "THROTTLED" for error in errors):
                self.currently_available_points = 0
                raise ShopifyThrottledError("GraphQL query throttled")
            logger.error(f"GraphQL errors: {errors}")
            raise ShopifyGraphQLError(errors)

        return response_data.get("data") or {}

    @_retrying(ShopifyTransportError, ShopifyThrottledError)
    async def _query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._make_request(query, variables)

    @_retrying(ShopifyThrottledError)
    async def _mutate(self, mutation: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._make_request(mutation, variables, estimated_cost=20)

    # --- Reads ---

    async def find_variants_by_sku(self, sku: str) -> List[Variant]:
        """
        All variants whose SKU equals ``sku`` exactly (after trimming), up to 100.

        Shopify's search is token based, so a query for ``RED-L`` can also match
        ``RED-L-2``; results are filtered before they are returned.
        """
        normalized = normalize_sku(sku)
        if not normalized:
            return []

        data = await self._query(VARIANTS_BY_SKU_QUERY, {"query": sku_search_query(normalized)})
        edges = ((data.get("productVariants") or {}).get("edges")) or []

        variants = []
        for edge in edges:
            node = edge.get("node") or {}
            inventory_item = node.get("inventoryItem") or {}
            if not inventory_item.get("id"):
                continue
            if normalize_sku(node.get("sku")) != normalized:
                logger.debug(f"Ignoring variant {node.get('id')} with SKU {node.get('sku')!r} (searched {normalized!r})")
                continue
            variants.append(Variant(
                id=node["id"],
                sku=normalize_sku(node.get("sku")),
                inventory_item_id=inventory_item["id"],
            ))
        return variants

    async def get_inventory_item(self, inventory_item_id: Union[int, str]) -> Optional[InventoryItem]:
        """Inventory item with its SKU, or None when Shopify does not know the id."""
        data = await self._query(INVENTORY_ITEM_QUERY, {"id": to_gid("InventoryItem", inventory_item_id)})
        node = data.get("inventoryItem")
        if not node:
            return None
        return InventoryItem(id=node["id"], sku=normalize_sku(node.get("sku")) or None)

    # --- Writes ---

    async def set_quantities(
        self,
        updates: Sequence[QuantityUpdate],
        reason: Union[AdjustmentReason, str] = AdjustmentReason.CORRECTION,
    ) -> BatchResult:
        """Set the available quantity of each item/location to an absolute value."""
        reason = getattr(reason, "value", reason)
        return await self._apply_in_batches(
            updates,
            SET_QUANTITIES_MUTATION,
            "inventorySetQuantities",
            lambda batch: {
                "name": "available",
                "reason": reason,
                "ignoreCompareQuantity": True,
                "quantities": [update.to_graphql() for update in batch],
            },
        )

    async def adjust_quantities(
        self,
        deltas: Sequence[QuantityDelta],
        reason: Union[AdjustmentReason, str],
    ) -> BatchResult:
        """Apply signed changes to the available quantity of each item/location."""
        reason = getattr(reason, "value", reason)
        return await self._apply_in_batches(
            deltas,
            ADJUST_QUANTITIES_MUTATION,
            "inventoryAdjustQuantities",
            lambda batch: {
                "name": "available",
                "reason": reason,
                "changes": [delta.to_graphql() for delta in batch],
            },
        )

    async def _apply_in_batches(
        self,
        items: Sequence[Union[QuantityUpdate, QuantityDelta]],
        mutation: str,
        field: str,
        build_input: Callable[[List[Any]], Dict[str, Any]],
    ) -> BatchResult:
        """
        Send ``items`` in chunks of ``batch_size``.

        A failing batch is logged and counted; it never stops the batches after
        it and never undoes the ones before it.
        """
        result = BatchResult()
        for index, batch in enumerate(chunked(items, self.batch_size), start=1):
            result.batches += 1
            try:
                data = await self._mutate(mutation, {"input": build_input(batch)})
            except ShopifyAPIError as e:
                logger.error(f"{field} batch {index} failed for {len(batch)} items: {e}")
                result.failed += len(batch)
                continue

            user_errors = (data.get(field) or {}).get("userErrors") or []
            if user_errors:
                # Shopify validates the whole input and rejects the batch as a unit
                logger.error(f"{field} batch {index} returned user errors: {user_errors}")
                result.user_errors.extend(user_errors)
                result.failed += len(batch)
                continue

            result.applied += len(batch)
            result.applied_item_ids.extend(item.inventory_item_id for item in batch)
            logger.info(f"{field} batch {index} applied {len(batch)} items")

        return result
