"""
Webhook handlers that keep variants sharing a SKU on the same inventory.

- inventory_levels/update: copy the new available quantity of one item to
  every other variant with the same SKU, at the same location.
- orders/create: take the sold quantity off every variant with the SKU.
- orders/cancelled: put the quantity back on every variant with the SKU.

Each handler returns a SyncOutcome describing what it decided. Lookup misses,
echoes of our own writes and busy SKUs are normal outcomes, not errors.
Remote failures inside a batch are logged by the client and reported in the
outcome; exceptions from reads propagate to the caller.
"""

import asyncio
import logging
import random
import time
from typing import Callable, List, Sequence, Union

from app.core.config import Settings
from app.core.enums import AdjustmentReason, SyncStatus, WebhookTopic
from app.schemas.inventory import QuantityDelta, QuantityUpdate, SyncOutcome, Variant
from app.schemas.webhooks import InventoryLevelWebhook, OrderWebhook
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.shopify.utils import legacy_id, normalize_sku, to_gid
from app.services.sync_tracker import SyncTracker

logger = logging.getLogger(__name__)


def unique_variants(variants: Sequence[Variant]) -> List[Variant]:
    """Drop repeated inventory items, keeping the first occurrence."""
    seen = set()
    result = []
    for variant in variants:
        item_id = legacy_id(variant.inventory_item_id)
        if item_id in seen:
            continue
        seen.add(item_id)
        result.append(variant)
    return result


def build_sibling_updates(
    variants: Sequence[Variant],
    trigger_item_id: Union[int, str],
    location_id: Union[int, str],
    quantity: int,
) -> List[QuantityUpdate]:
    """Absolute updates for every variant except the one that triggered the event."""
    trigger = legacy_id(trigger_item_id)
    location_gid = to_gid("Location", location_id)
    return [
        QuantityUpdate(
            inventory_item_id=variant.inventory_item_id,
            location_id=location_gid,
            quantity=quantity,
        )
        for variant in unique_variants(variants)
        if legacy_id(variant.inventory_item_id) != trigger
    ]


def build_order_deltas(
    variants: Sequence[Variant],
    location_id: Union[int, str],
    quantity: int,
    sign: int,
) -> List[QuantityDelta]:
    """One delta of ``sign * |quantity|`` per variant sharing the SKU, none excluded."""
    location_gid = to_gid("Location", location_id)
    delta = sign * abs(quantity)
    return [
        QuantityDelta(
            inventory_item_id=variant.inventory_item_id,
            location_id=location_gid,
            delta=delta,
        )
        for variant in unique_variants(variants)
    ]


class InventorySyncService:

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        tracker: SyncTracker,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.tracker = tracker
        self.settings = settings
        self._clock = clock

    def _deadline_passed(self, started: float) -> bool:
        elapsed = self._clock() - started
        if elapsed >= self.settings.SYNC_PROCESSING_TIMEOUT_SECONDS:
            logger.warning(f"Stopping sync after {elapsed:.1f}s; past the processing deadline")
            return True
        return False

    async def _jitter(self):
        # Spreads out webhooks Shopify fires for several siblings at the same instant
        max_jitter = self.settings.SYNC_JITTER_MAX_SECONDS
        if max_jitter > 0:
            await asyncio.sleep(random.uniform(0, max_jitter))

    # --- inventory_levels/update ---

    async def handle_inventory_level_update(self, payload: InventoryLevelWebhook) -> SyncOutcome:
        started = self._clock()
        trigger_gid = to_gid("InventoryItem", payload.inventory_item_id)
        location = legacy_id(payload.location_id)
        quantity = payload.available

        item = await self.client.get_inventory_item(trigger_gid)
        sku = normalize_sku(item.sku if item else None)
        if not sku:
            logger.info(f"No SKU for inventory item {legacy_id(trigger_gid)}; nothing to sync")
            return SyncOutcome(status=SyncStatus.NO_SKU)

        logger.info(f"Inventory update: SKU {sku}, item {legacy_id(trigger_gid)}, location {location}, available {quantity}")

        if self.tracker.is_recent_sync(sku, location, quantity, trigger_gid):
            logger.info(f"Ignoring echo of our own write for SKU {sku} at location {location} (qty {quantity})")
            return SyncOutcome(status=SyncStatus.SUPPRESSED, sku=sku)

        await self._jitter()

        async with self.tracker.lock(
            sku,
            attempts=self.settings.SYNC_LOCK_ATTEMPTS,
            backoff=self.settings.SYNC_LOCK_BACKOFF_SECONDS,
        ) as token:
            if token is None:
                logger.info(f"SKU {sku} is being synced by another event; dropping this one")
                return SyncOutcome(status=SyncStatus.LOCKED, sku=sku)

            # The lock holder we waited on may have written exactly this
            if self.tracker.is_recent_sync(sku, location, quantity, trigger_gid):
                logger.info(f"Ignoring echo of our own write for SKU {sku} at location {location} (qty {quantity})")
                return SyncOutcome(status=SyncStatus.SUPPRESSED, sku=sku)

            if self._deadline_passed(started):
                return SyncOutcome(status=SyncStatus.TIMED_OUT, sku=sku)

            variants = await self.client.find_variants_by_sku(sku)
            logger.info(f"Found {len(variants)} variants for SKU {sku}")
            if len(variants) <= 1:
                return SyncOutcome(status=SyncStatus.NO_SIBLINGS, sku=sku)

            updates = build_sibling_updates(variants, trigger_gid, location, quantity)
            if not updates:
                return SyncOutcome(status=SyncStatus.NOTHING_TO_UPDATE, sku=sku)

            if self._deadline_passed(started):
                return SyncOutcome(status=SyncStatus.TIMED_OUT, sku=sku)

            result = await self.client.set_quantities(updates, AdjustmentReason.CORRECTION)

            if result.applied:
                self.tracker.mark_sync(sku, location, quantity, result.applied_item_ids)
                logger.info(f"Synced {result.applied} variants for SKU {sku} to {quantity}")

            if not result.ok:
                logger.error(f"{result.failed} of {len(updates)} updates for SKU {sku} failed: {result.user_errors}")

            return SyncOutcome(
                status=SyncStatus.SYNCED if result.applied else SyncStatus.FAILED,
                sku=sku,
                updated=result.applied,
                detail=f"{result.failed} failed" if result.failed else "",
            )

    # --- orders/create, orders/cancelled ---

    async def handle_order_created(self, payload: OrderWebhook) -> SyncOutcome:
        return await self._adjust_for_order(payload, WebhookTopic.ORDERS_CREATE, -1, AdjustmentReason.SALE)

    async def handle_order_cancelled(self, payload: OrderWebhook) -> SyncOutcome:
        return await self._adjust_for_order(payload, WebhookTopic.ORDERS_CANCELLED, 1, AdjustmentReason.RETURN_OR_CANCEL)

    async def _adjust_for_order(
        self,
        order: OrderWebhook,
        topic: WebhookTopic,
        sign: int,
        reason: AdjustmentReason,
    ) -> SyncOutcome:
        started = self._clock()
        order_id = legacy_id(order.id)

        if not self.tracker.claim_order(topic.value, order_id):
            logger.info(f"Order {order_id} ({topic.value}) already handled; ignoring redelivery")
            return SyncOutcome(status=SyncStatus.DUPLICATE)

        applied = 0
        failed = 0
        adjusted_skus: List[str] = []
        locked_skus: List[str] = []
        wrote = False
        timed_out = False

        try:
            for line_item in order.line_items:
                location = order.resolve_location(line_item, self.settings.SHOPIFY_LOCATION_ID)
                if not line_item.sku or not line_item.quantity or location is None:
                    logger.info(
                        f"Skipping line item in order {order_id}: "
                        f"sku={line_item.sku!r} quantity={line_item.quantity!r} location={location!r}"
                    )
                    continue

                if self._deadline_passed(started):
                    timed_out = True
                    break

                sku = line_item.sku
                # Held until mark_sync so level events for this SKU wait for the record
                async with self.tracker.lock(
                    sku,
                    attempts=self.settings.SYNC_LOCK_ATTEMPTS,
                    backoff=self.settings.SYNC_LOCK_BACKOFF_SECONDS,
                ) as token:
                    if token is None:
                        logger.warning(f"Order {order_id}: SKU {sku} is being synced by another event; skipping line item")
                        locked_skus.append(sku)
                        continue

                    variants = await self.client.find_variants_by_sku(sku)
                    if len(variants) <= 1:
                        logger.info(f"SKU {sku} has no sibling variants; nothing to adjust")
                        continue

                    deltas = build_order_deltas(variants, location, line_item.quantity, sign)
                    result = await self.client.adjust_quantities(deltas, reason)
                    wrote = True

                    if result.applied:
                        self.tracker.mark_sync(sku, legacy_id(location), None, result.applied_item_ids)
                        adjusted_skus.append(sku)
                        logger.info(
                            f"Order {order_id}: adjusted {result.applied} variants of SKU {sku} by {deltas[0].delta} ({reason.value})"
                        )
                    if not result.ok:
                        logger.error(f"Order {order_id}: {result.failed} adjustments for SKU {sku} failed: {result.user_errors}")
                    applied += result.applied
                    failed += result.failed
        except Exception:
            # Nothing reached Shopify, so a later redelivery may try again
            if not wrote:
                self.tracker.release_order(topic.value, order_id)
            raise

        if timed_out:
            status = SyncStatus.TIMED_OUT
        elif applied:
            status = SyncStatus.SYNCED
        elif failed:
            status = SyncStatus.FAILED
        elif locked_skus:
            status = SyncStatus.LOCKED
        else:
            status = SyncStatus.NOTHING_TO_UPDATE

        return SyncOutcome(
            status=status,
            sku=", ".join(adjusted_skus) or None,
            updated=applied,
            detail=f"order {order_id}" + (f", {failed} failed" if failed else ""),
        )
