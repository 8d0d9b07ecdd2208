"""
In-memory bookkeeping that stops inventory sync from feeding on itself.

Writing a quantity to sibling variants makes Shopify emit an
inventory_levels/update webhook for every item written. Without suppression
each of those echoes would be propagated again, to the original item and to
every other sibling, indefinitely. The tracker holds three short-lived maps:

- sync records: ``(sku, location, quantity)`` written by us, kept for a window
- SKU locks: at most one sync per SKU in flight, with stale-lock reclamation
- claimed orders: ``(topic, order id)`` already handled, so a redelivered order
  webhook does not adjust stock twice

State lives in this process only. Losing it on restart costs at most one
redundant sync; Shopify remains the source of truth for quantities.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Hashable, Iterable, Optional, Set, Tuple

from app.core.config import Settings

logger = logging.getLogger(__name__)

SyncKey = Tuple[str, str, Optional[int]]


@dataclass
class SyncRecord:
    """A write we made; ``quantity`` is None for delta adjustments"""
    sku: str
    location_id: str
    quantity: Optional[int]
    timestamp: float
    affected_ids: Set[str] = field(default_factory=set)

    @property
    def key(self) -> SyncKey:
        return (self.sku, self.location_id, self.quantity)


class SyncTracker:

    def __init__(
        self,
        window_seconds: float = 30.0,
        lock_timeout_seconds: float = 30.0,
        quantity_tolerance: int = 0,
        tolerance_window_seconds: float = 5.0,
        order_window_seconds: float = 60.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.lock_timeout_seconds = lock_timeout_seconds
        self.quantity_tolerance = max(0, quantity_tolerance)
        self.tolerance_window_seconds = min(tolerance_window_seconds, window_seconds)
        self.order_window_seconds = order_window_seconds
        self.max_entries = max_entries
        self._clock = clock

        # Insertion ordered so eviction can drop the oldest entry first
        self._records: "OrderedDict[SyncKey, SyncRecord]" = OrderedDict()
        self._locks: "OrderedDict[str, float]" = OrderedDict()
        self._orders: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SyncTracker":
        return cls(
            window_seconds=settings.SYNC_WINDOW_SECONDS,
            lock_timeout_seconds=settings.SYNC_LOCK_TIMEOUT_SECONDS,
            quantity_tolerance=settings.SYNC_QUANTITY_TOLERANCE,
            tolerance_window_seconds=settings.SYNC_TOLERANCE_WINDOW_SECONDS,
            order_window_seconds=settings.SYNC_ORDER_WINDOW_SECONDS,
            max_entries=settings.SYNC_MAX_TRACKED_KEYS,
            **kwargs,
        )

    # --- Echo suppression ---

    def is_recent_sync(
        self,
        sku: str,
        location_id: str,
        quantity: int,
        inventory_item_id: Optional[str] = None,
    ) -> bool:
        """
        True when an event for ``sku`` at ``location_id`` reporting ``quantity``
        is most likely the echo of one of our own writes.

        Matches, in order: the exact key; a quantity within the tolerance band
        of a record younger than the tolerance window; a delta record covering
        ``inventory_item_id``. The tolerance band trades an occasional
        suppressed legitimate update for surviving near-simultaneous webhooks
        that report slightly different snapshots of the same change.
        """
        now = self._clock()

        record = self._records.get((sku, location_id, quantity))
        if record is not None:
            if self._is_live(record, now):
                return True
            self._records.pop(record.key, None)

        for record in list(self._records.values()):
            if record.sku != sku or record.location_id != location_id:
                continue
            if not self._is_live(record, now):
                self._records.pop(record.key, None)
                continue
            if record.quantity is None:
                if inventory_item_id is not None and inventory_item_id in record.affected_ids:
                    return True
            elif (
                self.quantity_tolerance
                and abs(record.quantity - quantity) <= self.quantity_tolerance
                and now - record.timestamp < self.tolerance_window_seconds
            ):
                logger.debug(f"Quantity {quantity} for {sku} within tolerance of recent write {record.quantity}")
                return True
        return False

    def mark_sync(
        self,
        sku: str,
        location_id: str,
        quantity: Optional[int],
        affected_ids: Iterable[str] = (),
    ) -> SyncRecord:
        """Record a completed write; a second call for the same key replaces the first."""
        key = (sku, location_id, quantity)
        self._records.pop(key, None)
        record = SyncRecord(sku, location_id, quantity, self._clock(), set(affected_ids))
        self._records[key] = record
        self._evict(self._records)
        self._schedule_expiry(record)
        logger.debug(f"Marked sync {key} for {len(record.affected_ids)} items")
        return record

    def _is_live(self, record: SyncRecord, now: float) -> bool:
        return now - record.timestamp < self.window_seconds

    def _schedule_expiry(self, record: SyncRecord):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller); the periodic sweep and lazy checks cover expiry
            return
        loop.call_later(self.window_seconds, self._expire, record.key, record.timestamp)

    def _expire(self, key: SyncKey, timestamp: float):
        record = self._records.get(key)
        # A newer mark_sync for the same key owns its own expiry
        if record is not None and record.timestamp == timestamp:
            del self._records[key]

    # --- SKU locks ---

    def acquire_lock(self, sku: str) -> Optional[float]:
        """
        Lock ``sku`` and return an ownership token, or None if it is held.

        A lock older than ``lock_timeout_seconds`` is assumed abandoned and is
        taken over.
        """
        now = self._clock()
        held_since = self._locks.get(sku)
        if held_since is not None:
            if now - held_since < self.lock_timeout_seconds:
                return None
            logger.warning(f"Reclaiming stale lock for SKU {sku} held for {now - held_since:.1f}s")
            del self._locks[sku]

        self._locks[sku] = now
        self._evict(self._locks)
        return now

    async def acquire_lock_with_retry(
        self,
        sku: str,
        attempts: int = 3,
        backoff: float = 0.5,
    ) -> Optional[float]:
        """Try ``attempts`` times, sleeping ``backoff * attempt`` in between."""
        for attempt in range(1, max(1, attempts) + 1):
            token = self.acquire_lock(sku)
            if token is not None:
                return token
            if attempt < attempts:
                await asyncio.sleep(backoff * attempt)
        logger.info(f"Lock for SKU {sku} still held after {attempts} attempts")
        return None

    def release_lock(self, sku: str, token: Optional[float] = None) -> bool:
        """
        Clear the lock for ``sku``.

        With ``token`` the lock is only cleared while it still belongs to that
        holder; another task may have reclaimed it as stale in the meantime.
        """
        current = self._locks.get(sku)
        if current is None:
            return False
        if token is not None and current != token:
            logger.warning(f"Lock for SKU {sku} was reclaimed by another task; leaving it in place")
            return False
        del self._locks[sku]
        return True

    def is_locked(self, sku: str) -> bool:
        held_since = self._locks.get(sku)
        return held_since is not None and self._clock() - held_since < self.lock_timeout_seconds

    @asynccontextmanager
    async def lock(self, sku: str, attempts: int = 3, backoff: float = 0.5) -> AsyncIterator[Optional[float]]:
        """
        Hold the SKU lock for the duration of the block.

        Yields the token, or None when the lock could not be acquired; the
        caller decides what to do in that case. The lock is released on every
        exit path.
        """
        token = await self.acquire_lock_with_retry(sku, attempts, backoff)
        try:
            yield token
        finally:
            if token is not None:
                self.release_lock(sku, token)

    # --- Order duplicate guard ---

    def claim_order(self, topic: str, order_id: str) -> bool:
        """True the first time ``(topic, order_id)`` is seen within the order window."""
        key = (str(topic), str(order_id))
        now = self._clock()
        claimed_at = self._orders.get(key)
        if claimed_at is not None and now - claimed_at < self.order_window_seconds:
            return False
        self._orders.pop(key, None)
        self._orders[key] = now
        self._evict(self._orders)
        return True

    def release_order(self, topic: str, order_id: str):
        self._orders.pop((str(topic), str(order_id)), None)

    # --- Lifecycle ---

    def sweep(self) -> int:
        """Drop expired records, stale locks and old order claims. Returns how many were removed."""
        now = self._clock()
        removed = 0

        for key, record in list(self._records.items()):
            if not self._is_live(record, now):
                del self._records[key]
                removed += 1

        for sku, held_since in list(self._locks.items()):
            if now - held_since >= self.lock_timeout_seconds:
                logger.warning(f"Sweeping stale lock for SKU {sku}")
                del self._locks[sku]
                removed += 1

        for key, claimed_at in list(self._orders.items()):
            if now - claimed_at >= self.order_window_seconds:
                del self._orders[key]
                removed += 1

        if removed:
            logger.debug(f"Sync tracker sweep removed {removed} entries")
        return removed

    def stats(self) -> dict:
        return {
            "sync_records": len(self._records),
            "locks": len(self._locks),
            "claimed_orders": len(self._orders),
        }

    def clear(self):
        self._records.clear()
        self._locks.clear()
        self._orders.clear()

    def _evict(self, entries: "OrderedDict[Hashable, object]"):
        while len(entries) > self.max_entries:
            key, _ = entries.popitem(last=False)
            logger.warning(f"Sync tracker at capacity ({self.max_entries}); evicted {key}")
