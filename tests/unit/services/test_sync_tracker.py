# tests/unit/services/test_sync_tracker.py
import asyncio

import pytest

from app.core.config import Settings
from app.services.sync_tracker import SyncTracker
from tests.mocks import FakeClock

ITEM_222 = "gid://shopify/InventoryItem/222"
ITEM_333 = "gid://shopify/InventoryItem/333"


"""
1. Echo suppression
"""

def test_exact_key_is_recent(tracker):
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222, ITEM_333])

    assert tracker.is_recent_sync("RED-L", "99", 5) is True
    assert tracker.is_recent_sync("RED-L", "99", 6) is False
    assert tracker.is_recent_sync("RED-L", "100", 5) is False
    assert tracker.is_recent_sync("BLUE-S", "99", 5) is False


def test_record_expires_after_window(tracker, clock):
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])

    clock.advance(29.9)
    assert tracker.is_recent_sync("RED-L", "99", 5) is True

    clock.advance(0.1)
    assert tracker.is_recent_sync("RED-L", "99", 5) is False
    assert tracker.stats()["sync_records"] == 0


def test_mark_sync_last_write_wins(tracker, clock):
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])
    clock.advance(20)
    record = tracker.mark_sync("RED-L", "99", 5, [ITEM_333])

    assert record.affected_ids == {ITEM_333}
    assert tracker.stats()["sync_records"] == 1

    # Window restarts from the second write
    clock.advance(20)
    assert tracker.is_recent_sync("RED-L", "99", 5) is True


def test_quantity_tolerance_uses_secondary_window(clock):
    tracker = SyncTracker(
        window_seconds=30,
        quantity_tolerance=1,
        tolerance_window_seconds=5,
        clock=clock,
    )
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])

    clock.advance(2)
    assert tracker.is_recent_sync("RED-L", "99", 6) is True
    assert tracker.is_recent_sync("RED-L", "99", 4) is True
    assert tracker.is_recent_sync("RED-L", "99", 7) is False

    clock.advance(4)
    assert tracker.is_recent_sync("RED-L", "99", 6) is False
    assert tracker.is_recent_sync("RED-L", "99", 5) is True


def test_no_tolerance_by_default(tracker):
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])
    assert tracker.is_recent_sync("RED-L", "99", 4) is False


def test_delta_record_matches_only_affected_items(tracker, clock):
    tracker.mark_sync("RED-L", "99", None, [ITEM_222, ITEM_333])

    assert tracker.is_recent_sync("RED-L", "99", 17, ITEM_222) is True
    assert tracker.is_recent_sync("RED-L", "99", 0, ITEM_333) is True
    assert tracker.is_recent_sync("RED-L", "99", 17, "gid://shopify/InventoryItem/111") is False
    assert tracker.is_recent_sync("RED-L", "99", 17) is False
    assert tracker.is_recent_sync("RED-L", "100", 17, ITEM_222) is False

    clock.advance(30)
    assert tracker.is_recent_sync("RED-L", "99", 17, ITEM_222) is False


@pytest.mark.asyncio
async def test_mark_sync_schedules_its_own_expiry():
    tracker = SyncTracker(window_seconds=0.01)
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])
    assert tracker.stats()["sync_records"] == 1

    await asyncio.sleep(0.05)

    assert tracker.stats()["sync_records"] == 0


"""
2. SKU locks
"""

def test_lock_is_exclusive(tracker):
    token = tracker.acquire_lock("RED-L")

    assert token is not None
    assert tracker.acquire_lock("RED-L") is None
    assert tracker.acquire_lock("BLUE-S") is not None
    assert tracker.is_locked("RED-L") is True

    assert tracker.release_lock("RED-L", token) is True
    assert tracker.is_locked("RED-L") is False
    assert tracker.acquire_lock("RED-L") is not None


def test_stale_lock_is_reclaimed(tracker, clock):
    first = tracker.acquire_lock("RED-L")

    clock.advance(29)
    assert tracker.acquire_lock("RED-L") is None

    clock.advance(1)
    second = tracker.acquire_lock("RED-L")
    assert second is not None
    assert second != first


def test_release_with_stale_token_keeps_new_holder(tracker, clock):
    first = tracker.acquire_lock("RED-L")
    clock.advance(31)
    second = tracker.acquire_lock("RED-L")

    # The original holder finishes late and must not free the new holder's lock
    assert tracker.release_lock("RED-L", first) is False
    assert tracker.is_locked("RED-L") is True

    assert tracker.release_lock("RED-L", second) is True
    assert tracker.is_locked("RED-L") is False


def test_release_without_token_is_unconditional(tracker):
    tracker.acquire_lock("RED-L")
    assert tracker.release_lock("RED-L") is True
    assert tracker.release_lock("RED-L") is False


@pytest.mark.asyncio
async def test_acquire_with_retry_waits_for_release(tracker):
    token = tracker.acquire_lock("RED-L")
    asyncio.get_running_loop().call_soon(tracker.release_lock, "RED-L", token)

    acquired = await tracker.acquire_lock_with_retry("RED-L", attempts=3, backoff=0)

    assert acquired is not None


@pytest.mark.asyncio
async def test_acquire_with_retry_gives_up(tracker):
    tracker.acquire_lock("RED-L")

    assert await tracker.acquire_lock_with_retry("RED-L", attempts=3, backoff=0) is None


@pytest.mark.asyncio
async def test_lock_context_releases_on_exception(tracker):
    with pytest.raises(RuntimeError):
        async with tracker.lock("RED-L", attempts=1, backoff=0) as token:
            assert token is not None
            assert tracker.is_locked("RED-L")
            raise RuntimeError("boom")

    assert tracker.stats()["locks"] == 0


@pytest.mark.asyncio
async def test_lock_context_does_not_release_foreign_lock(tracker):
    tracker.acquire_lock("RED-L")

    async with tracker.lock("RED-L", attempts=1, backoff=0) as token:
        assert token is None

    assert tracker.is_locked("RED-L") is True


"""
3. Order duplicate guard
"""

def test_claim_order_once_per_topic(tracker, clock):
    assert tracker.claim_order("orders/create", "1001") is True
    assert tracker.claim_order("orders/create", "1001") is False
    assert tracker.claim_order("orders/cancelled", "1001") is True

    clock.advance(60)
    assert tracker.claim_order("orders/create", "1001") is True


def test_release_order_allows_reclaim(tracker):
    tracker.claim_order("orders/create", "1001")
    tracker.release_order("orders/create", "1001")

    assert tracker.claim_order("orders/create", "1001") is True


"""
4. Sweep and memory bound
"""

def test_sweep_removes_expired_entries(tracker, clock):
    tracker.mark_sync("RED-L", "99", 5, [ITEM_222])
    tracker.acquire_lock("RED-L")
    tracker.claim_order("orders/create", "1001")

    assert tracker.sweep() == 0

    clock.advance(60)
    assert tracker.sweep() == 3
    assert tracker.stats() == {"sync_records": 0, "locks": 0, "claimed_orders": 0}


def test_oldest_entries_are_evicted_at_capacity(clock):
    tracker = SyncTracker(max_entries=2, clock=clock)

    tracker.mark_sync("A", "99", 1)
    clock.advance(1)
    tracker.mark_sync("B", "99", 1)
    clock.advance(1)
    tracker.mark_sync("C", "99", 1)

    assert tracker.stats()["sync_records"] == 2
    assert tracker.is_recent_sync("A", "99", 1) is False
    assert tracker.is_recent_sync("B", "99", 1) is True
    assert tracker.is_recent_sync("C", "99", 1) is True


def test_clear_drops_all_state(tracker):
    tracker.mark_sync("RED-L", "99", 5)
    tracker.acquire_lock("RED-L")
    tracker.claim_order("orders/create", "1")

    tracker.clear()

    assert tracker.stats() == {"sync_records": 0, "locks": 0, "claimed_orders": 0}


def test_from_settings_reads_tuning(settings):
    tracker = SyncTracker.from_settings(settings, clock=FakeClock())

    assert tracker.window_seconds == settings.SYNC_WINDOW_SECONDS
    assert tracker.lock_timeout_seconds == settings.SYNC_LOCK_TIMEOUT_SECONDS
    assert tracker.order_window_seconds == settings.SYNC_ORDER_WINDOW_SECONDS
    assert tracker.max_entries == settings.SYNC_MAX_TRACKED_KEYS
