# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.inventory_sync import InventorySyncService
from app.services.sync_tracker import SyncTracker
from tests.mocks import FakeClock, MockCatalogClient

WEBHOOK_SECRET = "test_secret"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        SHOPIFY_SHOP="test-shop.myshopify.com",
        SHOPIFY_ADMIN_API_ACCESS_TOKEN="shpat_test",
        WEBHOOK_SECRET=WEBHOOK_SECRET,
        SHOPIFY_LOCATION_ID="99",
        SYNC_WINDOW_SECONDS=30,
        SYNC_LOCK_TIMEOUT_SECONDS=30,
        SYNC_LOCK_ATTEMPTS=3,
        SYNC_LOCK_BACKOFF_SECONDS=0,
        SYNC_JITTER_MAX_SECONDS=0,
        SYNC_SWEEP_INTERVAL_SECONDS=3600,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return SyncTracker(window_seconds=30, lock_timeout_seconds=30, clock=clock)


@pytest.fixture
def mock_catalog():
    """Catalog where SKU RED-L is shared by inventory items 111, 222 and 333"""
    catalog = MockCatalogClient()
    catalog.add_sku("RED-L", 111, 222, 333)
    catalog.add_sku("BLUE-S", 444)
    catalog.items["555"] = None
    return catalog


@pytest.fixture
def sync_service(mock_catalog, tracker, settings, clock):
    return InventorySyncService(mock_catalog, tracker, settings, clock=clock)


@pytest.fixture
def test_client(settings, mock_catalog):
    """Provide a test client wired to the mock catalog"""
    app = create_app(settings=settings, catalog_client=mock_catalog)
    with TestClient(app) as client:
        yield client
