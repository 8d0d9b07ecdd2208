# app/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from app.core.config import Settings, get_settings
from app.core.logging_config import configure_logging
from app.routes import health
from app.routes.webhooks import router as webhook_router
from app.scheduler import start_scheduler, stop_scheduler
from app.services.inventory_sync import InventorySyncService
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.sync_tracker import SyncTracker

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    catalog_client: Optional[ShopifyGraphQLClient] = None,
) -> FastAPI:
    """
    Build the application.

    ``settings`` and ``catalog_client`` replace the environment-driven ones,
    which is how tests run the app without a real store.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Fails here, before serving anything, when required settings are missing
        app_settings = settings or get_settings()
        configure_logging(app_settings.LOG_LEVEL)

        client = catalog_client or ShopifyGraphQLClient.from_settings(app_settings)
        tracker = SyncTracker.from_settings(app_settings)

        app.state.settings = app_settings
        app.state.tracker = tracker
        app.state.sync_service = InventorySyncService(client, tracker, app_settings)

        start_scheduler(tracker, app_settings.SYNC_SWEEP_INTERVAL_SECONDS)
        logger.info(f"Inventory sync ready for {app_settings.SHOPIFY_SHOP}")
        try:
            yield  # This is where the app runs
        finally:
            stop_scheduler()
            await client.aclose()
            tracker.clear()

    app = FastAPI(
        title="Shopify SKU Inventory Sync",
        lifespan=lifespan
    )

    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings

    # Shopify authenticates with the webhook HMAC, not user credentials
    app.include_router(health.router)
    app.include_router(webhook_router)

    return app


app = create_app()
