from fastapi import Request

from app.services.inventory_sync import InventorySyncService
from app.services.sync_tracker import SyncTracker


def get_sync_service(request: Request) -> InventorySyncService:
    """Dependency for the sync service built by the app lifespan."""
    return request.app.state.sync_service


def get_tracker(request: Request) -> SyncTracker:
    return request.app.state.tracker
