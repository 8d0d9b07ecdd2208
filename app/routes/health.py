from fastapi import APIRouter, Depends

from app.dependencies import get_tracker
from app.services.sync_tracker import SyncTracker

router = APIRouter(tags=["health"])

SERVICE_NAME = "Shopify SKU inventory sync"


@router.get("/")
@router.get("/health")
async def health_check(tracker: SyncTracker = Depends(get_tracker)):
    """Basic health check with the size of the in-memory sync state"""
    return {"status": "ok", "service": SERVICE_NAME, "tracker": tracker.stats()}
