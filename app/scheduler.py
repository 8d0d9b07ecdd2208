"""
Scheduled tasks for the sync service.
Runs inside the FastAPI event loop; started and stopped by the app lifespan.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.services.sync_tracker import SyncTracker

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def sweep_tracker_task(tracker: SyncTracker):
    """Task to drop expired sync records, stale locks and old order claims"""
    try:
        removed = tracker.sweep()
        if removed:
            logger.info(f"Tracker sweep removed {removed} entries; now {tracker.stats()}")
    except Exception as e:
        logger.exception(f"Error in tracker sweep task: {str(e)}")


def start_scheduler(tracker: SyncTracker, interval_seconds: float = 60.0) -> AsyncIOScheduler:
    """Create and start the scheduler with the tracker sweep job"""
    global scheduler

    if scheduler and scheduler.running:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_tracker_task,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[tracker],
        id="sync_tracker_sweep",
        name="Sweep sync tracker",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info(f"Scheduler started; sweeping sync tracker every {interval_seconds}s")
    return scheduler


def stop_scheduler():
    """Stop the scheduler"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None
