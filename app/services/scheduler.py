"""
APScheduler setup for the periodic cache sweep.

Expired entries are normally removed when a lookup finds them stale; the
sweep reclaims entries that are never looked up again. Runs inside the
FastAPI process.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.cache.store import CacheStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "cache_sweep"


async def sweep_cache(store: CacheStore) -> int:
    """Job body — purge expired entries from the store."""
    try:
        removed = await store.purge_expired()
    except Exception as e:
        logger.error(f"[Scheduler] Cache sweep failed: {e}", exc_info=True)
        return 0
    if removed:
        logger.info(f"[Scheduler] Cache sweep removed {removed} expired entries")
    return removed


def start_scheduler(store: CacheStore, interval_minutes: int) -> AsyncIOScheduler:
    """Create and start the scheduler with the cache sweep job."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        sweep_cache,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[store],
        id=SWEEP_JOB_ID,
        name=f"Cache sweep (every {interval_minutes} min)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"[Scheduler] Started. Cache sweep every {interval_minutes} min")
    return scheduler


def stop_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[Scheduler] Stopped")
