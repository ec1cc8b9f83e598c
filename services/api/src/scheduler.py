"""APScheduler setup for the periodic ledger audit."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models.operations.audit import audit_all
from utils import log

logger = log.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def ledger_audit_job(store):
    """Replay every project's ledger and compare with stored aggregates."""
    logger.info("Ledger audit job starting...")
    try:
        reports = await audit_all(store)
    except Exception as e:
        logger.error(f"Ledger audit job failed: {e}", exc_info=True)
        return
    inconsistent = [r.project_id for r in reports if not r.is_consistent]
    if inconsistent:
        logger.critical(f"Ledger audit found inconsistent projects: {', '.join(inconsistent)}")
    logger.info("Ledger audit job completed")


def init_scheduler(store, interval_minutes: int) -> Optional[AsyncIOScheduler]:
    """Start the audit job; an interval of 0 disables it."""
    global _scheduler
    if interval_minutes <= 0:
        logger.info("Ledger audit job disabled")
        return None
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        ledger_audit_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[store],
        id="ledger_audit",
        name="Ledger Audit",
        replace_existing=True,
        max_instances=1,
    )
    _scheduler.start()
    logger.info(f"APScheduler started with ledger audit every {interval_minutes} minutes")
    return _scheduler


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("APScheduler shut down")
