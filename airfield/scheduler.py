# airfield/scheduler.py
from datetime import datetime, timezone
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from airfield.pipeline import NotamHub

log = logging.getLogger(__name__)


def build_scheduler(hub: NotamHub, *, scrape_interval_min: float = 15.0,
                    sweep_interval_min: float = 5.0) -> AsyncIOScheduler:
    """
    Timers for the fallback scrape and the expiry sweep. Both run on the app's
    event loop. The scrape fires once straight away to seed the baseline.
    """

    async def scrape_job():
        try:
            await hub.run_scrape()
        except Exception:
            log.exception("❌ Fallback scrape job failed")

    # async so the executor runs it on the loop, not in a worker thread
    async def sweep_job():
        removed = hub.sweep()
        log.debug("Sweep done (%d removed)", removed)

    # UTC, coalesce missed runs into one, single instance at a time
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        scrape_job,
        trigger=IntervalTrigger(minutes=scrape_interval_min),
        id="fallback_scrape",
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=60,
        max_instances=1,
        next_run_time=datetime.now(timezone.utc),
    )
    scheduler.add_job(
        sweep_job,
        trigger=IntervalTrigger(minutes=sweep_interval_min),
        id="expiry_sweep",
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=60,
        max_instances=1,
    )
    return scheduler
