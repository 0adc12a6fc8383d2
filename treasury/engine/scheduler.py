"""APScheduler integration.

A single interval job drives the treasury tick.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from treasury.engine.tick import TreasuryRuntime, run_guarded_tick, wait_for_idle

logger = logging.getLogger(__name__)

JOB_ID = "treasury_tick"

scheduler = AsyncIOScheduler()


def start_scheduler(runtime: TreasuryRuntime, run_immediately: bool = True):
    """Schedule the tick job and start the scheduler."""
    interval = runtime.settings.tick_interval_seconds
    kwargs = {}
    if run_immediately:
        kwargs["next_run_time"] = runtime.clock()
    scheduler.add_job(
        run_guarded_tick,
        trigger=IntervalTrigger(seconds=interval),
        args=[runtime],
        id=JOB_ID,
        name="Treasury tick",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
        **kwargs,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info(f"Scheduler started, ticking every {interval}s")


async def stop_scheduler(runtime: TreasuryRuntime | None = None):
    """Stop scheduling new ticks, then wait for an in-flight tick to finish."""
    if scheduler.get_job(JOB_ID):
        scheduler.remove_job(JOB_ID)
    if scheduler.running:
        scheduler.shutdown(wait=False)
    if runtime is not None:
        await wait_for_idle(runtime)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
