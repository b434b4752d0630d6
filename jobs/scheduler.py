"""
Task scheduler.

Enqueues the settlement actors on their schedules and serves the health
endpoints for the scheduler process.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.config.settings import settings
from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks.settlement_sweep import sweep_settlement_triggers
from jobs.tasks.stale_settlements import report_stale_settlements


def setup_logging() -> None:
    """Configure logger with file rotation."""
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with all settlement jobs.

    Returns:
        Configured, not yet started, AsyncIOScheduler
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        sweep_settlement_triggers.send,
        IntervalTrigger(seconds=settings.settlement_sweep_interval_seconds),
        id="settlement_sweep",
        name="Settlement trigger sweep",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        report_stale_settlements.send,
        CronTrigger(hour=3, minute=0),
        id="stale_settlements",
        name="Stale settlement report",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    return scheduler


async def main() -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    setup_logging()
    logger.info("Starting settlement scheduler...")

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)

    runner, _ = await start_health_server(
        host=settings.health_check_host,
        port=settings.health_check_port,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down settlement scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)


if __name__ == "__main__":
    asyncio.run(main())
