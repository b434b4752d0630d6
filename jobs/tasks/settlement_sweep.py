"""
Settlement sweep task.

Periodically detects tranches whose stock has run down to the settlement
threshold and, when SETTLEMENT_AUTO_GENERATE is on, creates their pending
settlements.
"""

import dramatiq
from loguru import logger

from app.config.operational_constants import DRAMATIQ_TIME_LIMIT_LONG
from app.services.settlement_service import SettlementService
from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_LONG)
def sweep_settlement_triggers() -> dict:
    """
    Run one settlement trigger sweep.

    Not retried: the next scheduled sweep starts from fresh state.

    Returns:
        Dict with sweep counts
    """
    logger.info("Starting settlement trigger sweep...")

    try:
        result = run_async(_sweep_async())
    except Exception as e:
        logger.exception(f"Settlement sweep failed: {e}")
        raise

    logger.info(f"Settlement trigger sweep finished: {result}")
    return result


async def _sweep_async() -> dict:
    """Async implementation of the sweep."""
    async with task_session_maker() as session:
        service = SettlementService(session)
        report = await service.sweep()

    return {
        "skipped": report.skipped,
        "candidates": len(report.candidates),
        "generated": len(report.generated),
        "failed": report.failed,
    }
