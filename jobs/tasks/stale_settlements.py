"""
Stale settlement report task.

Daily review of settlements that have been waiting for confirmation longer
than STALE_SETTLEMENT_HOURS.
"""

from datetime import timedelta

import dramatiq
from loguru import logger

from app.config.operational_constants import DRAMATIQ_TIME_LIMIT_SHORT
from app.config.settings import settings
from app.services.settlement_service import SettlementService
from app.utils.datetime_utils import format_waiting_time, utc_now
from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker


@dramatiq.actor(max_retries=3, time_limit=DRAMATIQ_TIME_LIMIT_SHORT)
def report_stale_settlements() -> int:
    """
    Log pending settlements older than the configured limit.

    Returns:
        Number of stale settlements
    """
    try:
        return run_async(_report_stale_async())
    except Exception as e:
        logger.exception(f"Stale settlement report failed: {e}")
        raise


async def _report_stale_async() -> int:
    """Async implementation of the stale report."""
    older_than = timedelta(hours=settings.stale_settlement_hours)

    async with task_session_maker() as session:
        service = SettlementService(session)
        stale = await service.stale_pending(older_than)

    if not stale:
        logger.info("No stale pending settlements")
        return 0

    now = utc_now()
    for record in stale:
        logger.warning(
            f"Settlement {record.id} pending for "
            f"{format_waiting_time(now - record.created_at)}: "
            f"seller {record.seller_id}, expected {record.expected_transfer}",
            extra={
                "settlement_id": record.id,
                "seller_id": record.seller_id,
                "tranche_id": record.tranche_id,
            },
        )

    logger.warning(f"{len(stale)} settlement(s) pending confirmation too long")
    return len(stale)
