"""
Settlement trigger detection.

Finds released tranches whose stock has run down to the settlement
threshold and, when automatic generation is enabled, creates their pending
settlements. Sweeps never overlap.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.operational_constants import LOCK_TIMEOUT_LONG
from app.config.settings import settings
from app.repositories.tranche_repository import TrancheRepository
from app.services.base_service import BaseService
from app.services.settlement.query_manager import SettlementRecord
from app.services.settlement.workflow import SettlementWorkflow
from app.utils.datetime_utils import utc_now
from app.utils.distributed_lock import DistributedLock, get_distributed_lock
from app.utils.exceptions import SettlementError


SWEEP_LOCK_KEY = "settlement:sweep"


@dataclass
class SweepReport:
    """Outcome of one detection pass."""

    started_at: datetime
    skipped: bool = False
    candidates: list[int] = field(default_factory=list)
    generated: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


class TriggerDetector(BaseService):
    """Detects tranches ready for settlement."""

    def __init__(
        self,
        session: AsyncSession,
        workflow: SettlementWorkflow | None = None,
        lock: DistributedLock | None = None,
    ) -> None:
        """
        Initialize detector.

        Args:
            session: Async database session
            workflow: Workflow used to generate settlements
            lock: Lock implementation (from settings by default)
        """
        super().__init__(session)
        self.lock = lock or get_distributed_lock()
        self.workflow = workflow or SettlementWorkflow(session, lock=self.lock)
        self.tranche_repo = TrancheRepository(session)

    async def detect_eligible(self) -> list[int]:
        """
        Tranches ready for settlement.

        Returns:
            IDs of released tranches at or below the trigger ratio that
            have no pending settlement
        """
        tranches = await self.tranche_repo.list_eligible_by_threshold(
            settings.settlement_trigger_ratio
        )
        return [tranche.id for tranche in tranches]

    async def generate(
        self, tranche_id: int, force: bool = False
    ) -> SettlementRecord:
        """
        Create the pending settlement of a tranche.

        Args:
            tranche_id: Tranche ID
            force: Void an existing pending settlement first and skip the
                stock-ratio check

        Returns:
            Record of the new pending settlement
        """
        settlement = await self.workflow.create(tranche_id, force=force)
        return SettlementRecord.from_model(settlement)

    async def sweep(self) -> SweepReport:
        """
        Run one detection pass.

        Returns immediately with skipped=True when another sweep holds the
        sweep lock. Per-tranche generation failures are recorded in the
        report by error code.

        Returns:
            SweepReport
        """
        report = SweepReport(started_at=utc_now())

        async with self.lock.lock(
            SWEEP_LOCK_KEY, timeout=LOCK_TIMEOUT_LONG, blocking=False
        ) as acquired:
            if not acquired:
                self.logger.info("Settlement sweep already running, skipping")
                report.skipped = True
                return report

            report.candidates = await self.detect_eligible()
            await self.session.commit()

            if not report.candidates:
                self.logger.debug("No tranches ready for settlement")
                return report

            if not settings.settlement_auto_generate:
                self.logger.warning(
                    f"{len(report.candidates)} tranche(s) ready for settlement: "
                    f"{report.candidates}",
                    extra={"tranche_ids": report.candidates},
                )
                return report

            for tranche_id in report.candidates:
                try:
                    record = await self.generate(tranche_id)
                except SettlementError as e:
                    report.failed[tranche_id] = e.code
                    self.logger.warning(
                        f"Settlement generation failed for tranche "
                        f"{tranche_id}: {e.code}",
                        extra={"tranche_id": tranche_id, "error": e.message},
                    )
                    continue
                report.generated.append(record.id)

        self.logger.info(
            f"Settlement sweep done: {len(report.generated)} generated, "
            f"{len(report.failed)} failed",
            extra={
                "candidates": len(report.candidates),
                "generated": len(report.generated),
                "failed": len(report.failed),
            },
        )
        return report
