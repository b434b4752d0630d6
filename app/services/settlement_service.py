"""
Settlement service.

Single entry point for the settlement engine, used by jobs and by the
operator-facing layers.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.models.seller import Seller
from app.models.tranche import Tranche
from app.services.base_service import BaseService, log_operation
from app.services.settlement import (
    RecruitmentChainProvider,
    SettlementComputation,
    SettlementQueryManager,
    SettlementRecord,
    SettlementSummary,
    SettlementWorkflow,
    SweepReport,
    TriggerDetector,
    render_settlement_message,
)
from app.utils.distributed_lock import DistributedLock, get_distributed_lock
from app.utils.exceptions import ALERTS, TrancheNotFound


class SettlementService(BaseService):
    """Settlement service facade."""

    def __init__(
        self,
        session: AsyncSession,
        chain_provider: RecruitmentChainProvider | None = None,
        lock: DistributedLock | None = None,
    ) -> None:
        """
        Initialize settlement service.

        Args:
            session: Async database session
            chain_provider: Ancestor chain source (SQL by default)
            lock: Lock implementation (from settings by default)
        """
        super().__init__(session)
        lock = lock or get_distributed_lock()
        self.workflow = SettlementWorkflow(
            session, chain_provider=chain_provider, lock=lock
        )
        self.detector = TriggerDetector(session, workflow=self.workflow, lock=lock)
        self.queries = SettlementQueryManager(session)

    # Commands

    @log_operation
    async def generate_settlement(
        self, tranche_id: int, force: bool = False
    ) -> SettlementRecord:
        """
        Create the pending settlement of a tranche.

        Args:
            tranche_id: Tranche ID
            force: Regenerate even if a pending settlement exists or stock
                is above the threshold

        Returns:
            SettlementRecord of the new pending settlement
        """
        return await self.detector.generate(tranche_id, force=force)

    @log_operation
    async def confirm_settlement(
        self,
        settlement_id: int,
        actual_amount: Decimal,
        note: str | None = None,
    ) -> SettlementRecord:
        """
        Confirm a settlement with the amount actually received.

        Args:
            settlement_id: Settlement ID
            actual_amount: Amount received
            note: Optional operator note

        Returns:
            SettlementRecord of the confirmed settlement
        """
        settlement = await self.workflow.confirm(
            settlement_id, actual_amount, note=note
        )
        return SettlementRecord.from_model(settlement)

    async def detect_eligible(self) -> list[int]:
        """Tranches ready for settlement."""
        return await self.detector.detect_eligible()

    async def sweep(self) -> SweepReport:
        """Run one trigger detection pass."""
        return await self.detector.sweep()

    # Queries

    async def get_settlement(self, settlement_id: int) -> SettlementRecord:
        return await self.queries.get(settlement_id)

    async def list_pending(
        self, limit: int | None = None, offset: int | None = None
    ) -> list[SettlementRecord]:
        return await self.queries.list_pending(limit=limit, offset=offset)

    async def list_by_seller(
        self, seller_id: int, state: str | None = None
    ) -> list[SettlementRecord]:
        return await self.queries.list_by_seller(seller_id, state=state)

    async def list_by_batch(self, batch_id: int) -> list[SettlementRecord]:
        return await self.queries.list_by_batch(batch_id)

    async def summary(self, now: datetime | None = None) -> SettlementSummary:
        return await self.queries.summary(now=now)

    async def stale_pending(
        self, older_than: timedelta | None = None
    ) -> list[SettlementRecord]:
        """
        Pending settlements waiting too long.

        Args:
            older_than: Minimum waiting time (stale_settlement_hours by default)

        Returns:
            Records, oldest first
        """
        if older_than is None:
            older_than = timedelta(hours=settings.stale_settlement_hours)
        return await self.queries.stale_pending(older_than)

    async def calculation_preview(self, tranche_id: int) -> SettlementComputation:
        """
        Compute what a settlement of the tranche would be, without saving.

        A pending settlement of the tranche is treated as if it were being
        regenerated: its surplus reservation is ignored.

        Args:
            tranche_id: Tranche ID

        Returns:
            SettlementComputation with audit trail
        """
        tranche = await self.session.get(Tranche, tranche_id)
        if tranche is None:
            raise TrancheNotFound("Tranche not found", tranche_id=tranche_id)

        pending = await self.workflow.settlement_repo.get_pending_for_tranche(
            tranche_id
        )
        try:
            return await self.workflow.compute_for_tranche(
                tranche,
                exclude_settlement_id=pending.id if pending else None,
            )
        except ALERTS as e:
            self.logger.critical(
                f"ALERT in calculation_preview: {e}",
                extra={"tranche_id": tranche_id},
            )
            raise

    async def render_message(self, settlement_id: int) -> str:
        """
        Message text for a settlement.

        Args:
            settlement_id: Settlement ID

        Returns:
            Deterministic message built from stored fields
        """
        record = await self.queries.get(settlement_id)

        tranche_number = (
            await self.session.execute(
                select(Tranche.number).where(Tranche.id == record.tranche_id)
            )
        ).scalar_one()

        seller_ids = {record.seller_id} | {
            share.beneficiary_id for share in record.cascade
        }
        rows = await self.session.execute(
            select(Seller.id, Seller.name).where(Seller.id.in_(seller_ids))
        )
        names = {row.id: row.name for row in rows.all()}

        return render_settlement_message(
            record,
            seller_name=names.get(record.seller_id, f"#{record.seller_id}"),
            tranche_number=tranche_number,
            beneficiary_names=names,
            brand_name=settings.brand_name,
            currency_symbol=settings.currency_symbol,
            quantum=settings.money_quantum,
        )
