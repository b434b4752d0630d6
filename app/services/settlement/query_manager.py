"""
Settlement query management module.

Read side of the engine: immutable records of settlements and the
operational summary. Reads take no locks.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import SettlementKind, SettlementState
from app.models.seller import Seller
from app.models.settlement import Settlement
from app.models.tranche import Tranche
from app.repositories.settlement_repository import SettlementRepository
from app.services.settlement.calculator import CascadeShare
from app.utils.datetime_utils import ensure_aware, format_waiting_time, utc_now
from app.utils.exceptions import SettlementNotFound


@dataclass(frozen=True)
class SettlementRecord:
    """Read-only view of a stored settlement."""

    id: int
    tranche_id: int
    batch_id: int
    seller_id: int
    state: str
    profit_model: str
    seller_tier: int
    collected: Decimal
    prior_surplus: Decimal
    available: Decimal
    investment_owed: Decimal
    investment_recoup: Decimal
    gross_profit: Decimal
    carried_debt: Decimal
    seller_pct: Decimal
    upline_pct: Decimal
    expected_transfer: Decimal
    seller_amount: Decimal
    cascade: tuple[CascadeShare, ...]
    audit_trail: tuple[dict[str, Any], ...]
    actual_transfer: Decimal | None
    resulting_surplus: Decimal | None
    note: str | None
    superseded_by_id: int | None
    created_at: datetime
    confirmed_at: datetime | None
    voided_at: datetime | None

    @property
    def is_pending(self) -> bool:
        return self.state == SettlementState.PENDING

    @property
    def kind(self) -> SettlementKind:
        return SettlementKind.for_recoup(self.investment_recoup)

    @classmethod
    def from_model(cls, settlement: Settlement) -> "SettlementRecord":
        """Build a record from a loaded Settlement."""
        return cls(
            id=settlement.id,
            tranche_id=settlement.tranche_id,
            batch_id=settlement.batch_id,
            seller_id=settlement.seller_id,
            state=settlement.state,
            profit_model=settlement.profit_model,
            seller_tier=settlement.seller_tier,
            collected=settlement.collected,
            prior_surplus=settlement.prior_surplus,
            available=settlement.available,
            investment_owed=settlement.investment_owed,
            investment_recoup=settlement.investment_recoup,
            gross_profit=settlement.gross_profit,
            carried_debt=settlement.carried_debt,
            seller_pct=settlement.seller_pct,
            upline_pct=settlement.upline_pct,
            expected_transfer=settlement.expected_transfer,
            seller_amount=settlement.seller_amount,
            cascade=tuple(
                CascadeShare(
                    position=entry.position,
                    level=entry.level,
                    beneficiary_id=entry.beneficiary_id,
                    percentage=entry.percentage,
                    amount=entry.amount,
                    rationale=entry.rationale,
                )
                for entry in settlement.cascade_entries
            ),
            audit_trail=tuple(settlement.audit_trail or ()),
            actual_transfer=settlement.actual_transfer,
            resulting_surplus=settlement.resulting_surplus,
            note=settlement.note,
            superseded_by_id=settlement.superseded_by_id,
            created_at=ensure_aware(settlement.created_at),
            confirmed_at=(
                ensure_aware(settlement.confirmed_at)
                if settlement.confirmed_at else None
            ),
            voided_at=(
                ensure_aware(settlement.voided_at)
                if settlement.voided_at else None
            ),
        )


@dataclass(frozen=True)
class PendingSettlementInfo:
    """One line of the pending list in the summary."""

    settlement_id: int
    seller_id: int
    seller_name: str
    tranche_number: int
    expected_transfer: Decimal
    stock_ratio: Decimal
    waiting: str
    created_at: datetime


@dataclass(frozen=True)
class SettlementSummary:
    """Operational overview of all settlements."""

    counts: dict[str, int]
    pending_expected_total: Decimal
    confirmed_expected_total: Decimal
    received_total: Decimal
    recouped_total: Decimal
    resulting_surplus_total: Decimal
    pending: tuple[PendingSettlementInfo, ...]

    @property
    def shortfall_total(self) -> Decimal:
        """Expected minus received over confirmed settlements."""
        return self.confirmed_expected_total - self.received_total


class SettlementQueryManager:
    """Manages settlement query operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize query manager."""
        self.session = session
        self.settlement_repo = SettlementRepository(session)

    async def get(self, settlement_id: int) -> SettlementRecord:
        """
        Get one settlement.

        Raises:
            SettlementNotFound: if it does not exist
        """
        settlement = await self.settlement_repo.get_by_id(settlement_id)
        if settlement is None:
            raise SettlementNotFound(
                "Settlement not found", settlement_id=settlement_id
            )
        return SettlementRecord.from_model(settlement)

    async def list_pending(
        self, limit: int | None = None, offset: int | None = None
    ) -> list[SettlementRecord]:
        """Pending settlements, oldest first, one page at a time."""
        settlements = await self.settlement_repo.list_pending(
            limit=limit, offset=offset
        )
        return [SettlementRecord.from_model(s) for s in settlements]

    async def list_by_seller(
        self, seller_id: int, state: str | None = None
    ) -> list[SettlementRecord]:
        """Settlements of a seller, newest first."""
        settlements = await self.settlement_repo.list_by_seller(
            seller_id, state=state
        )
        return [SettlementRecord.from_model(s) for s in settlements]

    async def list_by_batch(self, batch_id: int) -> list[SettlementRecord]:
        """Settlements of a batch in creation order."""
        settlements = await self.settlement_repo.list_by_batch(batch_id)
        return [SettlementRecord.from_model(s) for s in settlements]

    async def stale_pending(
        self, older_than: timedelta, now: datetime | None = None
    ) -> list[SettlementRecord]:
        """
        Pending settlements waiting longer than older_than.

        Args:
            older_than: Minimum waiting time
            now: Reference time (defaults to current UTC time)

        Returns:
            Records, oldest first
        """
        cutoff = (now or utc_now()) - older_than
        settlements = await self.settlement_repo.list_stale_pending(cutoff)
        return [SettlementRecord.from_model(s) for s in settlements]

    async def summary(self, now: datetime | None = None) -> SettlementSummary:
        """
        Counts, money totals and the pending list.

        Args:
            now: Reference time for waiting times (defaults to current UTC)

        Returns:
            SettlementSummary
        """
        now = now or utc_now()
        counts = await self.settlement_repo.count_by_state()
        confirmed = await self.settlement_repo.sum_confirmed_amounts()
        pending_total = await self.settlement_repo.sum_pending_expected()

        stmt = (
            select(
                Settlement.id,
                Settlement.seller_id,
                Settlement.expected_transfer,
                Settlement.created_at,
                Seller.name,
                Tranche.number,
                Tranche.delivered,
                Tranche.remaining,
            )
            .join(Seller, Seller.id == Settlement.seller_id)
            .join(Tranche, Tranche.id == Settlement.tranche_id)
            .where(Settlement.state == SettlementState.PENDING)
            .order_by(Settlement.created_at.asc(), Settlement.id.asc())
        )
        result = await self.session.execute(stmt)

        pending = []
        for row in result.all():
            created_at = ensure_aware(row.created_at)
            ratio = (
                Decimal(row.remaining) / Decimal(row.delivered)
                if row.delivered else Decimal("1")
            )
            pending.append(PendingSettlementInfo(
                settlement_id=row.id,
                seller_id=row.seller_id,
                seller_name=row.name,
                tranche_number=row.number,
                expected_transfer=row.expected_transfer,
                stock_ratio=ratio,
                waiting=format_waiting_time(now - created_at),
                created_at=created_at,
            ))

        return SettlementSummary(
            counts=counts,
            pending_expected_total=pending_total,
            confirmed_expected_total=confirmed["expected"],
            received_total=confirmed["actual"],
            recouped_total=confirmed["recouped"],
            resulting_surplus_total=confirmed["surplus"],
            pending=tuple(pending),
        )
