"""
Settlement repository.

Data access layer for Settlement model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import SettlementState
from app.models.settlement import Settlement
from app.repositories.base import BaseRepository


class SettlementRepository(BaseRepository[Settlement]):
    """Settlement repository with state and aggregate queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize settlement repository."""
        super().__init__(Settlement, session)

    async def get_pending_for_tranche(
        self, tranche_id: int
    ) -> Settlement | None:
        """
        Get the open settlement of a tranche.

        Args:
            tranche_id: Tranche ID

        Returns:
            Pending settlement or None
        """
        stmt = select(Settlement).where(
            Settlement.tranche_id == tranche_id,
            Settlement.state == SettlementState.PENDING,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_pending(
        self, limit: int | None = None, offset: int | None = None
    ) -> list[Settlement]:
        """
        Pending settlements, oldest first.

        Args:
            limit: Max number of results
            offset: Number of results to skip

        Returns:
            List of pending settlements
        """
        stmt = (
            select(Settlement)
            .where(Settlement.state == SettlementState.PENDING)
            .order_by(Settlement.created_at.asc(), Settlement.id.asc())
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_seller(
        self,
        seller_id: int,
        state: str | None = None,
        limit: int | None = None,
    ) -> list[Settlement]:
        """
        Settlements of a seller, newest first.

        Args:
            seller_id: Seller ID
            state: Optional state filter
            limit: Max number of results

        Returns:
            List of settlements
        """
        stmt = select(Settlement).where(Settlement.seller_id == seller_id)
        if state:
            stmt = stmt.where(Settlement.state == state)
        stmt = stmt.order_by(Settlement.created_at.desc(), Settlement.id.desc())
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_batch(self, batch_id: int) -> list[Settlement]:
        """
        All settlements of a batch in creation order.

        Args:
            batch_id: Batch ID

        Returns:
            List of settlements
        """
        stmt = (
            select(Settlement)
            .where(Settlement.batch_id == batch_id)
            .order_by(Settlement.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_stale_pending(self, cutoff: datetime) -> list[Settlement]:
        """
        Pending settlements created before cutoff.

        Args:
            cutoff: Creation time limit

        Returns:
            List of settlements, oldest first
        """
        stmt = (
            select(Settlement)
            .where(
                Settlement.state == SettlementState.PENDING,
                Settlement.created_at < cutoff,
            )
            .order_by(Settlement.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_confirmed_recoup(self, batch_id: int) -> Decimal:
        """
        Investment already recouped by confirmed settlements of a batch.

        Args:
            batch_id: Batch ID

        Returns:
            Sum of investment_recoup
        """
        stmt = select(
            func.coalesce(func.sum(Settlement.investment_recoup), 0)
        ).where(
            Settlement.batch_id == batch_id,
            Settlement.state == SettlementState.CONFIRMED,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def sum_reserved_prior_surplus(
        self, seller_id: int, exclude_id: int | None = None
    ) -> Decimal:
        """
        Prior surplus already counted by the seller's open settlements.

        Args:
            seller_id: Seller ID
            exclude_id: Settlement to leave out of the sum

        Returns:
            Sum of prior_surplus of pending settlements
        """
        stmt = select(
            func.coalesce(func.sum(Settlement.prior_surplus), 0)
        ).where(
            Settlement.seller_id == seller_id,
            Settlement.state == SettlementState.PENDING,
        )
        if exclude_id is not None:
            stmt = stmt.where(Settlement.id != exclude_id)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def transition_state(
        self,
        settlement_id: int,
        from_state: str,
        to_state: str,
        **values: Any,
    ) -> bool:
        """
        Conditionally move a settlement to a new state (compare-and-swap).

        Args:
            settlement_id: Settlement ID
            from_state: State the settlement must currently be in
            to_state: Target state
            **values: Extra columns to set in the same statement

        Returns:
            True if exactly one row changed
        """
        stmt = (
            update(Settlement)
            .where(
                Settlement.id == settlement_id,
                Settlement.state == from_state,
            )
            .values(state=to_state, **values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_by_state(self) -> dict[str, int]:
        """
        Number of settlements per state.

        Returns:
            Dict state -> count (all states present)
        """
        stmt = select(Settlement.state, func.count()).group_by(
            Settlement.state
        )
        result = await self.session.execute(stmt)
        counts = {state.value: 0 for state in SettlementState}
        for state, count in result.all():
            counts[state] = count
        return counts

    async def sum_confirmed_amounts(self) -> dict[str, Decimal]:
        """
        Money totals over confirmed settlements.

        Returns:
            Dict with expected, actual, recouped and surplus totals
        """
        stmt = select(
            func.coalesce(func.sum(Settlement.expected_transfer), 0),
            func.coalesce(func.sum(Settlement.actual_transfer), 0),
            func.coalesce(func.sum(Settlement.investment_recoup), 0),
            func.coalesce(func.sum(Settlement.resulting_surplus), 0),
        ).where(Settlement.state == SettlementState.CONFIRMED)
        row = (await self.session.execute(stmt)).one()
        return {
            "expected": Decimal(str(row[0])),
            "actual": Decimal(str(row[1])),
            "recouped": Decimal(str(row[2])),
            "surplus": Decimal(str(row[3])),
        }

    async def sum_pending_expected(self) -> Decimal:
        """
        Money still expected from pending settlements.

        Returns:
            Sum of expected_transfer
        """
        stmt = select(
            func.coalesce(func.sum(Settlement.expected_transfer), 0)
        ).where(Settlement.state == SettlementState.PENDING)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
