"""
Tranche repository.

Data access layer for Tranche model, including the conditional state
transitions the settlement workflow relies on.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import SettlementState, TrancheState
from app.models.settlement import Settlement
from app.models.tranche import Tranche
from app.repositories.base import BaseRepository


@dataclass(frozen=True)
class TrancheStock:
    """Stock counts of a tranche."""

    delivered: int
    remaining: int


class TrancheRepository(BaseRepository[Tranche]):
    """Tranche repository with stock and state queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize tranche repository."""
        super().__init__(Tranche, session)

    async def get_stock(self, tranche_id: int) -> TrancheStock | None:
        """
        Get delivered/remaining counts.

        Args:
            tranche_id: Tranche ID

        Returns:
            TrancheStock or None if the tranche does not exist
        """
        stmt = select(Tranche.delivered, Tranche.remaining).where(
            Tranche.id == tranche_id
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return TrancheStock(delivered=row.delivered, remaining=row.remaining)

    async def list_eligible_by_threshold(self, ratio: Decimal) -> list[Tranche]:
        """
        Released tranches depleted to the threshold with no open settlement.

        The ratio comparison is done with Decimal in Python so the boundary
        (exactly at the threshold) is never affected by float rounding.

        Args:
            ratio: remaining/delivered threshold (inclusive)

        Returns:
            Tranches ordered by ID
        """
        open_settlement = exists().where(
            Settlement.tranche_id == Tranche.id,
            Settlement.state == SettlementState.PENDING,
        )
        stmt = (
            select(Tranche)
            .where(
                Tranche.state == TrancheState.RELEASED,
                Tranche.delivered > 0,
                ~open_settlement,
            )
            .order_by(Tranche.id)
        )
        result = await self.session.execute(stmt)
        return [
            tranche
            for tranche in result.scalars().all()
            if tranche.remaining_ratio <= ratio
        ]

    async def transition_state(
        self,
        tranche_id: int,
        from_states: tuple[str, ...],
        to_state: str,
        **values: Any,
    ) -> bool:
        """
        Conditionally move a tranche to a new state (compare-and-swap).

        Args:
            tranche_id: Tranche ID
            from_states: States the tranche must currently be in
            to_state: Target state
            **values: Extra columns to set in the same statement

        Returns:
            True if exactly one row changed
        """
        stmt = (
            update(Tranche)
            .where(Tranche.id == tranche_id, Tranche.state.in_(from_states))
            .values(state=to_state, **values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_by_batch(self, batch_id: int) -> list[Tranche]:
        """
        Tranches of a batch in order.

        Args:
            batch_id: Batch ID

        Returns:
            Tranches ordered by number
        """
        stmt = (
            select(Tranche)
            .where(Tranche.batch_id == batch_id)
            .order_by(Tranche.number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_seller_id(self, tranche_id: int) -> int | None:
        """Owning seller of a tranche, or None if it does not exist."""
        stmt = select(Tranche.seller_id).where(Tranche.id == tranche_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
