"""
Surplus repository.

Data access layer for SurplusBalance and SurplusLedgerEntry models.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.surplus import SurplusBalance, SurplusLedgerEntry
from app.repositories.base import BaseRepository


class SurplusRepository(BaseRepository[SurplusBalance]):
    """Surplus balance repository with the applied-delta journal."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize surplus repository."""
        super().__init__(SurplusBalance, session)

    async def get_balance(self, seller_id: int) -> Decimal:
        """
        Current balance of a seller.

        Args:
            seller_id: Seller ID

        Returns:
            Balance (zero for sellers without a row)
        """
        balance = await self.session.get(SurplusBalance, seller_id)
        return balance.amount if balance else Decimal("0")

    async def get_balance_for_update(
        self, seller_id: int
    ) -> SurplusBalance | None:
        """
        Balance row of a seller with a row lock.

        Args:
            seller_id: Seller ID

        Returns:
            SurplusBalance or None
        """
        stmt = (
            select(SurplusBalance)
            .where(SurplusBalance.seller_id == seller_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_entry_for_settlement(
        self, settlement_id: int
    ) -> SurplusLedgerEntry | None:
        """
        Journal entry written for a settlement, if any.

        Args:
            settlement_id: Settlement ID

        Returns:
            SurplusLedgerEntry or None
        """
        stmt = select(SurplusLedgerEntry).where(
            SurplusLedgerEntry.settlement_id == settlement_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_entry(
        self,
        seller_id: int,
        settlement_id: int,
        delta: Decimal,
        balance_after: Decimal,
    ) -> SurplusLedgerEntry:
        """
        Append a journal entry.

        Args:
            seller_id: Seller ID
            settlement_id: Settlement that produced the delta
            delta: Applied delta
            balance_after: Balance after applying

        Returns:
            Created entry
        """
        entry = SurplusLedgerEntry(
            seller_id=seller_id,
            settlement_id=settlement_id,
            delta=delta,
            balance_after=balance_after,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_entries(self, seller_id: int) -> list[SurplusLedgerEntry]:
        """
        Journal of a seller in application order.

        Args:
            seller_id: Seller ID

        Returns:
            List of entries
        """
        stmt = (
            select(SurplusLedgerEntry)
            .where(SurplusLedgerEntry.seller_id == seller_id)
            .order_by(SurplusLedgerEntry.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
