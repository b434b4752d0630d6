"""
Batch repository.

Data access layer for Batch model.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.batch import Batch
from app.models.enums import BatchState
from app.repositories.base import BaseRepository
from app.utils.datetime_utils import utc_now


@dataclass(frozen=True)
class InvestmentSplit:
    """Investment of a batch split between house and seller."""

    house_amount: Decimal
    seller_amount: Decimal

    @property
    def total(self) -> Decimal:
        """Total investment."""
        return self.house_amount + self.seller_amount


class BatchRepository(BaseRepository[Batch]):
    """Batch repository with investment queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize batch repository."""
        super().__init__(Batch, session)

    async def get_investment(self, batch_id: int) -> InvestmentSplit | None:
        """
        Get investment split of a batch.

        Args:
            batch_id: Batch ID

        Returns:
            InvestmentSplit or None if the batch does not exist
        """
        batch = await self.get_by_id(batch_id)
        if batch is None:
            return None
        return InvestmentSplit(
            house_amount=batch.house_investment,
            seller_amount=batch.seller_investment,
        )

    async def mark_completed(self, batch_id: int) -> bool:
        """
        Conditionally mark a batch completed.

        Args:
            batch_id: Batch ID

        Returns:
            True if the batch was active and is now completed
        """
        stmt = (
            update(Batch)
            .where(Batch.id == batch_id, Batch.state == BatchState.ACTIVE)
            .values(state=BatchState.COMPLETED, completed_at=utc_now())
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
