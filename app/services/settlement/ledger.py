"""
Surplus ledger.

Per-seller carried balance across settlement cycles. A positive balance is
money in the seller's favour, a negative one a debt owed to the house.
Each delta is journalled with its settlement id, which makes apply
idempotent.
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.surplus import SurplusBalance
from app.repositories.settlement_repository import SettlementRepository
from app.repositories.surplus_repository import SurplusRepository


class SurplusLedger:
    """Reads and mutates seller surplus balances."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger."""
        self.session = session
        self.surplus_repo = SurplusRepository(session)
        self.settlement_repo = SettlementRepository(session)

    async def read(self, seller_id: int) -> Decimal:
        """
        Current carried balance.

        Args:
            seller_id: Seller ID

        Returns:
            Balance, zero when the seller has no prior cycle
        """
        return await self.surplus_repo.get_balance(seller_id)

    async def reserved(
        self, seller_id: int, exclude_settlement_id: int | None = None
    ) -> Decimal:
        """
        Part of the balance already consumed by open settlements.

        Args:
            seller_id: Seller ID
            exclude_settlement_id: Settlement whose reservation is ignored

        Returns:
            Sum of prior surplus of the seller's pending settlements
        """
        return await self.settlement_repo.sum_reserved_prior_surplus(
            seller_id, exclude_id=exclude_settlement_id
        )

    async def available(
        self, seller_id: int, exclude_settlement_id: int | None = None
    ) -> Decimal:
        """Balance not yet reserved by another pending settlement."""
        balance = await self.read(seller_id)
        reserved = await self.reserved(seller_id, exclude_settlement_id)
        return balance - reserved

    async def apply(
        self, seller_id: int, settlement_id: int, delta: Decimal
    ) -> bool:
        """
        Add delta to the seller's balance once per settlement.

        Must run inside the caller's transaction, under the per-seller lock.

        Args:
            seller_id: Seller ID
            settlement_id: Settlement that produced the delta
            delta: Signed amount to add

        Returns:
            True if applied, False if this settlement was already applied
        """
        existing = await self.surplus_repo.get_entry_for_settlement(
            settlement_id
        )
        if existing is not None:
            logger.warning(
                f"Surplus delta for settlement {settlement_id} already applied, "
                f"skipping"
            )
            return False

        balance = await self.surplus_repo.get_balance_for_update(seller_id)
        if balance is None:
            balance = SurplusBalance(seller_id=seller_id, amount=Decimal("0"))
            self.session.add(balance)

        balance.amount = balance.amount + delta
        balance.last_applied_settlement_id = settlement_id
        await self.session.flush()

        await self.surplus_repo.add_entry(
            seller_id=seller_id,
            settlement_id=settlement_id,
            delta=delta,
            balance_after=balance.amount,
        )

        logger.info(
            f"Surplus of seller {seller_id} moved by {delta} "
            f"to {balance.amount} (settlement {settlement_id})"
        )
        return True
