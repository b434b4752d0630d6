"""
Surplus models.

Per-seller carried balance across settlement cycles and the journal of
applied deltas. A negative balance is a debt owed by the seller.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class SurplusBalance(Base):
    """Current carried balance of one seller."""

    __tablename__ = "surplus_balances"

    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    last_applied_settlement_id: Mapped[int | None] = mapped_column(
        ForeignKey("settlements.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<SurplusBalance(seller_id={self.seller_id}, amount={self.amount})>"


class SurplusLedgerEntry(Base):
    """
    Journal row for one applied delta.

    The unique settlement_id is what makes apply idempotent.
    """

    __tablename__ = "surplus_ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    settlement_id: Mapped[int] = mapped_column(
        ForeignKey("settlements.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    delta: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
