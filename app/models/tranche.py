"""
Tranche model.

A released portion of a batch's stock assigned to one seller,
tracked for depletion.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import TrancheState
from app.models.types import MoneyType


if TYPE_CHECKING:
    from app.models.batch import Batch


class Tranche(Base):
    """Tranche model - stock counts and settlement state."""

    __tablename__ = "tranches"
    __table_args__ = (
        UniqueConstraint('batch_id', 'number', name='uq_tranche_batch_number'),
        CheckConstraint('number >= 1', name='check_tranche_number_positive'),
        CheckConstraint('delivered >= 0', name='check_tranche_delivered_non_negative'),
        CheckConstraint(
            'remaining >= 0 AND remaining <= delivered',
            name='check_tranche_remaining_range'
        ),
        CheckConstraint(
            'collected_amount >= 0',
            name='check_tranche_collected_non_negative'
        ),
        Index('idx_tranche_state_seller', 'state', 'seller_id'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    batch_id: Mapped[int] = mapped_column(
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Position inside the batch (1-based)
    number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Stock counts
    assigned_units: Mapped[int] = mapped_column(Integer, nullable=False)
    delivered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Money collected from sales of this tranche (maintained by sales side)
    collected_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrancheState.PENDING, index=True
    )

    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    batch: Mapped["Batch"] = relationship(
        "Batch", back_populates="tranches", lazy="raise"
    )

    @property
    def remaining_ratio(self) -> Decimal:
        """
        Fraction of delivered stock still unsold.

        Returns:
            remaining / delivered, or 1 when nothing was delivered
        """
        if self.delivered == 0:
            return Decimal("1")
        return Decimal(self.remaining) / Decimal(self.delivered)

    @property
    def units_sold(self) -> int:
        """Units sold from this tranche."""
        return self.delivered - self.remaining

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Tranche(id={self.id}, batch_id={self.batch_id}, "
            f"number={self.number}, state={self.state})>"
        )
