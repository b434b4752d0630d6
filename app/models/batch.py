"""
Batch model.

A production batch handed to one seller, split into tranches.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import BatchState
from app.models.types import MoneyType


if TYPE_CHECKING:
    from app.models.tranche import Tranche


class Batch(Base):
    """Batch model - investment and unit count of a production batch."""

    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint('unit_count > 0', name='check_batch_unit_count_positive'),
        CheckConstraint(
            'house_investment >= 0 AND seller_investment >= 0',
            name='check_batch_investment_non_negative'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    unit_count: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    # Investment split between the house (root) and the seller
    house_investment: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )
    seller_investment: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchState.ACTIVE, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    tranches: Mapped[list["Tranche"]] = relationship(
        "Tranche",
        back_populates="batch",
        order_by="Tranche.number",
        lazy="selectin",
    )

    @property
    def total_investment(self) -> Decimal:
        """House plus seller investment."""
        return self.house_investment + self.seller_investment

    @property
    def tranche_count(self) -> int:
        """Number of tranches in the batch."""
        return len(self.tranches)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Batch(id={self.id}, seller_id={self.seller_id}, state={self.state})>"
