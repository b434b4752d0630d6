"""
Settlement model.

The computed money-reconciliation event tied to a tranche's depletion,
with the cascade entries and the structured audit trail of the computation.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import SettlementKind, SettlementState
from app.models.types import JSONType, MoneyType, RatioType


class Settlement(Base):
    """Settlement model - one reconciliation cycle of a tranche."""

    __tablename__ = "settlements"
    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'confirmed', 'void')",
            name='check_settlement_state'
        ),
        CheckConstraint(
            'collected >= 0', name='check_settlement_collected_non_negative'
        ),
        CheckConstraint(
            'investment_recoup >= 0',
            name='check_settlement_recoup_non_negative'
        ),
        CheckConstraint(
            'gross_profit >= 0',
            name='check_settlement_gross_profit_non_negative'
        ),
        CheckConstraint(
            'carried_debt <= 0',
            name='check_settlement_carried_debt_non_positive'
        ),
        CheckConstraint(
            'actual_transfer IS NULL OR actual_transfer >= 0',
            name='check_settlement_actual_transfer_non_negative'
        ),
        # At most one open settlement per tranche
        Index(
            'uq_settlement_pending_tranche',
            'tranche_id',
            unique=True,
            postgresql_where=text("state = 'pending'"),
            sqlite_where=text("state = 'pending'"),
        ),
        Index('idx_settlement_seller_state', 'seller_id', 'state'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    tranche_id: Mapped[int] = mapped_column(
        ForeignKey("tranches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("batches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementState.PENDING, index=True
    )

    # Model used for the distribution
    profit_model: Mapped[str] = mapped_column(String(20), nullable=False)
    seller_tier: Mapped[int] = mapped_column(Integer, nullable=False)

    # Computed at creation
    collected: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    prior_surplus: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    available: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    investment_owed: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    investment_recoup: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    gross_profit: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    carried_debt: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    seller_pct: Mapped[Decimal] = mapped_column(RatioType, nullable=False)
    upline_pct: Mapped[Decimal] = mapped_column(RatioType, nullable=False)
    expected_transfer: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )  # montoQueDebeTransferir
    seller_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )  # montoParaVendedor
    audit_trail: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    # Filled at confirmation
    actual_transfer: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )
    resulting_surplus: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )  # excedenteResultante
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set when voided by a forced regeneration
    superseded_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("settlements.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    cascade_entries: Mapped[list["CascadeEntry"]] = relationship(
        "CascadeEntry",
        back_populates="settlement",
        order_by="CascadeEntry.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_pending(self) -> bool:
        """Awaiting confirmation."""
        return self.state == SettlementState.PENDING

    @property
    def kind(self) -> SettlementKind:
        """Investment recovery or profit settlement."""
        return SettlementKind.for_recoup(self.investment_recoup)

    @property
    def cascade_total(self) -> Decimal:
        """Sum of all cascade entries (everything above the seller)."""
        return sum(
            (entry.amount for entry in self.cascade_entries), Decimal("0")
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Settlement(id={self.id}, tranche_id={self.tranche_id}, "
            f"state={self.state}, expected={self.expected_transfer})>"
        )


class CascadeEntry(Base):
    """One upline hop of a settlement's profit distribution."""

    __tablename__ = "cascade_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    settlement_id: Mapped[int] = mapped_column(
        ForeignKey("settlements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Order from the seller's direct upline (1) to the root (last)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    beneficiary_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    percentage: Mapped[Decimal | None] = mapped_column(RatioType, nullable=True)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rationale: Mapped[str] = mapped_column(String(255), nullable=False)

    settlement: Mapped["Settlement"] = relationship(
        "Settlement", back_populates="cascade_entries", lazy="raise"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CascadeEntry(settlement_id={self.settlement_id}, "
            f"level={self.level}, amount={self.amount})>"
        )
