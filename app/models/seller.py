"""
Seller model.

Read model of the recruitment tree. Membership (who recruited whom) is owned
by the user service; the settlement engine only reads ancestor chains.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import ProfitModel


class Seller(Base):
    """Seller model - a node of the recruitment tree."""

    __tablename__ = "sellers"
    __table_args__ = (
        CheckConstraint('tier >= 1', name='check_seller_tier_positive'),
        CheckConstraint(
            '(tier = 1) OR (upline_id IS NOT NULL)',
            name='check_seller_upline_required'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Recruiter (null only for the root, tier 1)
    upline_id: Mapped[int | None] = mapped_column(
        ForeignKey("sellers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Depth in the tree: 1 = root, 2 = recruited by root, ...
    tier: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def is_root(self) -> bool:
        """Root of the tree (house)."""
        return self.tier == 1

    @property
    def level_label(self) -> str:
        """Human-readable tier label (N1, N2, ...)."""
        return f"N{self.tier}"

    @property
    def profit_model(self) -> ProfitModel:
        """Profit model derived from tier."""
        return ProfitModel.for_tier(self.tier)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Seller(id={self.id}, tier={self.tier}, upline_id={self.upline_id})>"
