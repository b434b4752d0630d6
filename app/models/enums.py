"""
Enumerations used by settlement models.

Values are stored as plain strings so they stay readable in SQL.
"""

from decimal import Decimal
from enum import StrEnum


class TrancheState(StrEnum):
    """Tranche lifecycle."""

    PENDING = "pending"  # Not yet handed to the seller
    RELEASED = "released"  # Stock delivered, sales in progress
    IN_SETTLEMENT = "in_settlement"  # A pending settlement exists
    SETTLED = "settled"  # Settlement confirmed


class SettlementState(StrEnum):
    """Settlement lifecycle. CONFIRMED and VOID are terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    VOID = "void"


class BatchState(StrEnum):
    """Batch lifecycle."""

    ACTIVE = "active"
    COMPLETED = "completed"


class ProfitModel(StrEnum):
    """Profit distribution model, derived from the seller tier."""

    FLAT_SPLIT = "flat_split"  # tier 2: fixed seller/root split
    CASCADE_SPLIT = "cascade_split"  # tier 3+: halving up the chain

    @classmethod
    def for_tier(cls, tier: int) -> "ProfitModel":
        """
        Derive the profit model from a seller tier.

        Raises:
            ValueError: If tier is not a seller tier (< 2)
        """
        if tier < 2:
            raise ValueError(f"Tier {tier} is not a seller tier")
        return cls.FLAT_SPLIT if tier == 2 else cls.CASCADE_SPLIT


class SettlementKind(StrEnum):
    """What the collected money of a settlement goes to first."""

    INVESTMENT = "investment"  # recoups house investment
    PROFIT = "profit"  # investment already recovered

    @classmethod
    def for_recoup(cls, investment_recoup: Decimal) -> "SettlementKind":
        return cls.INVESTMENT if investment_recoup > 0 else cls.PROFIT
