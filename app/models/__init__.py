"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.batch import Batch
from app.models.enums import (
    BatchState,
    ProfitModel,
    SettlementKind,
    SettlementState,
    TrancheState,
)
from app.models.seller import Seller
from app.models.settlement import CascadeEntry, Settlement
from app.models.surplus import SurplusBalance, SurplusLedgerEntry
from app.models.tranche import Tranche


__all__ = [
    "Base",
    # Recruitment tree (read model)
    "Seller",
    # Stock
    "Batch",
    "Tranche",
    # Settlements
    "Settlement",
    "CascadeEntry",
    "SurplusBalance",
    "SurplusLedgerEntry",
    # Enums
    "BatchState",
    "ProfitModel",
    "SettlementKind",
    "SettlementState",
    "TrancheState",
]
