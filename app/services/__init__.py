"""
Services.

Business logic layer.
"""

from app.services.base_service import (
    BaseService,
    log_operation,
    transaction,
)
from app.services.settlement_service import SettlementService


__all__ = [
    "BaseService",
    "log_operation",
    "transaction",
    "SettlementService",
]
