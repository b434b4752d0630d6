"""
Settlement exception taxonomy.

Every error carries a stable machine-readable code so callers can map
rejections without parsing messages.
"""

from typing import Any


class SettlementError(Exception):
    """Base class for all settlement engine errors."""

    code = "SETTLEMENT_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for API/bot layers."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {key: str(value) for key, value in self.details.items()},
        }


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(SettlementError):
    """Malformed or missing input, negative amounts."""

    code = "VALIDATION_ERROR"


class NoEligibleStock(ValidationError):
    """Tranche stock ratio is above the trigger threshold."""

    code = "NO_ELIGIBLE_STOCK"


class InvalidTrancheState(ValidationError):
    """Tranche is not in a state that allows the operation."""

    code = "INVALID_TRANCHE_STATE"


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(SettlementError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"


class TrancheNotFound(NotFoundError):
    code = "TRANCHE_NOT_FOUND"


class SettlementNotFound(NotFoundError):
    code = "SETTLEMENT_NOT_FOUND"


# =============================================================================
# CONFLICTS
# =============================================================================


class ConflictError(SettlementError):
    """Operation conflicts with the current state."""

    code = "CONFLICT"


class AlreadySettled(ConflictError):
    """Tranche already has an open (pending) settlement."""

    code = "ALREADY_SETTLED"


class AlreadyConfirmed(ConflictError):
    code = "ALREADY_CONFIRMED"


class AlreadyVoid(ConflictError):
    code = "ALREADY_VOID"


class LockNotAcquired(ConflictError):
    """Another worker holds the lock for this entity."""

    code = "LOCK_NOT_ACQUIRED"


# =============================================================================
# INTEGRITY / INFRASTRUCTURE
# =============================================================================


class DataIntegrityError(SettlementError):
    """
    Stored data is inconsistent (cyclic or over-depth chain, missing
    investment data). Never downgraded to a partial settlement.
    """

    code = "DATA_INTEGRITY"


class ChainUnavailable(SettlementError):
    """Recruitment chain could not be fetched. Safe to retry."""

    code = "CHAIN_UNAVAILABLE"


class ComputationError(SettlementError):
    """Calculator post-condition failed. Indicates a bug."""

    code = "COMPUTATION_ERROR"


# Errors that are returned to the caller as a rejected operation
REJECTIONS = (
    ValidationError,
    NotFoundError,
    ConflictError,
)

# Errors that must be surfaced as operational alerts
ALERTS = (
    DataIntegrityError,
    ComputationError,
)


def is_rejection(exc: Exception) -> bool:
    """
    Check if exception is a plain rejection of the request.

    Args:
        exc: Exception to check

    Returns:
        True if the caller should just be told "no"
    """
    return isinstance(exc, REJECTIONS)


def is_alert(exc: Exception) -> bool:
    """
    Check if exception must raise an operational alert.

    Args:
        exc: Exception to check

    Returns:
        True if the exception indicates corrupted data or a bug
    """
    return isinstance(exc, ALERTS)
