"""Unit tests for the settlement error taxonomy."""

from decimal import Decimal

import pytest

from app.utils.exceptions import (
    AlreadyConfirmed,
    AlreadySettled,
    AlreadyVoid,
    ChainUnavailable,
    ComputationError,
    ConflictError,
    DataIntegrityError,
    LockNotAcquired,
    NoEligibleStock,
    NotFoundError,
    SettlementNotFound,
    TrancheNotFound,
    ValidationError,
    is_alert,
    is_rejection,
)


class TestErrorCodes:
    """Every error carries a stable code."""

    @pytest.mark.parametrize(
        "error_class,code",
        [
            (ValidationError, "VALIDATION_ERROR"),
            (NoEligibleStock, "NO_ELIGIBLE_STOCK"),
            (TrancheNotFound, "TRANCHE_NOT_FOUND"),
            (SettlementNotFound, "SETTLEMENT_NOT_FOUND"),
            (AlreadySettled, "ALREADY_SETTLED"),
            (AlreadyConfirmed, "ALREADY_CONFIRMED"),
            (AlreadyVoid, "ALREADY_VOID"),
            (LockNotAcquired, "LOCK_NOT_ACQUIRED"),
            (DataIntegrityError, "DATA_INTEGRITY"),
            (ChainUnavailable, "CHAIN_UNAVAILABLE"),
            (ComputationError, "COMPUTATION_ERROR"),
        ],
    )
    def test_code(self, error_class, code):
        assert error_class("message").code == code

    def test_hierarchy(self):
        assert issubclass(AlreadySettled, ConflictError)
        assert issubclass(TrancheNotFound, NotFoundError)
        assert issubclass(NoEligibleStock, ValidationError)

    def test_to_dict(self):
        error = NoEligibleStock(
            "Remaining stock is above the settlement threshold",
            tranche_id=3,
            ratio=Decimal("0.5"),
        )

        assert error.to_dict() == {
            "code": "NO_ELIGIBLE_STOCK",
            "message": "Remaining stock is above the settlement threshold",
            "details": {"tranche_id": "3", "ratio": "0.5"},
        }
        assert str(error) == "Remaining stock is above the settlement threshold"


class TestClassification:
    """Rejections vs. alerts."""

    @pytest.mark.parametrize(
        "error",
        [ValidationError("x"), TrancheNotFound("x"), AlreadySettled("x")],
    )
    def test_rejections(self, error):
        assert is_rejection(error)
        assert not is_alert(error)

    @pytest.mark.parametrize(
        "error", [DataIntegrityError("x"), ComputationError("x")]
    )
    def test_alerts(self, error):
        assert is_alert(error)
        assert not is_rejection(error)

    def test_chain_unavailable_is_neither(self):
        error = ChainUnavailable("x")
        assert not is_rejection(error)
        assert not is_alert(error)
