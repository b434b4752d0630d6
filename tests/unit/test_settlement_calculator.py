"""
Unit tests for the settlement calculator.

Tests cover:
- Flat split (tier 2) and cascade split (tier 3+)
- Investment recoup and carried debt
- Conservation of money across rounding
- Audit trail structure
"""

from decimal import Decimal

import pytest

from app.models.enums import ProfitModel
from app.services.settlement.calculator import SettlementCalculator, SettlementInput
from app.services.settlement.chain_provider import ChainLink
from app.utils.exceptions import ComputationError, ValidationError


def make_chain(tier: int) -> list[ChainLink]:
    """Chain seller (id 100 + tier) down to root (id 101)."""
    return [ChainLink(id=100 + level, tier=level) for level in range(tier, 0, -1)]


def make_input(
    collected: str,
    tier: int,
    prior_surplus: str = "0",
    investment_owed: str = "0",
    quantum: str = "0.01",
) -> SettlementInput:
    return SettlementInput(
        collected=Decimal(collected),
        prior_surplus=Decimal(prior_surplus),
        investment_owed=Decimal(investment_owed),
        chain=make_chain(tier),
        flat_split_seller_pct=Decimal("0.60"),
        cascade_retain_ratio=Decimal("0.50"),
        quantum=Decimal(quantum),
    )


@pytest.fixture
def calculator():
    """Create SettlementCalculator instance."""
    return SettlementCalculator()


class TestFlatSplit:
    """Tier 2: fixed 60/40 split between seller and root."""

    def test_scenario_a(self, calculator):
        """100000 collected, 40000 owed: seller 36000, transfer 64000."""
        result = calculator.compute(
            make_input("100000", tier=2, investment_owed="40000")
        )

        assert result.profit_model is ProfitModel.FLAT_SPLIT
        assert result.investment_recoup == Decimal("40000")
        assert result.gross_profit == Decimal("60000")
        assert result.seller_amount == Decimal("36000")
        assert result.expected_transfer == Decimal("64000")
        assert len(result.cascade) == 1
        assert result.cascade[0].level == "N1"
        assert result.cascade[0].beneficiary_id == 101
        assert result.cascade[0].amount == Decimal("24000")

    def test_root_gets_exact_remainder_after_rounding(self, calculator):
        """Seller share is rounded half-up; root gets gross minus it."""
        result = calculator.compute(make_input("100.01", tier=2))

        # 100.01 * 0.60 = 60.006 -> 60.01
        assert result.seller_amount == Decimal("60.01")
        assert result.cascade[0].amount == Decimal("40.00")
        assert result.seller_amount + result.cascade_total == result.gross_profit

    def test_percentages_recorded(self, calculator):
        result = calculator.compute(make_input("1000", tier=2))

        assert result.seller_pct == Decimal("0.60")
        assert result.upline_pct == Decimal("0.40")
        assert result.cascade[0].percentage == Decimal("0.40")


class TestCascadeSplit:
    """Tier 3+: each hop retains half of what reaches it."""

    def test_scenario_b(self, calculator):
        """Tier 4, gross 80000: 40000 / 20000 / 10000 / 10000."""
        result = calculator.compute(make_input("80000", tier=4))

        assert result.profit_model is ProfitModel.CASCADE_SPLIT
        assert result.seller_amount == Decimal("40000")
        assert [share.amount for share in result.cascade] == [
            Decimal("20000"),
            Decimal("10000"),
            Decimal("10000"),
        ]
        assert [share.level for share in result.cascade] == ["N3", "N2", "N1"]
        assert [share.beneficiary_id for share in result.cascade] == [103, 102, 101]
        assert result.expected_transfer == Decimal("40000")

    def test_tier_3_root_takes_remaining_half(self, calculator):
        result = calculator.compute(make_input("1000", tier=3))

        assert result.seller_amount == Decimal("500")
        assert [share.amount for share in result.cascade] == [
            Decimal("250"),
            Decimal("250"),
        ]

    @pytest.mark.parametrize("tier", [3, 4, 5, 8, 12])
    @pytest.mark.parametrize("gross", ["0.01", "0.07", "1", "99.99", "12345.67", "80000"])
    def test_no_leakage(self, calculator, tier, gross):
        """Seller share plus all entries equals gross profit exactly."""
        result = calculator.compute(make_input(gross, tier=tier))

        assert result.seller_amount + result.cascade_total == Decimal(gross)
        assert all(share.amount >= 0 for share in result.cascade)
        assert len(result.cascade) == tier - 1

    def test_non_root_hops_halve_remaining(self, calculator):
        result = calculator.compute(make_input("64000", tier=6))

        amounts = [result.seller_amount] + [s.amount for s in result.cascade]
        assert amounts == [
            Decimal("32000"),
            Decimal("16000"),
            Decimal("8000"),
            Decimal("4000"),
            Decimal("2000"),
            Decimal("2000"),
        ]

    def test_percentages_are_fractions_of_gross(self, calculator):
        result = calculator.compute(make_input("80000", tier=4))

        assert [share.percentage for share in result.cascade] == [
            Decimal("0.250000"),
            Decimal("0.125000"),
            Decimal("0.125000"),
        ]


class TestRecoupAndDebt:
    """Investment recoup and negative availability."""

    def test_partial_recoup_leaves_no_profit(self, calculator):
        result = calculator.compute(
            make_input("30000", tier=2, investment_owed="40000")
        )

        assert result.investment_recoup == Decimal("30000")
        assert result.gross_profit == Decimal("0")
        assert result.seller_amount == Decimal("0")
        assert result.expected_transfer == Decimal("30000")
        assert result.carried_debt == Decimal("0")

    def test_scenario_c_debt_reduces_next_cycle(self, calculator):
        """A -4000 surplus from the previous cycle is taken from collected."""
        result = calculator.compute(
            make_input("50000", tier=2, prior_surplus="-4000")
        )

        assert result.available == Decimal("46000")
        assert result.gross_profit == Decimal("46000")
        assert result.seller_amount == Decimal("27600")
        assert result.expected_transfer == Decimal("18400")

    def test_positive_surplus_adds_to_available(self, calculator):
        result = calculator.compute(
            make_input("1000", tier=2, prior_surplus="500")
        )

        assert result.available == Decimal("1500")
        assert result.gross_profit == Decimal("1500")

    def test_negative_available_is_carried_as_debt(self, calculator):
        result = calculator.compute(
            make_input("1000", tier=3, prior_surplus="-3000", investment_owed="500")
        )

        assert result.investment_recoup == Decimal("0")
        assert result.gross_profit == Decimal("0")
        assert result.carried_debt == Decimal("-2000")
        assert result.expected_transfer == Decimal("0")
        assert result.seller_amount == Decimal("0")

    @pytest.mark.parametrize(
        "collected,prior,owed,tier",
        [
            ("100000", "0", "40000", 2),
            ("12345.67", "-234.56", "1000.01", 3),
            ("0", "-100", "50", 4),
            ("999.99", "0.01", "0", 7),
        ],
    )
    def test_conservation(self, calculator, collected, prior, owed, tier):
        """Transfer + seller share + carried debt equals collected + prior."""
        result = calculator.compute(
            make_input(collected, tier=tier, prior_surplus=prior, investment_owed=owed)
        )

        total = result.expected_transfer + result.seller_amount + result.carried_debt
        assert total == Decimal(collected) + Decimal(prior)

    def test_whole_unit_quantum(self, calculator):
        """Currencies without cents round shares to whole units."""
        result = calculator.compute(make_input("1001", tier=2, quantum="1"))

        # 1001 * 0.60 = 600.6 -> 601
        assert result.seller_amount == Decimal("601")
        assert result.cascade[0].amount == Decimal("400")


class TestAuditTrail:
    """Ordered, JSON-ready audit trail."""

    def test_six_steps_in_order(self, calculator):
        result = calculator.compute(
            make_input("100000", tier=2, investment_owed="40000")
        )

        assert [entry["step"] for entry in result.audit_trail] == [
            "available",
            "investment_recoup",
            "gross_profit",
            "distribution",
            "expected_transfer",
            "seller_amount",
        ]

    def test_decimals_stored_as_strings(self, calculator):
        result = calculator.compute(
            make_input("100000", tier=2, investment_owed="40000")
        )

        recoup_step = result.audit_trail[1]
        assert recoup_step["inputs"]["investment_owed"] == "40000"
        assert recoup_step["result"]["recoup"] == "40000.00"
        assert Decimal(result.audit_trail[4]["result"]) == Decimal("64000")

    def test_deterministic(self, calculator):
        data = make_input("12345.67", tier=5, prior_surplus="-12.34", investment_owed="999")

        assert calculator.compute(data) == calculator.compute(data)


class TestInputValidation:
    """Rejected inputs."""

    def test_negative_collected(self, calculator):
        with pytest.raises(ValidationError):
            calculator.compute(make_input("-1", tier=2))

    def test_negative_investment_owed(self, calculator):
        with pytest.raises(ValidationError):
            calculator.compute(make_input("100", tier=2, investment_owed="-1"))

    def test_chain_without_root(self, calculator):
        data = SettlementInput(
            collected=Decimal("100"),
            prior_surplus=Decimal("0"),
            investment_owed=Decimal("0"),
            chain=[ChainLink(id=1, tier=2)],
            flat_split_seller_pct=Decimal("0.60"),
            cascade_retain_ratio=Decimal("0.50"),
        )
        with pytest.raises(ComputationError):
            calculator.compute(data)
