"""
Settlement calculator.

Pure and deterministic: the same input always yields the same computation
and audit trail. Intermediate values keep full Decimal precision; only the
amounts that are materialised (recoup, each share, totals) are rounded
half-up to the money quantum.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from app.models.enums import ProfitModel
from app.services.settlement.chain_provider import ChainLink
from app.utils.exceptions import ComputationError, ValidationError
from app.utils.formatters import quantize_money


ZERO = Decimal("0")
ONE = Decimal("1")
PERCENTAGE_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class SettlementInput:
    """Everything the calculator needs for one tranche."""

    collected: Decimal
    prior_surplus: Decimal
    investment_owed: Decimal
    chain: Sequence[ChainLink]
    flat_split_seller_pct: Decimal
    cascade_retain_ratio: Decimal
    quantum: Decimal = Decimal("0.01")

    @property
    def seller(self) -> ChainLink:
        return self.chain[0]


@dataclass(frozen=True)
class CascadeShare:
    """Profit share of one upline member."""

    position: int
    level: str
    beneficiary_id: int
    percentage: Decimal | None
    amount: Decimal
    rationale: str


@dataclass(frozen=True)
class SettlementComputation:
    """Result of a settlement computation."""

    profit_model: ProfitModel
    seller_tier: int
    collected: Decimal
    prior_surplus: Decimal
    available: Decimal
    investment_owed: Decimal
    investment_recoup: Decimal
    gross_profit: Decimal
    carried_debt: Decimal
    seller_pct: Decimal
    upline_pct: Decimal
    seller_amount: Decimal
    expected_transfer: Decimal
    cascade: tuple[CascadeShare, ...] = ()
    audit_trail: list[dict[str, Any]] = field(default_factory=list)

    @property
    def cascade_total(self) -> Decimal:
        return sum((share.amount for share in self.cascade), ZERO)


def _audit(step: str, inputs: dict[str, Any], result: Any) -> dict[str, Any]:
    """Audit trail entry with Decimals stored as strings."""
    def plain(value: Any) -> Any:
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, list):
            return [plain(item) for item in value]
        if isinstance(value, dict):
            return {key: plain(item) for key, item in value.items()}
        return value

    return {"step": step, "inputs": plain(inputs), "result": plain(result)}


class SettlementCalculator:
    """Computes recoup, profit and its distribution for one tranche."""

    def compute(self, data: SettlementInput) -> SettlementComputation:
        """
        Run the six calculation steps.

        Args:
            data: Calculator input with a validated chain

        Returns:
            SettlementComputation with its audit trail

        Raises:
            ValidationError: negative collected or owed amounts
            ComputationError: if conservation does not hold
        """
        if data.collected < 0:
            raise ValidationError(
                "Collected amount cannot be negative", collected=data.collected
            )
        if data.investment_owed < 0:
            raise ValidationError(
                "Investment owed cannot be negative",
                investment_owed=data.investment_owed,
            )
        if len(data.chain) < 2:
            raise ComputationError(
                "Chain must contain the seller and a root",
                chain_length=len(data.chain),
            )

        q = data.quantum
        trail: list[dict[str, Any]] = []

        # 1. available
        available = data.collected + data.prior_surplus
        trail.append(_audit(
            "available",
            {"collected": data.collected, "prior_surplus": data.prior_surplus},
            available,
        ))

        # 2. investment recoup
        recoup = quantize_money(
            max(min(available, data.investment_owed), ZERO), q
        )
        after_recoup = available - recoup
        trail.append(_audit(
            "investment_recoup",
            {"available": available, "investment_owed": data.investment_owed},
            {"recoup": recoup, "available_after_recoup": after_recoup},
        ))

        # 3. gross profit / carried debt
        gross_profit = max(after_recoup, ZERO)
        carried_debt = min(after_recoup, ZERO)
        trail.append(_audit(
            "gross_profit",
            {"available_after_recoup": after_recoup},
            {"gross_profit": gross_profit, "carried_debt": carried_debt},
        ))

        # 4. distribution
        model = ProfitModel.for_tier(data.seller.tier)
        if model is ProfitModel.FLAT_SPLIT:
            seller_pct = data.flat_split_seller_pct
            seller_amount, cascade = self._flat_split(
                gross_profit, data.chain, seller_pct, q
            )
        else:
            seller_pct = data.cascade_retain_ratio
            seller_amount, cascade = self._cascade_split(
                gross_profit, data.chain, seller_pct, q
            )
        upline_pct = ONE - seller_pct
        trail.append(_audit(
            "distribution",
            {
                "profit_model": model.value,
                "gross_profit": gross_profit,
                "seller_pct": seller_pct,
                "chain": [
                    {"id": link.id, "tier": link.tier} for link in data.chain
                ],
            },
            {
                "seller_amount": seller_amount,
                "entries": [
                    {
                        "level": share.level,
                        "beneficiary_id": share.beneficiary_id,
                        "amount": share.amount,
                    }
                    for share in cascade
                ],
            },
        ))

        # 5. expected transfer
        cascade_total = sum((share.amount for share in cascade), ZERO)
        expected_transfer = recoup + cascade_total
        trail.append(_audit(
            "expected_transfer",
            {"investment_recoup": recoup, "cascade_total": cascade_total},
            expected_transfer,
        ))

        # 6. seller amount
        trail.append(_audit(
            "seller_amount",
            {"gross_profit": gross_profit, "cascade_total": cascade_total},
            seller_amount,
        ))

        computation = SettlementComputation(
            profit_model=model,
            seller_tier=data.seller.tier,
            collected=data.collected,
            prior_surplus=data.prior_surplus,
            available=available,
            investment_owed=data.investment_owed,
            investment_recoup=recoup,
            gross_profit=gross_profit,
            carried_debt=carried_debt,
            seller_pct=seller_pct,
            upline_pct=upline_pct,
            seller_amount=seller_amount,
            expected_transfer=expected_transfer,
            cascade=tuple(cascade),
            audit_trail=trail,
        )
        self._check_conservation(computation)
        return computation

    def _flat_split(
        self,
        gross_profit: Decimal,
        chain: Sequence[ChainLink],
        seller_pct: Decimal,
        quantum: Decimal,
    ) -> tuple[Decimal, list[CascadeShare]]:
        """Seller keeps seller_pct; the root takes the rest."""
        seller_amount = quantize_money(gross_profit * seller_pct, quantum)
        root = chain[-1]
        root_share = CascadeShare(
            position=1,
            level=root.level_label,
            beneficiary_id=root.id,
            percentage=ONE - seller_pct,
            amount=gross_profit - seller_amount,
            rationale=f"Flat split: root receives {ONE - seller_pct} of gross profit",
        )
        return seller_amount, [root_share]

    def _cascade_split(
        self,
        gross_profit: Decimal,
        chain: Sequence[ChainLink],
        ratio: Decimal,
        quantum: Decimal,
    ) -> tuple[Decimal, list[CascadeShare]]:
        """
        Halve (by ratio) the remaining profit at each hop up the chain.

        Returns:
            Seller's retained amount and one share per upline member,
            the root's share being the exact remainder
        """
        remaining = gross_profit
        fraction = ONE

        seller_amount = min(quantize_money(remaining * ratio, quantum), gross_profit)
        allocated = seller_amount
        remaining -= remaining * ratio
        fraction -= fraction * ratio

        shares: list[CascadeShare] = []
        for position, link in enumerate(chain[1:-1], start=1):
            amount = min(quantize_money(remaining * ratio, quantum), gross_profit - allocated)
            shares.append(CascadeShare(
                position=position,
                level=link.level_label,
                beneficiary_id=link.id,
                percentage=(fraction * ratio).quantize(PERCENTAGE_QUANTUM),
                amount=amount,
                rationale=(
                    f"Cascade: retains {ratio} of "
                    f"{quantize_money(remaining, quantum)}"
                ),
            ))
            allocated += amount
            remaining -= remaining * ratio
            fraction -= fraction * ratio

        root = chain[-1]
        shares.append(CascadeShare(
            position=len(chain) - 1,
            level=root.level_label,
            beneficiary_id=root.id,
            percentage=fraction.quantize(PERCENTAGE_QUANTUM),
            amount=gross_profit - allocated,
            rationale=(
                f"Cascade: root receives the remaining "
                f"{quantize_money(remaining, quantum)}"
            ),
        ))
        return seller_amount, shares

    def _check_conservation(self, computation: SettlementComputation) -> None:
        distributed = computation.seller_amount + computation.cascade_total
        if distributed != computation.gross_profit:
            raise ComputationError(
                "Distribution does not add up to gross profit",
                gross_profit=computation.gross_profit,
                distributed=distributed,
            )
        if any(share.amount < 0 for share in computation.cascade):
            raise ComputationError("Negative cascade share")

        accounted = (
            computation.expected_transfer
            + computation.seller_amount
            + computation.carried_debt
        )
        if accounted != computation.available:
            raise ComputationError(
                "Settlement does not conserve available money",
                available=computation.available,
                accounted=accounted,
            )
