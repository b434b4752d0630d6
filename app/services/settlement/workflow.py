"""
Settlement workflow.

State machine for settlements and their tranches:

    settlement: pending -> confirmed | void
    tranche:    released -> in_settlement -> settled

Creation is serialized per tranche and per seller, confirmation per seller.
Each operation runs as one transaction; on any failure nothing is persisted.
"""

from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.models.enums import SettlementState, TrancheState
from app.models.settlement import CascadeEntry, Settlement
from app.models.tranche import Tranche
from app.repositories.batch_repository import BatchRepository
from app.repositories.settlement_repository import SettlementRepository
from app.repositories.tranche_repository import TrancheRepository
from app.services.base_service import BaseService, transaction
from app.services.settlement.calculator import (
    SettlementCalculator,
    SettlementComputation,
    SettlementInput,
)
from app.services.settlement.chain_provider import (
    RecruitmentChainProvider,
    SqlChainProvider,
    validate_chain,
)
from app.services.settlement.ledger import SurplusLedger
from app.utils.datetime_utils import utc_now
from app.utils.distributed_lock import DistributedLock, get_distributed_lock
from app.utils.exceptions import (
    AlreadyConfirmed,
    AlreadySettled,
    AlreadyVoid,
    DataIntegrityError,
    InvalidTrancheState,
    LockNotAcquired,
    NoEligibleStock,
    SettlementNotFound,
    TrancheNotFound,
    ValidationError,
)
from app.utils.formatters import quantize_money


SETTLEABLE_TRANCHE_STATES = (
    TrancheState.RELEASED.value,
    TrancheState.IN_SETTLEMENT.value,
)


def tranche_lock_key(tranche_id: int) -> str:
    return f"settlement:tranche:{tranche_id}"


def seller_lock_key(seller_id: int) -> str:
    return f"settlement:seller:{seller_id}"


class SettlementWorkflow(BaseService):
    """Creates and confirms settlements."""

    def __init__(
        self,
        session: AsyncSession,
        chain_provider: RecruitmentChainProvider | None = None,
        lock: DistributedLock | None = None,
        calculator: SettlementCalculator | None = None,
    ) -> None:
        """
        Initialize workflow.

        Args:
            session: Async database session
            chain_provider: Ancestor chain source (SQL by default)
            lock: Lock implementation (from settings by default)
            calculator: Calculator instance
        """
        super().__init__(session)
        self.chain_provider = chain_provider or SqlChainProvider(
            session, settings.max_chain_depth
        )
        self.lock = lock or get_distributed_lock()
        self.calculator = calculator or SettlementCalculator()
        self.tranche_repo = TrancheRepository(session)
        self.batch_repo = BatchRepository(session)
        self.settlement_repo = SettlementRepository(session)
        self.ledger = SurplusLedger(session)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def create(self, tranche_id: int, force: bool = False) -> Settlement:
        """
        Create the pending settlement of a tranche.

        Args:
            tranche_id: Tranche to settle
            force: Void an existing pending settlement and skip the
                stock-ratio check

        Returns:
            The new pending settlement

        Raises:
            TrancheNotFound, InvalidTrancheState, NoEligibleStock,
            AlreadySettled, LockNotAcquired, DataIntegrityError,
            ChainUnavailable, ComputationError
        """
        async with self.lock.lock(tranche_lock_key(tranche_id)) as acquired:
            if not acquired:
                raise LockNotAcquired(
                    "Tranche is being settled by another worker",
                    tranche_id=tranche_id,
                )

            seller_id = await self.tranche_repo.get_seller_id(tranche_id)
            if seller_id is None:
                raise TrancheNotFound("Tranche not found", tranche_id=tranche_id)

            # Tranche first, then seller: the surplus read must not
            # interleave with another create or confirm of the same seller
            seller_key = seller_lock_key(seller_id)
            async with self.lock.lock(seller_key) as seller_acquired:
                if not seller_acquired:
                    raise LockNotAcquired(
                        "Seller surplus is locked by another worker",
                        tranche_id=tranche_id,
                        seller_id=seller_id,
                    )
                return await self._create_locked(tranche_id, force)

    @transaction
    async def _create_locked(self, tranche_id: int, force: bool) -> Settlement:
        tranche = await self.tranche_repo.get_for_update(tranche_id)
        if tranche is None:
            raise TrancheNotFound("Tranche not found", tranche_id=tranche_id)

        if tranche.state not in SETTLEABLE_TRANCHE_STATES:
            raise InvalidTrancheState(
                f"Tranche in state {tranche.state} cannot be settled",
                tranche_id=tranche_id,
                state=tranche.state,
            )

        existing = await self.settlement_repo.get_pending_for_tranche(tranche_id)
        if existing is not None and not force:
            raise AlreadySettled(
                "Tranche already has a pending settlement",
                tranche_id=tranche_id,
                settlement_id=existing.id,
            )

        if not force:
            await self._check_eligibility(tranche)

        computation = await self.compute_for_tranche(
            tranche,
            exclude_settlement_id=existing.id if existing else None,
        )

        now = utc_now()
        if existing is not None:
            voided = await self.settlement_repo.transition_state(
                existing.id,
                SettlementState.PENDING,
                SettlementState.VOID,
                voided_at=now,
            )
            if not voided:
                raise AlreadySettled(
                    "Pending settlement changed concurrently",
                    settlement_id=existing.id,
                )

        settlement = self._build_settlement(tranche, computation)
        settlement.created_at = now
        self.session.add(settlement)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise AlreadySettled(
                "Tranche already has a pending settlement",
                tranche_id=tranche_id,
            ) from e

        if existing is not None:
            existing.superseded_by_id = settlement.id
            await self.session.flush()
            self.logger.info(
                f"Settlement {existing.id} voided, superseded by {settlement.id}"
            )

        moved = await self.tranche_repo.transition_state(
            tranche.id,
            SETTLEABLE_TRANCHE_STATES,
            TrancheState.IN_SETTLEMENT,
        )
        if not moved:
            raise InvalidTrancheState(
                "Tranche state changed concurrently", tranche_id=tranche_id
            )

        self.logger.info(
            f"Settlement {settlement.id} created for tranche {tranche_id}: "
            f"expected transfer {settlement.expected_transfer}",
            extra={
                "settlement_id": settlement.id,
                "tranche_id": tranche_id,
                "seller_id": tranche.seller_id,
                "forced": force,
            },
        )
        return settlement

    async def _check_eligibility(self, tranche: Tranche) -> None:
        stock = await self.tranche_repo.get_stock(tranche.id)
        if stock is None or stock.delivered == 0:
            raise NoEligibleStock(
                "Tranche has no delivered stock", tranche_id=tranche.id
            )
        ratio = Decimal(stock.remaining) / Decimal(stock.delivered)
        if ratio > settings.settlement_trigger_ratio:
            raise NoEligibleStock(
                "Remaining stock is above the settlement threshold",
                tranche_id=tranche.id,
                ratio=ratio,
                threshold=settings.settlement_trigger_ratio,
            )

    async def compute_for_tranche(
        self,
        tranche: Tranche,
        exclude_settlement_id: int | None = None,
    ) -> SettlementComputation:
        """
        Gather chain, investment and surplus, then run the calculator.

        Nothing is written.

        Args:
            tranche: Tranche to compute
            exclude_settlement_id: Pending settlement being replaced, whose
                surplus reservation must not count

        Returns:
            SettlementComputation
        """
        chain = validate_chain(
            await self.chain_provider.chain_of(tranche.seller_id),
            tranche.seller_id,
            settings.max_chain_depth,
        )
        investment_owed = await self._investment_owed(tranche.batch_id)

        prior_surplus = await self.ledger.available(
            tranche.seller_id, exclude_settlement_id
        )

        return self.calculator.compute(SettlementInput(
            collected=tranche.collected_amount,
            prior_surplus=prior_surplus,
            investment_owed=investment_owed,
            chain=chain,
            flat_split_seller_pct=settings.flat_split_seller_pct,
            cascade_retain_ratio=settings.cascade_retain_ratio,
            quantum=settings.money_quantum,
        ))

    async def _investment_owed(self, batch_id: int) -> Decimal:
        """House investment of the batch not yet recouped."""
        investment = await self.batch_repo.get_investment(batch_id)
        if investment is None:
            raise DataIntegrityError(
                "Investment data missing for batch", batch_id=batch_id
            )
        if investment.house_amount < 0 or investment.seller_amount < 0:
            raise DataIntegrityError(
                "Negative investment data for batch", batch_id=batch_id
            )
        recouped = await self.settlement_repo.sum_confirmed_recoup(batch_id)
        return max(investment.house_amount - recouped, Decimal("0"))

    def _build_settlement(
        self, tranche: Tranche, computation: SettlementComputation
    ) -> Settlement:
        return Settlement(
            tranche_id=tranche.id,
            batch_id=tranche.batch_id,
            seller_id=tranche.seller_id,
            state=SettlementState.PENDING,
            profit_model=computation.profit_model.value,
            seller_tier=computation.seller_tier,
            collected=computation.collected,
            prior_surplus=computation.prior_surplus,
            available=computation.available,
            investment_owed=computation.investment_owed,
            investment_recoup=computation.investment_recoup,
            gross_profit=computation.gross_profit,
            carried_debt=computation.carried_debt,
            seller_pct=computation.seller_pct,
            upline_pct=computation.upline_pct,
            expected_transfer=computation.expected_transfer,
            seller_amount=computation.seller_amount,
            audit_trail=computation.audit_trail,
            cascade_entries=[
                CascadeEntry(
                    position=share.position,
                    level=share.level,
                    beneficiary_id=share.beneficiary_id,
                    percentage=share.percentage,
                    amount=share.amount,
                    rationale=share.rationale,
                )
                for share in computation.cascade
            ],
        )

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------

    async def confirm(
        self,
        settlement_id: int,
        actual_amount: Decimal,
        note: str | None = None,
    ) -> Settlement:
        """
        Record the money actually received for a pending settlement.

        Args:
            settlement_id: Settlement ID
            actual_amount: Amount received (>= 0)
            note: Optional operator note

        Returns:
            The confirmed settlement

        Raises:
            ValidationError, SettlementNotFound, AlreadyConfirmed,
            AlreadyVoid, LockNotAcquired
        """
        if not isinstance(actual_amount, Decimal):
            raise ValidationError(
                "Actual amount must be a Decimal", actual_amount=actual_amount
            )
        if not actual_amount.is_finite() or actual_amount < 0:
            raise ValidationError(
                "Actual amount must be a non-negative number",
                actual_amount=actual_amount,
            )
        actual_amount = quantize_money(actual_amount, settings.money_quantum)

        settlement = await self.settlement_repo.get_by_id(settlement_id)
        if settlement is None:
            raise SettlementNotFound(
                "Settlement not found", settlement_id=settlement_id
            )

        async with self.lock.lock(seller_lock_key(settlement.seller_id)) as acquired:
            if not acquired:
                raise LockNotAcquired(
                    "Seller settlements are being confirmed by another worker",
                    seller_id=settlement.seller_id,
                )
            return await self._confirm_locked(settlement_id, actual_amount, note)

    @transaction
    async def _confirm_locked(
        self, settlement_id: int, actual_amount: Decimal, note: str | None
    ) -> Settlement:
        settlement = await self.settlement_repo.get_for_update(settlement_id)
        if settlement is None:
            raise SettlementNotFound(
                "Settlement not found", settlement_id=settlement_id
            )
        self._require_pending(settlement)

        resulting_surplus = (
            actual_amount - settlement.expected_transfer + settlement.carried_debt
        )
        now = utc_now()

        confirmed = await self.settlement_repo.transition_state(
            settlement.id,
            SettlementState.PENDING,
            SettlementState.CONFIRMED,
            actual_transfer=actual_amount,
            resulting_surplus=resulting_surplus,
            note=note,
            confirmed_at=now,
        )
        if not confirmed:
            current = await self.settlement_repo.get_for_update(settlement_id)
            self._require_pending(current)
            raise AlreadyConfirmed(
                "Settlement changed concurrently", settlement_id=settlement_id
            )

        # The prior surplus was consumed by this cycle
        delta = resulting_surplus - settlement.prior_surplus
        await self.ledger.apply(settlement.seller_id, settlement.id, delta)

        settled = await self.tranche_repo.transition_state(
            settlement.tranche_id,
            (TrancheState.IN_SETTLEMENT.value,),
            TrancheState.SETTLED,
            settled_at=now,
        )
        if not settled:
            raise InvalidTrancheState(
                "Tranche is not in settlement",
                tranche_id=settlement.tranche_id,
            )

        await self._advance_batch(settlement.batch_id)

        self.logger.info(
            f"Settlement {settlement.id} confirmed: received {actual_amount}, "
            f"expected {settlement.expected_transfer}, "
            f"resulting surplus {resulting_surplus}",
            extra={
                "settlement_id": settlement.id,
                "seller_id": settlement.seller_id,
                "delta": str(delta),
            },
        )
        return settlement

    def _require_pending(self, settlement: Settlement | None) -> None:
        if settlement is None:
            raise SettlementNotFound("Settlement not found")
        if settlement.state == SettlementState.CONFIRMED:
            raise AlreadyConfirmed(
                "Settlement already confirmed", settlement_id=settlement.id
            )
        if settlement.state == SettlementState.VOID:
            raise AlreadyVoid(
                "Settlement was voided", settlement_id=settlement.id
            )

    async def _advance_batch(self, batch_id: int) -> None:
        """Release the next pending tranche, or complete the batch."""
        tranches = await self.tranche_repo.list_by_batch(batch_id)

        next_tranche = next(
            (t for t in tranches if t.state == TrancheState.PENDING), None
        )
        if next_tranche is not None:
            released = await self.tranche_repo.transition_state(
                next_tranche.id,
                (TrancheState.PENDING.value,),
                TrancheState.RELEASED,
                delivered=next_tranche.assigned_units,
                remaining=next_tranche.assigned_units,
                released_at=utc_now(),
            )
            if released:
                self.logger.info(
                    f"Tranche {next_tranche.number} of batch {batch_id} released"
                )

        if all(t.state == TrancheState.SETTLED for t in tranches):
            if await self.batch_repo.mark_completed(batch_id):
                self.logger.info(f"Batch {batch_id} completed")
