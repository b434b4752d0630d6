"""
Integration tests for settlement trigger detection.

Tests cover:
- Threshold detection (inclusive boundary, unreleased and open tranches)
- Generation errors
- Sweeps in alert and auto-generate modes
- Non-overlapping sweeps
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from app.config.settings import settings
from app.models import Seller, Settlement, SettlementState
from app.services.settlement.query_manager import SettlementRecord
from app.services.settlement.trigger_detector import SWEEP_LOCK_KEY, TriggerDetector
from app.utils.distributed_lock import DistributedLock
from app.utils.exceptions import AlreadySettled, NoEligibleStock, TrancheNotFound


@pytest.fixture
def lock():
    """Process-local lock shared by detector and test."""
    return DistributedLock()


@pytest.fixture
def detector(session, lock):
    """Trigger detector on the SQL chain provider."""
    return TriggerDetector(session, lock=lock)


@pytest.fixture
async def tranches(seeder):
    """
    One tier-2 seller with three batches:
    - depleted: 85% sold (eligible)
    - boundary: exactly 80% sold (eligible)
    - fresh: 50% sold (not eligible)
    """
    chain = await seeder.chain(2)
    seller_id = chain[0]

    _, depleted = await seeder.batch(seller_id, tranche_units=(100, 100))
    _, boundary = await seeder.batch(seller_id, tranche_units=(50,))
    _, fresh = await seeder.batch(seller_id, tranche_units=(100,))
    await seeder.sell(depleted[0], 85, Decimal("85000"))
    await seeder.sell(boundary[0], 40, Decimal("40000"))
    await seeder.sell(fresh[0], 50, Decimal("50000"))

    return {
        "seller_id": seller_id,
        "depleted": depleted[0],
        "unreleased": depleted[1],
        "boundary": boundary[0],
        "fresh": fresh[0],
    }


class TestDetectEligible:
    """Threshold scan."""

    @pytest.mark.asyncio
    async def test_at_or_below_threshold(self, detector, tranches):
        eligible = await detector.detect_eligible()

        assert eligible == [tranches["depleted"], tranches["boundary"]]

    @pytest.mark.asyncio
    async def test_open_settlement_excluded(self, detector, tranches):
        await detector.generate(tranches["depleted"])

        eligible = await detector.detect_eligible()

        assert eligible == [tranches["boundary"]]

    @pytest.mark.asyncio
    async def test_threshold_from_settings(self, detector, tranches, monkeypatch):
        monkeypatch.setattr(settings, "settlement_trigger_ratio", Decimal("0.50"))

        eligible = await detector.detect_eligible()

        assert tranches["fresh"] in eligible


class TestGenerate:
    """Generation through the detector."""

    @pytest.mark.asyncio
    async def test_returns_record(self, detector, tranches):
        record = await detector.generate(tranches["depleted"])

        assert isinstance(record, SettlementRecord)
        assert record.tranche_id == tranches["depleted"]
        assert record.state == SettlementState.PENDING

    @pytest.mark.asyncio
    async def test_existing_pending_not_forced(self, detector, tranches):
        await detector.generate(tranches["depleted"])

        with pytest.raises(AlreadySettled) as exc_info:
            await detector.generate(tranches["depleted"])

        assert exc_info.value.code == "ALREADY_SETTLED"

    @pytest.mark.asyncio
    async def test_forced_replaces_pending(self, detector, session, tranches):
        first = await detector.generate(tranches["depleted"])

        second = await detector.generate(tranches["depleted"], force=True)

        voided = await session.get(Settlement, first.id)
        await session.refresh(voided)
        assert voided.state == SettlementState.VOID
        assert voided.superseded_by_id == second.id

    @pytest.mark.asyncio
    async def test_above_threshold(self, detector, tranches):
        with pytest.raises(NoEligibleStock):
            await detector.generate(tranches["fresh"])

    @pytest.mark.asyncio
    async def test_unknown_tranche(self, detector):
        with pytest.raises(TrancheNotFound):
            await detector.generate(4242)


class TestSweep:
    """Periodic detection pass."""

    @pytest.mark.asyncio
    async def test_alert_mode_generates_nothing(
        self, detector, session, tranches, monkeypatch
    ):
        monkeypatch.setattr(settings, "settlement_auto_generate", False)

        report = await detector.sweep()

        assert not report.skipped
        assert report.candidates == [tranches["depleted"], tranches["boundary"]]
        assert report.generated == []
        count = await session.execute(select(func.count()).select_from(Settlement))
        assert count.scalar() == 0

    @pytest.mark.asyncio
    async def test_auto_generate(self, detector, tranches, monkeypatch):
        monkeypatch.setattr(settings, "settlement_auto_generate", True)

        report = await detector.sweep()

        assert len(report.generated) == 2
        assert not report.has_failures
        assert await detector.detect_eligible() == []

    @pytest.mark.asyncio
    async def test_failure_recorded_and_sweep_continues(
        self, detector, seeder, session, tranches, monkeypatch
    ):
        monkeypatch.setattr(settings, "settlement_auto_generate", True)
        # Seller whose upline points back at it
        chain = await seeder.chain(3, prefix="C")
        await session.execute(
            update(Seller).where(Seller.id == chain[1]).values(upline_id=chain[0])
        )
        await session.commit()
        _, broken = await seeder.batch(chain[0], tranche_units=(10,))
        await seeder.sell(broken[0], 10, Decimal("10000"))

        report = await detector.sweep()

        assert report.failed == {broken[0]: "DATA_INTEGRITY"}
        assert len(report.generated) == 2

    @pytest.mark.asyncio
    async def test_overlapping_sweep_skipped(self, detector, lock, tranches):
        async with lock.lock(SWEEP_LOCK_KEY, blocking=False) as acquired:
            assert acquired
            report = await detector.sweep()

        assert report.skipped
        assert report.candidates == []

    @pytest.mark.asyncio
    async def test_no_candidates(self, detector, seeder):
        chain = await seeder.chain(2)
        await seeder.batch(chain[0])

        report = await detector.sweep()

        assert report.candidates == []
        assert not report.skipped
