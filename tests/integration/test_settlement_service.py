"""
Integration tests for the settlement service facade.

Tests cover:
- Generate/confirm returning records
- Record queries (get, pending, by seller, by batch)
- Summary counts and totals
- Message rendering from stored fields
- Calculation preview and stale pending report
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.models import Settlement, SettlementKind, SettlementState
from app.services.settlement_service import SettlementService
from app.utils.exceptions import SettlementNotFound, TrancheNotFound


@pytest.fixture
def service(session):
    """Settlement service on the test session."""
    return SettlementService(session)


@pytest.fixture
async def scenario(seeder):
    """
    Two sellers:
    - tier 2 (scenario A): 100000 collected, 40000 house investment
    - tier 4 (scenario B): 100000 collected, 20000 house investment
    """
    flat_chain = await seeder.chain(2, prefix="F")
    flat_batch, flat_tranches = await seeder.batch(
        flat_chain[0], house_investment=Decimal("40000"), tranche_units=(100, 100)
    )
    await seeder.sell(flat_tranches[0], 90, Decimal("100000"))

    cascade_chain = await seeder.chain(4, prefix="K")
    _, cascade_tranches = await seeder.batch(
        cascade_chain[0], house_investment=Decimal("20000")
    )
    await seeder.sell(cascade_tranches[0], 100, Decimal("100000"))

    return {
        "flat_seller": flat_chain[0],
        "flat_batch": flat_batch,
        "flat_tranche": flat_tranches[0],
        "cascade_seller": cascade_chain[0],
        "cascade_tranche": cascade_tranches[0],
    }


class TestCommands:
    """Generation and confirmation through the facade."""

    @pytest.mark.asyncio
    async def test_generate_and_confirm(self, service, scenario):
        pending = await service.generate_settlement(scenario["flat_tranche"])

        confirmed = await service.confirm_settlement(
            pending.id, Decimal("60000"), note="Short by 4000"
        )

        assert pending.state == SettlementState.PENDING
        assert pending.expected_transfer == Decimal("64000")
        assert pending.kind == SettlementKind.INVESTMENT
        assert confirmed.state == SettlementState.CONFIRMED
        assert confirmed.actual_transfer == Decimal("60000")
        assert confirmed.resulting_surplus == Decimal("-4000")
        assert confirmed.note == "Short by 4000"

    @pytest.mark.asyncio
    async def test_record_carries_cascade(self, service, scenario):
        record = await service.generate_settlement(scenario["cascade_tranche"])

        assert [share.amount for share in record.cascade] == [
            Decimal("20000"),
            Decimal("10000"),
            Decimal("10000"),
        ]
        assert record.seller_amount + sum(s.amount for s in record.cascade) == (
            record.gross_profit
        )
        assert [entry["step"] for entry in record.audit_trail] == [
            "available",
            "investment_recoup",
            "gross_profit",
            "distribution",
            "expected_transfer",
            "seller_amount",
        ]


class TestQueries:
    """Read side."""

    @pytest.mark.asyncio
    async def test_get_settlement(self, service, scenario):
        created = await service.generate_settlement(scenario["flat_tranche"])

        record = await service.get_settlement(created.id)

        assert record.id == created.id
        assert record.seller_id == scenario["flat_seller"]

    @pytest.mark.asyncio
    async def test_get_unknown(self, service):
        with pytest.raises(SettlementNotFound):
            await service.get_settlement(999)

    @pytest.mark.asyncio
    async def test_list_pending_oldest_first(self, service, scenario):
        first = await service.generate_settlement(scenario["flat_tranche"])
        second = await service.generate_settlement(scenario["cascade_tranche"])

        pending = await service.list_pending()

        assert [r.id for r in pending] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_list_pending_paginated(self, service, scenario):
        first = await service.generate_settlement(scenario["flat_tranche"])
        second = await service.generate_settlement(scenario["cascade_tranche"])

        first_page = await service.list_pending(limit=1)
        second_page = await service.list_pending(limit=1, offset=1)
        past_end = await service.list_pending(limit=1, offset=2)

        assert [r.id for r in first_page] == [first.id]
        assert [r.id for r in second_page] == [second.id]
        assert past_end == []

    @pytest.mark.asyncio
    async def test_confirmed_leaves_pending_list(self, service, scenario):
        record = await service.generate_settlement(scenario["flat_tranche"])
        await service.confirm_settlement(record.id, Decimal("64000"))

        assert await service.list_pending() == []

    @pytest.mark.asyncio
    async def test_list_by_seller_and_batch(self, service, scenario):
        record = await service.generate_settlement(scenario["flat_tranche"])
        await service.generate_settlement(scenario["cascade_tranche"])

        by_seller = await service.list_by_seller(scenario["flat_seller"])
        by_batch = await service.list_by_batch(scenario["flat_batch"])
        confirmed_only = await service.list_by_seller(
            scenario["flat_seller"], state=SettlementState.CONFIRMED
        )

        assert [r.id for r in by_seller] == [record.id]
        assert [r.id for r in by_batch] == [record.id]
        assert confirmed_only == []


class TestSummary:
    """Aggregate counts and totals."""

    @pytest.mark.asyncio
    async def test_counts_and_totals(self, service, scenario):
        flat = await service.generate_settlement(scenario["flat_tranche"])
        await service.generate_settlement(scenario["cascade_tranche"])
        await service.confirm_settlement(flat.id, Decimal("60000"))

        summary = await service.summary()

        assert summary.counts == {"pending": 1, "confirmed": 1, "void": 0}
        assert summary.pending_expected_total == Decimal("60000")
        assert summary.confirmed_expected_total == Decimal("64000")
        assert summary.received_total == Decimal("60000")
        assert summary.recouped_total == Decimal("40000")
        assert summary.resulting_surplus_total == Decimal("-4000")
        assert summary.shortfall_total == Decimal("4000")

    @pytest.mark.asyncio
    async def test_pending_info(self, service, scenario):
        record = await service.generate_settlement(scenario["cascade_tranche"])

        summary = await service.summary(now=record.created_at + timedelta(hours=3))

        assert len(summary.pending) == 1
        info = summary.pending[0]
        assert info.settlement_id == record.id
        assert info.seller_name == "K4"
        assert info.tranche_number == 1
        assert info.expected_transfer == Decimal("60000")
        assert info.stock_ratio == Decimal("0")
        assert info.waiting == "3 hours"

    @pytest.mark.asyncio
    async def test_void_counted(self, service, scenario):
        await service.generate_settlement(scenario["flat_tranche"])
        await service.generate_settlement(scenario["flat_tranche"], force=True)

        summary = await service.summary()

        assert summary.counts["void"] == 1
        assert summary.counts["pending"] == 1


class TestRenderMessage:
    """Message text from stored fields."""

    @pytest.mark.asyncio
    async def test_quotes_stored_fields(self, service, scenario):
        record = await service.generate_settlement(scenario["flat_tranche"])

        text = await service.render_message(record.id)

        assert f"Cuadre #{record.id}" in text
        assert "Vendedor: F2 (N2)" in text
        assert "Recaudado: $100,000.00" in text
        assert "Recuperación de inversión: $40,000.00" in text
        assert "Ganancia bruta: $60,000.00" in text
        assert "N1 F1: $24,000.00" in text
        assert "Para el vendedor: $36,000.00" in text
        assert "Debe transferir: $64,000.00" in text

    @pytest.mark.asyncio
    async def test_deterministic(self, service, scenario):
        record = await service.generate_settlement(scenario["cascade_tranche"])

        assert await service.render_message(record.id) == (
            await service.render_message(record.id)
        )

    @pytest.mark.asyncio
    async def test_confirmed_message(self, service, scenario):
        record = await service.generate_settlement(scenario["flat_tranche"])
        await service.confirm_settlement(record.id, Decimal("60000"))

        text = await service.render_message(record.id)

        assert "Transferido: $60,000.00" in text
        assert "Excedente resultante: -$4,000.00" in text


class TestPreviewAndStale:
    """Supplementary read operations."""

    @pytest.mark.asyncio
    async def test_preview_persists_nothing(self, service, session, scenario):
        computation = await service.calculation_preview(scenario["flat_tranche"])

        assert computation.expected_transfer == Decimal("64000")
        assert computation.seller_amount == Decimal("36000")
        count = await session.execute(select(func.count()).select_from(Settlement))
        assert count.scalar() == 0

    @pytest.mark.asyncio
    async def test_preview_unknown_tranche(self, service):
        with pytest.raises(TrancheNotFound):
            await service.calculation_preview(31337)

    @pytest.mark.asyncio
    async def test_stale_pending(self, service, scenario):
        record = await service.generate_settlement(scenario["flat_tranche"])

        assert [r.id for r in await service.stale_pending(timedelta(0))] == [record.id]
        assert await service.stale_pending(timedelta(hours=1)) == []
