"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for tests: SQLite, process-local locks, stub broker
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("USE_REDIS_LOCKS", "false")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.models import Base, Batch, Seller, Tranche, TrancheState
from app.utils.datetime_utils import utc_now


class Seeder:
    """Builds recruitment chains, batches and sales for tests."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def chain(self, tier: int, prefix: str = "S") -> list[int]:
        """
        Create a root and its descendants down to the given tier.

        Returns:
            Seller ids ordered seller first, root last
        """
        ids: list[int] = []
        upline_id = None
        for level in range(1, tier + 1):
            seller = Seller(
                name=f"{prefix}{level}", tier=level, upline_id=upline_id
            )
            self.session.add(seller)
            await self.session.flush()
            ids.append(seller.id)
            upline_id = seller.id
        await self.session.commit()
        return list(reversed(ids))

    async def add_seller(self, upline_id: int, tier: int, name: str) -> int:
        """Add one seller under an existing upline."""
        seller = Seller(name=name, tier=tier, upline_id=upline_id)
        self.session.add(seller)
        await self.session.commit()
        return seller.id

    async def batch(
        self,
        seller_id: int,
        house_investment: Decimal = Decimal("40000"),
        seller_investment: Decimal = Decimal("0"),
        tranche_units: tuple[int, ...] = (100,),
    ) -> tuple[int, list[int]]:
        """
        Create a batch whose first tranche is released.

        Returns:
            (batch id, tranche ids in order)
        """
        batch = Batch(
            seller_id=seller_id,
            unit_count=sum(tranche_units),
            unit_cost=Decimal("1000"),
            house_investment=house_investment,
            seller_investment=seller_investment,
        )
        self.session.add(batch)
        await self.session.flush()

        tranche_ids = []
        for number, units in enumerate(tranche_units, start=1):
            released = number == 1
            tranche = Tranche(
                batch_id=batch.id,
                seller_id=seller_id,
                number=number,
                assigned_units=units,
                delivered=units if released else 0,
                remaining=units if released else 0,
                collected_amount=Decimal("0"),
                state=TrancheState.RELEASED if released else TrancheState.PENDING,
                released_at=utc_now() if released else None,
            )
            self.session.add(tranche)
            await self.session.flush()
            tranche_ids.append(tranche.id)

        await self.session.commit()
        return batch.id, tranche_ids

    async def sell(
        self, tranche_id: int, units: int, amount: Decimal
    ) -> None:
        """Record sales on a tranche (what the sales side does)."""
        await self.session.execute(
            update(Tranche)
            .where(Tranche.id == tranche_id)
            .values(
                remaining=Tranche.remaining - units,
                collected_amount=Tranche.collected_amount + amount,
            )
        )
        await self.session.commit()


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    db_path = tmp_path / "settlement.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_maker):
    """Async database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def seeder(session_maker):
    """Seeder with its own session."""
    async with session_maker() as session:
        yield Seeder(session)
