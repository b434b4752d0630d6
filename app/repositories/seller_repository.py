"""
Seller repository.

Read-only access to the recruitment tree.
"""

from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.seller import Seller
from app.repositories.base import BaseRepository


@dataclass(frozen=True)
class ChainRow:
    """One row of an ancestor chain query."""

    id: int
    tier: int
    upline_id: int | None
    hop: int


class SellerRepository(BaseRepository[Seller]):
    """Seller repository with recruitment-chain queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize seller repository."""
        super().__init__(Seller, session)

    async def get_ancestor_rows(
        self, seller_id: int, max_hops: int
    ) -> list[ChainRow]:
        """
        Get seller and ancestors (recursive CTE).

        The recursion is bounded by max_hops so a corrupted, cyclic upline
        reference still terminates; callers detect the cycle from the rows.

        Args:
            seller_id: Starting seller
            max_hops: Maximum number of upline hops to follow

        Returns:
            Rows ordered from the seller (hop 0) toward the root
        """
        query = text("""
            WITH RECURSIVE seller_chain AS (
                SELECT
                    s.id,
                    s.tier,
                    s.upline_id,
                    0 AS hop
                FROM sellers s
                WHERE s.id = :seller_id

                UNION ALL

                SELECT
                    s.id,
                    s.tier,
                    s.upline_id,
                    sc.hop + 1 AS hop
                FROM sellers s
                INNER JOIN seller_chain sc ON s.id = sc.upline_id
                WHERE sc.hop < :max_hops
            )
            SELECT id, tier, upline_id, hop
            FROM seller_chain
            ORDER BY hop ASC
        """)

        result = await self.session.execute(
            query, {"seller_id": seller_id, "max_hops": max_hops}
        )
        return [
            ChainRow(
                id=row.id,
                tier=row.tier,
                upline_id=row.upline_id,
                hop=row.hop,
            )
            for row in result.all()
        ]
