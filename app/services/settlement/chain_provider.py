"""
Recruitment chain access.

The engine never walks the recruitment tree live: it asks a provider for
the ordered ancestor list (seller first, root last) and validates that
list as a bounded sequence before any computation.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.seller_repository import SellerRepository
from app.utils.exceptions import ChainUnavailable, DataIntegrityError


@dataclass(frozen=True)
class ChainLink:
    """One member of an ancestor chain."""

    id: int
    tier: int

    @property
    def level_label(self) -> str:
        """Level label such as N3."""
        return f"N{self.tier}"


class RecruitmentChainProvider(Protocol):
    """Supplies seller-to-root ancestor chains."""

    async def chain_of(self, seller_id: int) -> list[ChainLink]:
        """
        Ordered ancestors from the seller (first) to the root (last).

        Raises:
            ChainUnavailable: if the chain cannot be fetched
        """
        ...


class SqlChainProvider:
    """Chain provider reading the sellers table with a recursive CTE."""

    def __init__(self, session: AsyncSession, max_depth: int) -> None:
        """
        Initialize provider.

        Args:
            session: Async database session
            max_depth: Longest valid chain; one extra hop is fetched so
                an over-depth chain is detectable
        """
        self.seller_repo = SellerRepository(session)
        self.max_depth = max_depth

    async def chain_of(self, seller_id: int) -> list[ChainLink]:
        try:
            rows = await self.seller_repo.get_ancestor_rows(
                seller_id, max_hops=self.max_depth
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to fetch recruitment chain for seller {seller_id}: {e}"
            )
            raise ChainUnavailable(
                "Recruitment chain could not be fetched", seller_id=seller_id
            ) from e

        return [ChainLink(id=row.id, tier=row.tier) for row in rows]


def validate_chain(
    chain: Sequence[ChainLink], seller_id: int, max_depth: int
) -> list[ChainLink]:
    """
    Check a fetched chain before it is used for a distribution.

    A valid chain starts at the seller, has no repeated members, is at most
    max_depth long, and its tiers step down by exactly one per hop until
    the root at tier 1. The seller itself must be at tier 2 or deeper.

    Args:
        chain: Chain as returned by the provider
        seller_id: Seller being settled
        max_depth: Longest valid chain

    Returns:
        The chain as a list

    Raises:
        DataIntegrityError: on any violation
    """
    links = list(chain)

    if not links:
        raise DataIntegrityError(
            "Recruitment chain is empty", seller_id=seller_id
        )
    if links[0].id != seller_id:
        raise DataIntegrityError(
            "Recruitment chain does not start at the seller",
            seller_id=seller_id,
            first_id=links[0].id,
        )

    seen: set[int] = set()
    for link in links:
        if link.id in seen:
            raise DataIntegrityError(
                "Cyclic recruitment chain", seller_id=seller_id, repeated_id=link.id
            )
        seen.add(link.id)

    if len(links) > max_depth:
        raise DataIntegrityError(
            "Recruitment chain exceeds maximum depth",
            seller_id=seller_id,
            max_depth=max_depth,
        )

    if links[0].tier < 2:
        raise DataIntegrityError(
            "Root seller cannot be settled", seller_id=seller_id
        )

    for upper, lower in zip(links[1:], links, strict=False):
        if upper.tier != lower.tier - 1:
            raise DataIntegrityError(
                "Broken recruitment chain tiers",
                seller_id=seller_id,
                member_id=upper.id,
                tier=upper.tier,
                expected_tier=lower.tier - 1,
            )

    if links[-1].tier != 1:
        raise DataIntegrityError(
            "Recruitment chain does not end at a root",
            seller_id=seller_id,
            last_id=links[-1].id,
        )

    return links
