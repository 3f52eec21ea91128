"""Wishlist service: tours a user saved for later."""

import logging
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.database import unit_of_work, utcnow
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..models.tour import Tour
from ..models.wishlist import WishlistItem

logger = logging.getLogger(__name__)


class WishlistService:
    """Service for wishlist operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, user_id: UUID, tour_id: UUID) -> WishlistItem:
        """
        Save a tour to the user's wishlist.

        Raises:
            NotFoundError: If the tour does not exist
            ConflictError: If the tour is already on the wishlist
        """
        try:
            async with unit_of_work(self.db):
                tour = await self.db.get(Tour, tour_id)
                if tour is None:
                    raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
                if await self._find(user_id, tour_id) is not None:
                    raise self._duplicate_error(tour_id)

                item = WishlistItem(user_id=user_id, tour_id=tour_id, created_at=utcnow())
                self.db.add(item)
                await self.db.flush()
                await self.db.refresh(item, ["tour"])
        except IntegrityError as e:
            raise self._duplicate_error(tour_id) from e

        logger.info("Tour added to wishlist", extra={"user_id": str(user_id), "tour_id": str(tour_id)})
        return item

    async def remove(self, user_id: UUID, tour_id: UUID) -> None:
        """
        Drop a tour from the user's wishlist.

        Raises:
            NotFoundError: If the tour is not on the wishlist
        """
        async with unit_of_work(self.db):
            item = await self._find(user_id, tour_id)
            if item is None:
                raise NotFoundError(
                    resource_type="wishlist_item",
                    resource_id=str(tour_id),
                    detail="Tour is not in your wishlist",
                )
            await self.db.delete(item)

        logger.info("Tour removed from wishlist", extra={"user_id": str(user_id), "tour_id": str(tour_id)})

    async def list_items(self, user_id: UUID) -> list[WishlistItem]:
        """The user's saved tours, most recently saved first."""
        stmt = (
            select(WishlistItem)
            .options(selectinload(WishlistItem.tour))
            .where(WishlistItem.user_id == user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.id)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def contains(self, user_id: UUID, tour_id: UUID) -> bool:
        return await self._find(user_id, tour_id) is not None

    async def count(self, user_id: UUID) -> int:
        return await self.db.scalar(
            select(func.count(WishlistItem.id)).where(WishlistItem.user_id == user_id)
        )

    async def status(self, user_id: UUID, tour_ids: list[UUID]) -> dict[UUID, bool]:
        """Whether each of tour_ids is on the user's wishlist."""
        stmt = select(WishlistItem.tour_id).where(
            WishlistItem.user_id == user_id,
            WishlistItem.tour_id.in_(tour_ids),
        )
        saved = set((await self.db.execute(stmt)).scalars().all())
        return {tour_id: tour_id in saved for tour_id in tour_ids}

    async def clear(self, user_id: UUID) -> int:
        """
        Empty the user's wishlist.

        Returns:
            Number of entries removed

        Raises:
            ValidationError: If the wishlist is already empty
        """
        async with unit_of_work(self.db):
            result = await self.db.execute(
                delete(WishlistItem)
                .where(WishlistItem.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ValidationError(detail="Wishlist is already empty")

        logger.info("Wishlist cleared", extra={"user_id": str(user_id), "removed": result.rowcount})
        return result.rowcount

    async def most_wishlisted(self, limit: int = 10) -> list[tuple[Tour, int]]:
        """Tours saved by the most users, with their save counts."""
        saves = func.count(WishlistItem.id)
        stmt = (
            select(Tour, saves)
            .join(WishlistItem, WishlistItem.tour_id == Tour.id)
            .group_by(Tour.id)
            .order_by(saves.desc(), Tour.id)
            .limit(limit)
        )
        return [(tour, count) for tour, count in (await self.db.execute(stmt)).all()]

    async def _find(self, user_id: UUID, tour_id: UUID):
        return await self.db.scalar(
            select(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.tour_id == tour_id)
        )

    @staticmethod
    def _duplicate_error(tour_id: UUID) -> ConflictError:
        return ConflictError(
            detail="Tour is already in your wishlist",
            conflicting_resource={"tour_id": str(tour_id)},
        )
