"""Slot ledger: invariant-preserving adjustments of a tour's reserved_slots."""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InsufficientCapacityError, NotFoundError, SlotLedgerCorruptionError
from ..core.observability import metrics_collector
from ..models.tour import Tour
from .booking_lifecycle import SlotEffect

logger = logging.getLogger(__name__)


class SlotLedger:
    """
    Atomic reserve/release of tour slots.

    Each operation is a single conditional UPDATE, so the capacity check and
    the increment cannot be split by a concurrent writer. The ledger never
    commits; it runs inside the caller's unit of work and a raised error
    rolls back everything done in that unit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def try_reserve(self, tour_id: UUID, count: int) -> Tour:
        """
        Reserve slots if the tour has room for them.

        Args:
            tour_id: Tour to reserve on
            count: Number of slots

        Returns:
            The tour with its refreshed counter

        Raises:
            NotFoundError: If the tour does not exist
            InsufficientCapacityError: If fewer than count slots are free
        """
        stmt = (
            update(Tour)
            .where(Tour.id == tour_id, Tour.reserved_slots + count <= Tour.capacity)
            .values(reserved_slots=Tour.reserved_slots + count)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        tour = await self._load(tour_id)

        if result.rowcount == 0:
            remaining = tour.capacity - tour.reserved_slots
            metrics_collector.record_capacity_rejection()
            logger.warning(
                "Slot reservation refused - insufficient capacity",
                extra={
                    "tour_id": str(tour_id),
                    "requested_slots": count,
                    "remaining_slots": remaining,
                }
            )
            raise InsufficientCapacityError(str(tour_id), requested=count, remaining=remaining)

        metrics_collector.record_slots("reserve", count)
        logger.debug(
            "Slots reserved",
            extra={
                "tour_id": str(tour_id),
                "count": count,
                "reserved_slots": tour.reserved_slots,
                "capacity": tour.capacity,
            }
        )
        return tour

    async def release(self, tour_id: UUID, count: int) -> Tour:
        """
        Give slots back to a tour.

        Raises:
            NotFoundError: If the tour does not exist
            SlotLedgerCorruptionError: If fewer than count slots are reserved
        """
        stmt = (
            update(Tour)
            .where(Tour.id == tour_id, Tour.reserved_slots >= count)
            .values(reserved_slots=Tour.reserved_slots - count)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        tour = await self._load(tour_id)

        if result.rowcount == 0:
            logger.error(
                "Slot release would underflow the ledger",
                extra={
                    "tour_id": str(tour_id),
                    "release_count": count,
                    "reserved_slots": tour.reserved_slots,
                }
            )
            raise SlotLedgerCorruptionError(str(tour_id), count, tour.reserved_slots)

        metrics_collector.record_slots("release", count)
        logger.debug(
            "Slots released",
            extra={
                "tour_id": str(tour_id),
                "count": count,
                "reserved_slots": tour.reserved_slots,
            }
        )
        return tour

    async def apply(self, effect: SlotEffect, tour_id: UUID, count: int) -> None:
        """Carry out the slot effect of a lifecycle transition."""
        if effect is SlotEffect.RESERVE:
            await self.try_reserve(tour_id, count)
        elif effect is SlotEffect.RELEASE:
            await self.release(tour_id, count)

    async def _load(self, tour_id: UUID) -> Tour:
        stmt = (
            select(Tour)
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        tour = result.scalar_one_or_none()
        if tour is None:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour
