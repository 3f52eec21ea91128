"""Tour service for business logic operations."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import as_naive_utc, unit_of_work, utcnow
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..models.booking import Booking
from ..models.review import Review
from ..models.tour import Tour
from ..schemas.tour import CreateTourRequest, SearchToursRequest, UpdateTourRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingSummary:
    review_count: int = 0
    average_rating: Optional[float] = None


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_tour(self, provider_id: UUID, request: CreateTourRequest) -> Tour:
        """
        Create a new tour offered by the caller.

        Args:
            provider_id: User creating the tour
            request: Tour creation request

        Returns:
            Created tour entity

        Raises:
            ValidationError: If the price is not in the configured payment currency
        """
        self._check_currency(request.price.currency)
        now = utcnow()
        tour = Tour(
            provider_id=provider_id,
            name=request.name,
            description=request.description,
            location=request.location,
            start_date=as_naive_utc(request.start_date),
            end_date=as_naive_utc(request.end_date),
            price_amount=request.price.amount,
            price_currency=request.price.currency,
            capacity=request.capacity,
            reserved_slots=0,
            created_at=now,
            updated_at=now,
        )

        async with unit_of_work(self.db):
            self.db.add(tour)
            await self.db.flush()

        logger.info(
            "Tour created successfully",
            extra={
                "tour_id": str(tour.id),
                "provider_id": str(provider_id),
                "capacity": tour.capacity,
            }
        )
        return tour

    async def get_tour_by_id(self, tour_id: UUID) -> Optional[Tour]:
        """
        Get tour by ID.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour if found, None otherwise
        """
        stmt = (
            select(Tour)
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: UUID) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": str(tour_id)}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour

    async def search_tours(self, request: SearchToursRequest) -> tuple[list[Tour], Optional[str]]:
        """
        Search tours with filters and cursor pagination.

        Args:
            request: Search filters and page parameters

        Returns:
            The page of tours and the cursor of the next page, if any
        """
        stmt = select(Tour)

        if request.search:
            pattern = f"%{request.search.lower()}%"
            stmt = stmt.where(or_(
                func.lower(Tour.name).like(pattern),
                func.lower(Tour.description).like(pattern),
                func.lower(Tour.location).like(pattern),
            ))

        if request.location:
            stmt = stmt.where(func.lower(Tour.location).like(f"%{request.location.lower()}%"))

        if request.min_price is not None:
            stmt = stmt.where(Tour.price_amount >= request.min_price)
        if request.max_price is not None:
            stmt = stmt.where(Tour.price_amount <= request.max_price)

        if request.date_from:
            stmt = stmt.where(Tour.start_date >= as_naive_utc(request.date_from))
        if request.date_to:
            stmt = stmt.where(Tour.end_date <= as_naive_utc(request.date_to))

        if request.available_only:
            stmt = stmt.where(Tour.reserved_slots < Tour.capacity)
        if request.upcoming_only:
            stmt = stmt.where(Tour.start_date > utcnow())

        if request.cursor:
            try:
                stmt = stmt.where(Tour.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid cursor provided in tour search",
                    extra={"cursor": request.cursor}
                )

        # Order by ID for consistent pagination, fetching one extra row to detect a next page
        stmt = stmt.order_by(Tour.id).limit(request.limit + 1)

        result = await self.db.execute(stmt)
        tours = list(result.scalars().all())

        next_cursor = None
        if len(tours) > request.limit:
            tours = tours[:request.limit]
            next_cursor = str(tours[-1].id)

        logger.info(
            "Tour search completed",
            extra={
                "total_found": len(tours),
                "has_next_page": next_cursor is not None,
                "available_only": request.available_only,
            }
        )
        return tours, next_cursor

    async def rating_summaries(self, tour_ids: list[UUID]) -> dict[UUID, RatingSummary]:
        """Review count and mean rating for each of the given tours."""
        if not tour_ids:
            return {}
        stmt = (
            select(Review.tour_id, func.count(Review.id), func.avg(Review.rating))
            .where(Review.tour_id.in_(tour_ids))
            .group_by(Review.tour_id)
        )
        result = await self.db.execute(stmt)
        return {
            tour_id: RatingSummary(
                review_count=count,
                average_rating=round(float(average), 1) if average is not None else None,
            )
            for tour_id, count, average in result.all()
        }

    async def update_tour(
        self, actor_id: UUID, is_admin: bool, request: UpdateTourRequest
    ) -> Tour:
        """
        Update a tour's details.

        Capacity may shrink only down to the slots already reserved; the
        reserved counter itself is owned by the slot ledger and never written
        here.

        Raises:
            NotFoundError: If tour not found
            AuthorizationError: If the caller neither provides the tour nor is an admin
            ValidationError: If the resulting dates are out of order or the price
                is not in the configured payment currency
            ConflictError: If capacity would fall below reserved slots
        """
        async with unit_of_work(self.db):
            stmt = (
                select(Tour)
                .where(Tour.id == request.tour_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            tour = (await self.db.execute(stmt)).scalar_one_or_none()
            if tour is None:
                raise NotFoundError(resource_type="tour", resource_id=str(request.tour_id))
            self._authorize(tour, actor_id, is_admin)

            if request.capacity is not None and request.capacity < tour.reserved_slots:
                logger.warning(
                    "Tour update refused - capacity below reserved slots",
                    extra={
                        "tour_id": str(tour.id),
                        "requested_capacity": request.capacity,
                        "reserved_slots": tour.reserved_slots,
                    }
                )
                raise ConflictError(
                    detail=f"Capacity cannot be lower than the {tour.reserved_slots} slots already reserved",
                    conflicting_resource={
                        "tour_id": str(tour.id),
                        "reserved_slots": tour.reserved_slots,
                    }
                )

            start_date = as_naive_utc(request.start_date) if request.start_date else tour.start_date
            end_date = as_naive_utc(request.end_date) if request.end_date else tour.end_date
            if end_date < start_date:
                raise ValidationError(detail="end_date must not be before start_date")

            for field in ("name", "description", "location", "capacity"):
                value = getattr(request, field)
                if value is not None:
                    setattr(tour, field, value)
            tour.start_date = start_date
            tour.end_date = end_date
            if request.price is not None:
                self._check_currency(request.price.currency)
                tour.price_amount = request.price.amount
                tour.price_currency = request.price.currency
            await self.db.flush()

        logger.info("Tour updated", extra={"tour_id": str(tour.id), "actor_id": str(actor_id)})
        return tour

    async def delete_tour(self, actor_id: UUID, is_admin: bool, tour_id: UUID) -> None:
        """
        Delete a tour that no booking references.

        Raises:
            NotFoundError: If tour not found
            AuthorizationError: If the caller neither provides the tour nor is an admin
            ConflictError: If bookings reference the tour
        """
        async with unit_of_work(self.db):
            tour = await self.get_tour_by_id_or_raise(tour_id)
            self._authorize(tour, actor_id, is_admin)

            booking_count = await self.db.scalar(
                select(func.count(Booking.id)).where(Booking.tour_id == tour_id)
            )
            if booking_count:
                raise ConflictError(
                    detail=f"Tour has {booking_count} booking(s) and cannot be deleted",
                    conflicting_resource={"tour_id": str(tour_id), "booking_count": booking_count},
                )

            await self.db.delete(tour)

        logger.info("Tour deleted", extra={"tour_id": str(tour_id), "actor_id": str(actor_id)})

    @staticmethod
    def _authorize(tour: Tour, actor_id: UUID, is_admin: bool) -> None:
        if not is_admin and tour.provider_id != actor_id:
            raise AuthorizationError(detail="Only the tour provider or an admin can change this tour")

    @staticmethod
    def _check_currency(currency: str) -> None:
        if currency != settings.payment_currency:
            logger.warning(
                "Tour price refused - unsupported currency",
                extra={"currency": currency, "payment_currency": settings.payment_currency}
            )
            raise ValidationError(
                detail=f"Tour prices must be in {settings.payment_currency}",
                errors={"price.currency": f"expected {settings.payment_currency}, got {currency}"},
            )
