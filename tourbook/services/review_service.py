"""Review service: ratings left by users who booked a tour."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import unit_of_work, utcnow
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError
from ..models.booking import Booking, BookingStatus
from ..models.review import Review
from ..models.tour import Tour
from ..schemas.review import CreateReviewRequest, ListReviewsRequest

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)


class ReviewService:
    """Service for review operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_review(self, user_id: UUID, request: CreateReviewRequest) -> Review:
        """
        Review a tour the user has a confirmed or completed booking for.

        Args:
            user_id: Review author
            request: Review creation request

        Returns:
            Created review

        Raises:
            NotFoundError: If the tour does not exist
            AuthorizationError: If the user has no confirmed or completed booking
            ConflictError: If the user already reviewed the tour
        """
        try:
            async with unit_of_work(self.db):
                if await self.db.get(Tour, request.tour_id) is None:
                    raise NotFoundError(resource_type="tour", resource_id=str(request.tour_id))

                eligible = await self.db.scalar(
                    select(Booking.id)
                    .where(
                        Booking.user_id == user_id,
                        Booking.tour_id == request.tour_id,
                        Booking.status.in_(REVIEWABLE_STATUSES),
                    )
                    .limit(1)
                )
                if eligible is None:
                    logger.warning(
                        "Review refused - no qualifying booking",
                        extra={"user_id": str(user_id), "tour_id": str(request.tour_id)}
                    )
                    raise AuthorizationError(detail="You can only review tours you have booked")

                review = Review(
                    tour_id=request.tour_id,
                    user_id=user_id,
                    rating=request.rating,
                    comment=request.comment,
                    created_at=utcnow(),
                )
                self.db.add(review)
                await self.db.flush()
        except IntegrityError as e:
            logger.info(
                "Review refused - already reviewed",
                extra={"user_id": str(user_id), "tour_id": str(request.tour_id), "error": str(e)}
            )
            raise ConflictError(
                detail="You have already submitted a review for this tour",
                conflicting_resource={"tour_id": str(request.tour_id)},
            ) from e

        logger.info(
            "Review created",
            extra={"review_id": str(review.id), "tour_id": str(request.tour_id), "rating": request.rating}
        )
        return review

    async def list_reviews(self, request: ListReviewsRequest) -> tuple[list[Review], Optional[str]]:
        """List a tour's reviews, one page at a time."""
        stmt = select(Review).where(Review.tour_id == request.tour_id)
        if request.cursor:
            try:
                stmt = stmt.where(Review.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in review listing", extra={"cursor": request.cursor})

        stmt = stmt.order_by(Review.id).limit(request.limit + 1)
        reviews = list((await self.db.execute(stmt)).scalars().all())

        next_cursor = None
        if len(reviews) > request.limit:
            reviews = reviews[:request.limit]
            next_cursor = str(reviews[-1].id)
        return reviews, next_cursor
