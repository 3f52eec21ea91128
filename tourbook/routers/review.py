"""Review router."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, Principal, RequiredAuth
from ..schemas.review import CreateReviewRequest, ListReviewsRequest, ListReviewsResponse, Review
from ..services.review_service import ReviewService

router = APIRouter(prefix="/v1/review", tags=["review"])


def _convert_review_to_schema(review_model) -> Review:
    """Convert review model to schema."""
    return Review(
        id=str(review_model.id),
        tour_id=str(review_model.tour_id),
        user_id=str(review_model.user_id),
        rating=review_model.rating,
        comment=review_model.comment,
        created_at=review_model.created_at,
    )


@router.post("/create", response_model=Review, status_code=201)
async def create_review(
    request: CreateReviewRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Review a tour the caller has a confirmed or completed booking for."""
    review = await ReviewService(db).create_review(principal.user_id, request)
    return JSONResponse(
        status_code=201,
        content=_convert_review_to_schema(review).model_dump(mode="json"),
    )


@router.post("/list", response_model=ListReviewsResponse)
async def list_reviews(
    request: ListReviewsRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    reviews, next_cursor = await ReviewService(db).list_reviews(request)
    response_data = ListReviewsResponse(
        items=[_convert_review_to_schema(review) for review in reviews],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
