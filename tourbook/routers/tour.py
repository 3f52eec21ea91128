"""Tour router for tour management operations."""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, Principal, RequiredAuth
from ..models.tour import Tour as TourModel
from ..schemas.common import Money
from ..schemas.tour import (
    CreateTourRequest,
    SearchToursRequest,
    SearchToursResponse,
    Tour,
    TourIdRequest,
    UpdateTourRequest,
)
from ..services.tour_service import RatingSummary, TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tour", tags=["tour"])


def tour_to_schema(tour_model: TourModel, rating: Optional[RatingSummary] = None) -> Tour:
    """Convert tour model to schema."""
    rating = rating or RatingSummary()
    return Tour(
        id=str(tour_model.id),
        provider_id=str(tour_model.provider_id),
        name=tour_model.name,
        description=tour_model.description,
        location=tour_model.location,
        start_date=tour_model.start_date,
        end_date=tour_model.end_date,
        price=Money(amount=tour_model.price_amount, currency=tour_model.price_currency),
        capacity=tour_model.capacity,
        reserved_slots=tour_model.reserved_slots,
        available_slots=tour_model.available_slots,
        review_count=rating.review_count,
        average_rating=rating.average_rating,
    )


@router.post("/create", response_model=Tour, status_code=201)
async def create_tour(
    request: CreateTourRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Create a tour offered by the caller."""
    tour = await TourService(db).create_tour(principal.user_id, request)
    return JSONResponse(
        status_code=201,
        content=tour_to_schema(tour).model_dump(mode="json"),
    )


@router.post("/get", response_model=Tour)
async def get_tour(
    request: TourIdRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Retrieve a tour with its free slots and rating."""
    tour_service = TourService(db)
    tour = await tour_service.get_tour_by_id_or_raise(request.tour_id)
    ratings = await tour_service.rating_summaries([tour.id])
    return JSONResponse(
        status_code=200,
        content=tour_to_schema(tour, ratings.get(tour.id)).model_dump(mode="json"),
    )


@router.post("/search", response_model=SearchToursResponse)
async def search_tours(
    request: SearchToursRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Search tours by text, location, price, dates and availability."""
    tour_service = TourService(db)
    tours, next_cursor = await tour_service.search_tours(request)
    ratings = await tour_service.rating_summaries([tour.id for tour in tours])

    response_data = SearchToursResponse(
        items=[tour_to_schema(tour, ratings.get(tour.id)) for tour in tours],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/update", response_model=Tour)
async def update_tour(
    request: UpdateTourRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Update a tour; only its provider or an admin may."""
    tour = await TourService(db).update_tour(principal.user_id, principal.is_admin, request)
    return JSONResponse(
        status_code=200,
        content=tour_to_schema(tour).model_dump(mode="json"),
    )


@router.post("/delete", status_code=204)
async def delete_tour(
    request: TourIdRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> Response:
    """Delete a tour nobody has booked."""
    await TourService(db).delete_tour(principal.user_id, principal.is_admin, request.tour_id)
    return Response(status_code=204)
