"""Wishlist router: the caller's saved tours."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, Principal, RequiredAuth
from ..schemas.wishlist import (
    ClearWishlistResponse,
    MostWishlistedRequest,
    MostWishlistedResponse,
    WishlistCheckResponse,
    WishlistCountResponse,
    WishlistedTour,
    WishlistItem,
    WishlistResponse,
    WishlistStatusRequest,
    WishlistStatusResponse,
    WishlistTourRequest,
)
from ..services.tour_service import TourService
from ..services.wishlist_service import WishlistService
from .tour import tour_to_schema

router = APIRouter(prefix="/v1/wishlist", tags=["wishlist"])


def _convert_item_to_schema(item_model, rating=None) -> WishlistItem:
    """Convert wishlist entry model to schema."""
    return WishlistItem(
        id=str(item_model.id),
        tour=tour_to_schema(item_model.tour, rating),
        added_at=item_model.created_at,
    )


@router.post("/add", response_model=WishlistItem, status_code=201)
async def add_to_wishlist(
    request: WishlistTourRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    item = await WishlistService(db).add(principal.user_id, request.tour_id)
    return JSONResponse(status_code=201, content=_convert_item_to_schema(item).model_dump(mode="json"))


@router.post("/remove", status_code=204)
async def remove_from_wishlist(
    request: WishlistTourRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> Response:
    await WishlistService(db).remove(principal.user_id, request.tour_id)
    return Response(status_code=204)


@router.post("/list", response_model=WishlistResponse)
async def list_wishlist(
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """The caller's saved tours, most recently saved first."""
    items = await WishlistService(db).list_items(principal.user_id)
    ratings = await TourService(db).rating_summaries([item.tour_id for item in items])
    response_data = WishlistResponse(
        items=[_convert_item_to_schema(item, ratings.get(item.tour_id)) for item in items],
        count=len(items),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/count", response_model=WishlistCountResponse)
async def wishlist_count(
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    count = await WishlistService(db).count(principal.user_id)
    return JSONResponse(status_code=200, content=WishlistCountResponse(count=count).model_dump(mode="json"))


@router.post("/check", response_model=WishlistCheckResponse)
async def check_wishlist(
    request: WishlistTourRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    in_wishlist = await WishlistService(db).contains(principal.user_id, request.tour_id)
    response_data = WishlistCheckResponse(tour_id=str(request.tour_id), in_wishlist=in_wishlist)
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/status", response_model=WishlistStatusResponse)
async def wishlist_status(
    request: WishlistStatusRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Saved flag for each of several tours, for marking search results."""
    statuses = await WishlistService(db).status(principal.user_id, request.tour_ids)
    response_data = WishlistStatusResponse(
        statuses={str(tour_id): saved for tour_id, saved in statuses.items()}
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/clear", response_model=ClearWishlistResponse)
async def clear_wishlist(
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    removed = await WishlistService(db).clear(principal.user_id)
    return JSONResponse(status_code=200, content=ClearWishlistResponse(removed=removed).model_dump(mode="json"))


@router.post("/most-wishlisted", response_model=MostWishlistedResponse)
async def most_wishlisted(
    request: MostWishlistedRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Tours saved by the most users."""
    entries = await WishlistService(db).most_wishlisted(request.limit)
    response_data = MostWishlistedResponse(
        items=[WishlistedTour(tour=tour_to_schema(tour), wishlist_count=count) for tour, count in entries]
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
