"""Category router: browsing the catalog and, for admins, curating it."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import AdminAuth, DatabaseSession, Principal
from ..schemas.category import (
    AssignCategoriesRequest,
    Category,
    CategoryIdRequest,
    CategorySlugRequest,
    CreateCategoryRequest,
    ListCategoriesResponse,
    ListCategoryToursRequest,
    ListCategoryToursResponse,
    PopularCategoriesRequest,
    TourCategoriesResponse,
    UpdateCategoryRequest,
)
from ..schemas.tour import TourIdRequest
from ..services.category_service import CategoryService, CategoryWithCount
from ..services.tour_service import TourService
from .tour import tour_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/category", tags=["category"])


def category_to_schema(category_model, tour_count: int = 0) -> Category:
    """Convert category model to schema."""
    return Category(
        id=str(category_model.id),
        name=category_model.name,
        slug=category_model.slug,
        description=category_model.description,
        icon=category_model.icon,
        color=category_model.color,
        tour_count=tour_count,
        created_at=category_model.created_at,
    )


def _counted(entry: CategoryWithCount) -> Category:
    return category_to_schema(entry.category, entry.tour_count)


@router.post("/list", response_model=ListCategoriesResponse)
async def list_categories(db: AsyncSession = DatabaseSession) -> JSONResponse:
    """All categories by name, with their tour counts."""
    entries = await CategoryService(db).list_categories()
    response_data = ListCategoriesResponse(items=[_counted(entry) for entry in entries])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/popular", response_model=ListCategoriesResponse)
async def popular_categories(
    request: PopularCategoriesRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    entries = await CategoryService(db).popular_categories(request.limit)
    response_data = ListCategoriesResponse(items=[_counted(entry) for entry in entries])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/get", response_model=Category)
async def get_category(
    request: CategoryIdRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    entry = await CategoryService(db).get_category(request.category_id)
    return JSONResponse(status_code=200, content=_counted(entry).model_dump(mode="json"))


@router.post("/get-by-slug", response_model=Category)
async def get_category_by_slug(
    request: CategorySlugRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    entry = await CategoryService(db).get_category_by_slug(request.slug)
    return JSONResponse(status_code=200, content=_counted(entry).model_dump(mode="json"))


@router.post("/tours", response_model=ListCategoryToursResponse)
async def list_category_tours(
    request: ListCategoryToursRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Tours listed under a category, one page at a time."""
    category, tours, next_cursor = await CategoryService(db).list_tours(request)
    ratings = await TourService(db).rating_summaries([tour.id for tour in tours])
    response_data = ListCategoryToursResponse(
        category=category_to_schema(category),
        items=[tour_to_schema(tour, ratings.get(tour.id)) for tour in tours],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/for-tour", response_model=TourCategoriesResponse)
async def tour_categories(
    request: TourIdRequest,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Categories a tour is listed under."""
    await TourService(db).get_tour_by_id_or_raise(request.tour_id)
    categories = await CategoryService(db).categories_for_tour(request.tour_id)
    response_data = TourCategoriesResponse(
        tour_id=str(request.tour_id),
        items=[category_to_schema(category) for category in categories],
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/create", response_model=Category, status_code=201)
async def create_category(
    request: CreateCategoryRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    category = await CategoryService(db).create_category(request)
    logger.info(
        "Admin created category",
        extra={"admin_id": str(principal.user_id), "category_id": str(category.id)}
    )
    return JSONResponse(status_code=201, content=category_to_schema(category).model_dump(mode="json"))


@router.post("/update", response_model=Category)
async def update_category(
    request: UpdateCategoryRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    service = CategoryService(db)
    await service.update_category(request)
    entry = await service.get_category(request.category_id)
    return JSONResponse(status_code=200, content=_counted(entry).model_dump(mode="json"))


@router.post("/delete", status_code=204)
async def delete_category(
    request: CategoryIdRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> Response:
    """Delete a category no tour is listed under."""
    await CategoryService(db).delete_category(request.category_id)
    return Response(status_code=204)


@router.post("/assign", response_model=TourCategoriesResponse)
async def assign_categories(
    request: AssignCategoriesRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Replace the categories a tour is listed under."""
    categories = await CategoryService(db).assign_to_tour(request.tour_id, request.category_ids)
    response_data = TourCategoriesResponse(
        tour_id=str(request.tour_id),
        items=[category_to_schema(category) for category in categories],
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
