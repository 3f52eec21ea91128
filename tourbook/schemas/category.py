"""Category-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import PageRequest, PaginatedResponse
from .tour import Tour

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class CreateCategoryRequest(BaseModel):
    """Request schema for creating a category."""

    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    description: Optional[str] = Field(None, max_length=2000, description="Category description")
    icon: Optional[str] = Field(None, max_length=100, description="Icon identifier")
    color: Optional[str] = Field(None, pattern=HEX_COLOR, description="Display color (#RRGGBB)")


class UpdateCategoryRequest(BaseModel):
    """Request schema for updating a category; omitted fields stay unchanged."""

    category_id: UUID = Field(..., description="Category to update")
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    icon: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, pattern=HEX_COLOR)


class CategoryIdRequest(BaseModel):
    """Request schema addressing a single category."""

    category_id: UUID = Field(..., description="Category ID")


class CategorySlugRequest(BaseModel):
    """Request schema addressing a category by slug."""

    slug: str = Field(..., min_length=1, max_length=120, description="Category slug")


class PopularCategoriesRequest(BaseModel):
    limit: int = Field(10, ge=1, le=50, description="Number of categories")


class AssignCategoriesRequest(BaseModel):
    """Request schema replacing the categories of a tour."""

    tour_id: UUID = Field(..., description="Tour to label")
    category_ids: list[UUID] = Field(default_factory=list, max_length=20, description="Categories to assign")


class ListCategoryToursRequest(PageRequest):
    """Request schema for listing the tours in a category."""

    category_id: UUID = Field(..., description="Category ID")
    upcoming_only: bool = Field(False, description="Only tours that have not started")


class Category(BaseModel):
    """Category response schema."""

    id: str = Field(..., description="Unique category ID")
    name: str = Field(..., description="Category name")
    slug: str = Field(..., description="URL slug")
    description: Optional[str] = Field(None, description="Category description")
    icon: Optional[str] = Field(None, description="Icon identifier")
    color: Optional[str] = Field(None, description="Display color")
    tour_count: int = Field(0, ge=0, description="Tours assigned to the category")
    created_at: datetime = Field(..., description="Creation time")

    class Config:
        from_attributes = True


class ListCategoriesResponse(BaseModel):
    items: list[Category] = Field(..., description="Categories")


class TourCategoriesResponse(BaseModel):
    """Categories a tour is listed under."""

    tour_id: str = Field(..., description="Tour ID")
    items: list[Category] = Field(..., description="Assigned categories")


class ListCategoryToursResponse(PaginatedResponse):
    """Response schema for the tours in a category."""

    category: Category = Field(..., description="The category")
    items: list[Tour] = Field(..., description="Tours in the category")
