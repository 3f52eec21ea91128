"""Review-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import PageRequest, PaginatedResponse


class CreateReviewRequest(BaseModel):
    """Request schema for reviewing a tour."""

    tour_id: UUID = Field(..., description="Reviewed tour")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, max_length=2000, description="Free-text comment")


class ListReviewsRequest(PageRequest):
    """Request schema for listing a tour's reviews."""

    tour_id: UUID = Field(..., description="Tour ID")


class Review(BaseModel):
    """Review response schema."""

    id: str = Field(..., description="Unique review ID")
    tour_id: str = Field(..., description="Reviewed tour")
    user_id: str = Field(..., description="Author")
    rating: int = Field(..., ge=1, le=5, description="Rating")
    comment: Optional[str] = Field(None, description="Comment")
    created_at: datetime = Field(..., description="Creation time")

    class Config:
        from_attributes = True


class ListReviewsResponse(PaginatedResponse):
    """Response schema for review listings."""

    items: list[Review] = Field(..., description="Reviews")
