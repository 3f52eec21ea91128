"""Tour-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .common import Money, PageRequest, PaginatedResponse


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour."""

    name: str = Field(..., min_length=1, max_length=255, description="Tour name")
    description: Optional[str] = Field(None, max_length=5000, description="Tour description")
    location: str = Field(..., min_length=1, max_length=255, description="Where the tour takes place")
    start_date: datetime = Field(..., description="Tour start (ISO 8601)")
    end_date: datetime = Field(..., description="Tour end (ISO 8601)")
    price: Money = Field(..., description="Price per participant")
    capacity: int = Field(..., ge=1, le=1000, description="Maximum participants")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateTourRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class UpdateTourRequest(BaseModel):
    """Request schema for updating a tour; omitted fields stay unchanged."""

    tour_id: UUID = Field(..., description="Tour to update")
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    price: Optional[Money] = None
    capacity: Optional[int] = Field(None, ge=1, le=1000)


class TourIdRequest(BaseModel):
    """Request schema addressing a single tour."""

    tour_id: UUID = Field(..., description="Tour ID")


class SearchToursRequest(PageRequest):
    """Request schema for searching tours."""

    search: Optional[str] = Field(None, max_length=255, description="Text matched against name, description and location")
    location: Optional[str] = Field(None, max_length=255, description="Location substring")
    min_price: Optional[int] = Field(None, ge=0, description="Minimum price in minor units")
    max_price: Optional[int] = Field(None, ge=0, description="Maximum price in minor units")
    date_from: Optional[datetime] = Field(None, description="Tours starting at or after")
    date_to: Optional[datetime] = Field(None, description="Tours ending at or before")
    available_only: bool = Field(False, description="Only tours with free slots")
    upcoming_only: bool = Field(False, description="Only tours that have not started")


class Tour(BaseModel):
    """Tour response schema."""

    id: str = Field(..., description="Unique tour ID")
    provider_id: str = Field(..., description="User who offers the tour")
    name: str = Field(..., description="Tour name")
    description: Optional[str] = Field(None, description="Tour description")
    location: str = Field(..., description="Tour location")
    start_date: datetime = Field(..., description="Tour start")
    end_date: datetime = Field(..., description="Tour end")
    price: Money = Field(..., description="Price per participant")
    capacity: int = Field(..., ge=1, description="Maximum participants")
    reserved_slots: int = Field(..., ge=0, description="Slots held by bookings")
    available_slots: int = Field(..., ge=0, description="Slots still free")
    review_count: int = Field(0, ge=0, description="Number of reviews")
    average_rating: Optional[float] = Field(None, description="Mean review rating")

    class Config:
        from_attributes = True


class SearchToursResponse(PaginatedResponse):
    """Response schema for tour search."""

    items: list[Tour] = Field(..., description="Found tours")
