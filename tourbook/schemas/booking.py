"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from .common import Money, PageRequest, PaginatedResponse


class CreateBookingRequest(BaseModel):
    """Request schema for booking a tour."""

    tour_id: UUID = Field(..., description="Tour to book")
    participant_count: int = Field(..., ge=1, le=50, description="Number of participants")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


class GetBookingRequest(BaseModel):
    """Request schema for retrieving a booking."""

    booking_id: UUID = Field(..., description="Booking ID")


class ListBookingsRequest(PageRequest):
    """Request schema for listing the caller's bookings."""

    status: Optional[BookingStatus] = Field(None, description="Filter by status")


class AdminListBookingsRequest(ListBookingsRequest):
    """Request schema for listing all bookings."""

    tour_id: Optional[UUID] = Field(None, description="Filter by tour")


class AdminSetStatusRequest(BaseModel):
    """Request schema for forcing a booking status."""

    booking_id: UUID = Field(..., description="Booking to change")
    status: BookingStatus = Field(..., description="New status")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    tour_id: str = Field(..., description="Booked tour")
    user_id: str = Field(..., description="Booking owner")
    participant_count: int = Field(..., ge=1, description="Number of participants")
    total: Money = Field(..., description="Total price fixed at booking time")
    status: BookingStatus = Field(..., description="Booking status")
    payment_reference: Optional[str] = Field(None, description="Current payment transaction reference")
    booked_at: datetime = Field(..., description="Booking creation time")
    paid_at: Optional[datetime] = Field(None, description="Payment confirmation time")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation time")
    cancellation_reason: Optional[str] = Field(None, description="Cancellation reason")

    class Config:
        from_attributes = True


class ListBookingsResponse(PaginatedResponse):
    """Response schema for booking listings."""

    items: list[Booking] = Field(..., description="Bookings")
