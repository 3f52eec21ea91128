"""Booking router for the caller's own bookings."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, NotifierDependency, Principal, RequiredAuth
from ..core.exceptions import ProblemDetailsException
from ..models.booking import Booking as BookingModel
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
)
from ..schemas.common import Money
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def booking_to_schema(booking_model: BookingModel) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        tour_id=str(booking_model.tour_id),
        user_id=str(booking_model.user_id),
        participant_count=booking_model.participant_count,
        total=Money(amount=booking_model.total_amount, currency=booking_model.currency),
        status=booking_model.status,
        payment_reference=booking_model.payment_reference,
        booked_at=booking_model.booked_at,
        paid_at=booking_model.paid_at,
        cancelled_at=booking_model.cancelled_at,
        cancellation_reason=booking_model.cancellation_reason,
    )


def booking_response(booking_model: BookingModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=booking_to_schema(booking_model).model_dump(mode="json"),
    )


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    notifier=NotifierDependency,
) -> JSONResponse:
    """
    Book slots on a tour.

    The booking starts PENDING and holds its slots until it is paid,
    cancelled or expires.
    """
    booking_service = BookingService(db, notifier)

    try:
        booking = await booking_service.create_booking(
            user_id=principal.user_id,
            tour_id=request.tour_id,
            participant_count=request.participant_count,
        )
        return booking_response(booking, status_code=201)

    except ProblemDetailsException:
        # Re-raise Problem Details exceptions as-is
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "tour_id": str(request.tour_id),
                "user_id": str(principal.user_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail="Internal server error"
        )


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    notifier=NotifierDependency,
) -> JSONResponse:
    """Cancel one of the caller's bookings before the tour starts."""
    booking_service = BookingService(db, notifier)
    booking = await booking_service.cancel_booking(
        user_id=principal.user_id,
        booking_id=request.booking_id,
        reason=request.reason,
    )
    return booking_response(booking)


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Retrieve one of the caller's bookings."""
    booking = await BookingService(db).get_booking_for_user(principal.user_id, request.booking_id)
    return booking_response(booking)


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """List the caller's bookings."""
    bookings, next_cursor = await BookingService(db).list_bookings_for_user(
        principal.user_id,
        status=request.status,
        cursor=request.cursor,
        limit=request.limit,
    )
    response_data = ListBookingsResponse(
        items=[booking_to_schema(booking) for booking in bookings],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
