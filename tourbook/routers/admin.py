"""Admin router: booking overrides and user role management."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import AdminAuth, DatabaseSession, NotifierDependency, Principal
from ..schemas.booking import (
    AdminListBookingsRequest,
    AdminSetStatusRequest,
    Booking,
    CancelBookingRequest,
    GetBookingRequest,
    ListBookingsResponse,
)
from ..schemas.user import ListUsersRequest, ListUsersResponse, SetUserRoleRequest, User
from ..services.booking_service import BookingService
from ..services.user_service import UserService
from .booking import booking_response, booking_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


def _convert_user_to_schema(user_model) -> User:
    """Convert user model to schema."""
    return User(
        id=str(user_model.id),
        email=user_model.email,
        name=user_model.name,
        role=user_model.role,
        created_at=user_model.created_at,
    )


@router.post("/booking/list", response_model=ListBookingsResponse)
async def admin_list_bookings(
    request: AdminListBookingsRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    bookings, next_cursor = await BookingService(db).admin_list_bookings(
        status=request.status,
        tour_id=request.tour_id,
        cursor=request.cursor,
        limit=request.limit,
    )
    response_data = ListBookingsResponse(
        items=[booking_to_schema(booking) for booking in bookings],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/booking/get", response_model=Booking)
async def admin_get_booking(
    request: GetBookingRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    booking = await BookingService(db).admin_get_booking(request.booking_id)
    return booking_response(booking)


@router.post("/booking/cancel", response_model=Booking)
async def admin_cancel_booking(
    request: CancelBookingRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
    notifier=NotifierDependency,
) -> JSONResponse:
    """Cancel any booking, even after its tour started."""
    booking = await BookingService(db, notifier).admin_cancel_booking(
        request.booking_id, reason=request.reason
    )
    logger.info(
        "Booking cancelled by admin",
        extra={"booking_id": str(request.booking_id), "admin_id": str(principal.user_id)}
    )
    return booking_response(booking)


@router.post("/booking/set-status", response_model=Booking)
async def admin_set_booking_status(
    request: AdminSetStatusRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
    notifier=NotifierDependency,
) -> JSONResponse:
    """
    Force a booking into a status.

    Completed bookings are locked. Reactivating a cancelled or failed booking
    needs free slots on its tour.
    """
    booking = await BookingService(db, notifier).admin_set_status(request.booking_id, request.status)
    logger.info(
        "Booking status set by admin",
        extra={
            "booking_id": str(request.booking_id),
            "status": request.status.value,
            "admin_id": str(principal.user_id),
        }
    )
    return booking_response(booking)


@router.post("/user/list", response_model=ListUsersResponse)
async def admin_list_users(
    request: ListUsersRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    users, next_cursor = await UserService(db).list_users(request)
    response_data = ListUsersResponse(
        items=[_convert_user_to_schema(user) for user in users],
        next_cursor=next_cursor,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/user/set-role", response_model=User)
async def admin_set_user_role(
    request: SetUserRoleRequest,
    principal: Principal = AdminAuth,
    db: AsyncSession = DatabaseSession,
) -> JSONResponse:
    """Change a user's role; the last admin cannot be demoted."""
    user = await UserService(db).set_role(request.user_id, request.role)
    return JSONResponse(
        status_code=200,
        content=_convert_user_to_schema(user).model_dump(mode="json"),
    )
