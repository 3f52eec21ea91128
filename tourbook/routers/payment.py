"""Payment router: checkout initialization and verification."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import (
    DatabaseSession,
    NotifierDependency,
    PaymentGatewayDependency,
    Principal,
    RequiredAuth,
)
from ..schemas.common import Money
from ..schemas.payment import (
    InitializePaymentRequest,
    PaymentInitialization,
    PaymentStatus,
    PaymentStatusRequest,
    PaymentVerification,
    VerifyPaymentRequest,
)
from ..services.payment_service import PaymentService
from .booking import booking_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])


@router.post("/initialize", response_model=PaymentInitialization)
async def initialize_payment(
    request: InitializePaymentRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    gateway=PaymentGatewayDependency,
    notifier=NotifierDependency,
) -> JSONResponse:
    """Open a hosted checkout for one of the caller's bookings."""
    payment_service = PaymentService(db, gateway, notifier)
    result = await payment_service.initialize_payment(
        user_id=principal.user_id,
        booking_id=request.booking_id,
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
    )
    response_data = PaymentInitialization(
        checkout_url=result.checkout_url,
        transaction_reference=result.transaction_reference,
        amount=Money(amount=result.amount, currency=result.currency),
        booking_id=str(result.booking_id),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/verify", response_model=PaymentVerification)
async def verify_payment(
    request: VerifyPaymentRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    gateway=PaymentGatewayDependency,
    notifier=NotifierDependency,
) -> JSONResponse:
    """
    Verify a transaction with the gateway and update its booking.

    Verifying an already confirmed booking again is harmless. A gateway
    outage answers 503 and changes nothing.
    """
    payment_service = PaymentService(db, gateway, notifier)
    result = await payment_service.verify_payment(request.transaction_reference)
    booking = result.outcome.booking

    response_data = PaymentVerification(
        status=result.outcome.status.value,
        message=result.message,
        transaction_reference=request.transaction_reference,
        paid_at=booking.paid_at,
        booking=booking_to_schema(booking),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/status", response_model=PaymentStatus)
async def payment_status(
    request: PaymentStatusRequest,
    principal: Principal = RequiredAuth,
    db: AsyncSession = DatabaseSession,
    gateway=PaymentGatewayDependency,
    notifier=NotifierDependency,
) -> JSONResponse:
    """Where the payment of one of the caller's bookings stands."""
    report = await PaymentService(db, gateway, notifier).get_payment_status(
        principal.user_id, request.booking_id
    )
    response_data = PaymentStatus(
        status=report.status,
        message=report.message,
        booking=booking_to_schema(report.booking),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
