"""Payment service: initialize checkouts and reconcile gateway verifications."""

import logging
import time
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InsufficientCapacityError, PaymentGatewayUnavailableError
from ..models.booking import Booking, BookingStatus
from .booking_service import BookingService, PaymentOutcome, ensure_payable
from .notification_service import BookingNotifier
from .payment_gateway import CheckoutRequest, PaymentGateway, PaymentVerification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitialization:
    checkout_url: str
    transaction_reference: str
    amount: int
    currency: str
    booking_id: UUID


@dataclass(frozen=True)
class PaymentVerificationResult:
    outcome: PaymentOutcome
    verification: PaymentVerification

    @property
    def message(self) -> str:
        return _OUTCOME_MESSAGES[self.outcome.status.value]


@dataclass(frozen=True)
class PaymentStatusReport:
    """Payment state of a booking as reported to its owner."""

    status: str
    message: str
    booking: Booking


_OUTCOME_MESSAGES = {
    "success": "Payment successful! Your booking is confirmed.",
    "failed": "Payment failed. Please try again.",
    "pending": "Payment is still being processed. Please check again shortly.",
}


def new_transaction_reference(booking_id: UUID) -> str:
    return f"TXN-{booking_id}-{int(time.time() * 1000)}"


def _split_name(name: Optional[str]) -> tuple[str, str]:
    parts = (name or "").split()
    first = parts[0] if parts else "Customer"
    last = parts[1] if len(parts) > 1 else "Name"
    return first, last


class PaymentService:
    """Service for payment operations."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifier: Optional[BookingNotifier] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.bookings = BookingService(db, notifier)

    async def initialize_payment(
        self,
        user_id: UUID,
        booking_id: UUID,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> PaymentInitialization:
        """
        Open a gateway checkout for one of the user's bookings.

        The gateway is called before anything is written, so a gateway error
        leaves the booking as it was.

        Args:
            user_id: Paying user
            booking_id: Booking to pay for
            email: Payer email, defaults to the user's
            first_name: Payer first name, defaults to the user's
            last_name: Payer last name, defaults to the user's

        Returns:
            Checkout URL and the transaction reference to verify later

        Raises:
            NotFoundError: If the booking does not exist
            AuthorizationError: If the booking belongs to someone else
            BookingStateConflictError: If the booking is paid, cancelled or completed
            InsufficientCapacityError: If a FAILED booking no longer fits on its tour
            PaymentGatewayUnavailableError: If the gateway cannot be reached
        """
        booking = await self.bookings.get_booking_for_user(user_id, booking_id)
        ensure_payable(booking)

        tour = booking.tour
        if (
            BookingStatus(booking.status) is BookingStatus.FAILED
            and tour.available_slots < booking.participant_count
        ):
            raise InsufficientCapacityError(
                str(tour.id),
                requested=booking.participant_count,
                remaining=tour.available_slots,
            )

        user = booking.user
        default_first, default_last = _split_name(user.name)
        transaction_reference = new_transaction_reference(booking.id)

        session = await self.gateway.initialize(CheckoutRequest(
            transaction_reference=transaction_reference,
            booking_id=booking.id,
            amount=booking.total_amount,
            currency=booking.currency,
            email=email or user.email,
            first_name=first_name or default_first,
            last_name=last_name or default_last,
            title=f"Payment for {tour.name}"[:50],
            description=f"Tour booking for {booking.participant_count} participant(s)",
        ))

        booking = await self.bookings.attach_payment_reference(booking.id, transaction_reference)

        logger.info(
            "Payment initialized",
            extra={
                "booking_id": str(booking.id),
                "transaction_reference": transaction_reference,
                "amount": booking.total_amount,
                "currency": booking.currency,
            }
        )

        return PaymentInitialization(
            checkout_url=session.checkout_url,
            transaction_reference=transaction_reference,
            amount=booking.total_amount,
            currency=booking.currency,
            booking_id=booking.id,
        )

    async def verify_payment(self, transaction_reference: str) -> PaymentVerificationResult:
        """
        Verify a transaction with the gateway and apply the answer to its booking.

        Raises:
            NotFoundError: If no booking carries the reference
            PaymentGatewayUnavailableError: If the gateway cannot be reached;
                the booking is left untouched
        """
        verification = await self.gateway.verify(transaction_reference)
        outcome = await self.bookings.confirm_payment(transaction_reference, verification.status)

        if (
            verification.amount is not None
            and verification.amount != outcome.booking.total_amount
        ):
            logger.warning(
                "Gateway amount differs from booking total",
                extra={
                    "booking_id": str(outcome.booking.id),
                    "transaction_reference": transaction_reference,
                    "gateway_amount": verification.amount,
                    "booking_amount": outcome.booking.total_amount,
                }
            )

        return PaymentVerificationResult(outcome=outcome, verification=verification)

    async def get_payment_status(self, user_id: UUID, booking_id: UUID) -> PaymentStatusReport:
        """
        Report where a booking's payment stands, verifying live when undecided.

        A gateway outage degrades to the stored booking status instead of
        failing the request.
        """
        booking = await self.bookings.get_booking_for_user(user_id, booking_id)
        status = BookingStatus(booking.status)

        if not booking.payment_reference:
            return PaymentStatusReport(
                status="not_started",
                message="Payment has not been initialized for this booking",
                booking=booking,
            )

        if status is BookingStatus.CONFIRMED:
            return PaymentStatusReport(
                status="confirmed",
                message="Booking is confirmed and paid",
                booking=booking,
            )

        try:
            result = await self.verify_payment(booking.payment_reference)
        except PaymentGatewayUnavailableError:
            logger.warning(
                "Payment status degraded to stored booking status",
                extra={"booking_id": str(booking_id), "status": status.value}
            )
            return PaymentStatusReport(
                status=status.value.lower(),
                message=f"Booking status: {status.value}",
                booking=booking,
            )

        return PaymentStatusReport(
            status=result.outcome.status.value,
            message=result.message,
            booking=await self.bookings.get_booking_for_user(user_id, booking_id),
        )
