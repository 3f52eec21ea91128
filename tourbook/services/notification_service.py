"""Best-effort booking notifications sent after a booking transaction commits."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from ..core.config import settings
from ..core.observability import get_logger, metrics_collector

logger = get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    """An outgoing email, already rendered."""

    kind: str
    to: str
    subject: str
    text: str
    sender: str = field(default_factory=lambda: settings.email_from)


class EmailSender(Protocol):
    """Delivery collaborator; SMTP or provider specifics live behind it."""

    async def send(self, message: EmailMessage) -> None:
        ...


class LoggingEmailSender:
    """Sender that records messages in the log instead of delivering them."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "email.sent",
            kind=message.kind,
            to=message.to,
            subject=message.subject,
        )


@dataclass(frozen=True)
class BookingNotice:
    """Snapshot of the booking data a notification needs, taken before commit."""

    booking_id: UUID
    email: str
    user_name: str
    tour_name: str
    participant_count: int
    total_amount: int
    currency: str
    tour_start: datetime
    tour_end: datetime
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    transaction_reference: Optional[str] = None


def _money(amount: int, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency}"


class BookingNotifier:
    """
    Renders booking notifications and hands them to an EmailSender.

    Every send is bounded by a timeout. A failure or timeout is logged and
    counted, never raised: the committed booking state is the source of truth.
    """

    def __init__(self, sender: EmailSender, timeout_seconds: Optional[float] = None):
        self.sender = sender
        self.timeout_seconds = timeout_seconds or settings.notification_timeout_seconds

    async def booking_created(self, notice: BookingNotice) -> bool:
        text = (
            f"Hi {notice.user_name},\n\n"
            f"Your booking {notice.booking_id} for {notice.tour_name} is reserved.\n"
            f"Participants: {notice.participant_count}\n"
            f"Total: {_money(notice.total_amount, notice.currency)}\n"
            f"Tour dates: {notice.tour_start:%Y-%m-%d} to {notice.tour_end:%Y-%m-%d}\n\n"
            "Complete the payment to confirm your slots."
        )
        return await self._dispatch(EmailMessage(
            kind="booking_confirmation",
            to=notice.email,
            subject=f"Booking received: {notice.tour_name}",
            text=text,
        ))

    async def booking_cancelled(self, notice: BookingNotice) -> bool:
        text = (
            f"Hi {notice.user_name},\n\n"
            f"Your booking {notice.booking_id} for {notice.tour_name} was cancelled"
            f"{f' on {notice.cancelled_at:%Y-%m-%d %H:%M} UTC' if notice.cancelled_at else ''}.\n"
            f"Reason: {notice.cancellation_reason or 'not given'}"
        )
        return await self._dispatch(EmailMessage(
            kind="booking_cancellation",
            to=notice.email,
            subject=f"Booking cancelled: {notice.tour_name}",
            text=text,
        ))

    async def payment_succeeded(self, notice: BookingNotice) -> bool:
        text = (
            f"Hi {notice.user_name},\n\n"
            f"We received {_money(notice.total_amount, notice.currency)} for booking "
            f"{notice.booking_id} ({notice.tour_name}).\n"
            f"Transaction reference: {notice.transaction_reference}\n"
            "Your booking is confirmed."
        )
        return await self._dispatch(EmailMessage(
            kind="payment_success",
            to=notice.email,
            subject=f"Payment confirmed: {notice.tour_name}",
            text=text,
        ))

    async def _dispatch(self, message: EmailMessage) -> bool:
        try:
            await asyncio.wait_for(self.sender.send(message), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            metrics_collector.record_notification_failure(message.kind)
            logger.warning(
                "notification.timeout",
                kind=message.kind,
                to=message.to,
                timeout_seconds=self.timeout_seconds,
            )
            return False
        except Exception as e:
            metrics_collector.record_notification_failure(message.kind)
            logger.error(
                "notification.failed",
                kind=message.kind,
                to=message.to,
                error=str(e),
                exc_info=True,
            )
            return False
        return True
