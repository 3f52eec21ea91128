"""Booking service: the use cases that move bookings through their lifecycle."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.database import unit_of_work, utcnow
from ..core.exceptions import (
    AuthorizationError,
    BookingRuleError,
    BookingStateConflictError,
    NotFoundError,
    PaymentGatewayUnavailableError,
    ProblemDetailsException,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.tour import Tour
from ..models.user import User
from .booking_lifecycle import ACTIVE_STATUSES, Transition, Trigger, apply_transition, plan_transition
from .notification_service import BookingNotice, BookingNotifier
from .payment_gateway import PaymentGateway, VerificationStatus
from .slot_ledger import SlotLedger

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS = 50
ADMIN_CANCEL_REASON = "Cancelled by admin"


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of applying a gateway verification to a booking."""

    booking: Booking
    status: VerificationStatus
    changed: bool

    @property
    def booking_status(self) -> BookingStatus:
        return BookingStatus(self.booking.status)


def _duplicate_booking_error(user_id: UUID, tour_id: UUID) -> BookingRuleError:
    return BookingRuleError(
        detail="You already have an active booking for this tour",
        code="DUPLICATE_ACTIVE_BOOKING",
        tour_id=str(tour_id),
        user_id=str(user_id),
    )


def ensure_payable(booking: Booking) -> None:
    """Raise unless the booking can still be paid for."""
    status = BookingStatus(booking.status)
    if status is BookingStatus.CONFIRMED:
        raise BookingStateConflictError(
            str(booking.id),
            status.value,
            detail="This booking has already been paid for",
            code="ALREADY_PAID",
        )
    if status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
        raise BookingStateConflictError(
            str(booking.id),
            status.value,
            detail=f"Cannot pay for a {status.value.lower()} booking",
            code="NOT_PAYABLE",
        )


class BookingService:
    """
    Service for booking operations.

    Every mutating method is one unit of work: the slot ledger adjustment and
    the booking row change commit together or not at all. Notifications go
    out only after the commit and never affect the outcome.
    """

    def __init__(self, db: AsyncSession, notifier: Optional[BookingNotifier] = None):
        self.db = db
        self.ledger = SlotLedger(db)
        self.notifier = notifier

    async def create_booking(self, user_id: UUID, tour_id: UUID, participant_count: int) -> Booking:
        """
        Book participant_count slots on a tour for a user.

        Args:
            user_id: Booking user
            tour_id: Tour to book
            participant_count: Number of participants

        Returns:
            The new PENDING booking

        Raises:
            NotFoundError: If the user or the tour does not exist
            BookingRuleError: If the tour already started, the participant count
                is out of range, or the user already holds an active booking
            InsufficientCapacityError: If the tour lacks free slots
        """
        if participant_count < 1 or participant_count > MAX_PARTICIPANTS:
            raise BookingRuleError(
                detail=f"Participant count must be between 1 and {MAX_PARTICIPANTS}",
                code="INVALID_PARTICIPANT_COUNT",
                participant_count=participant_count,
            )

        now = utcnow()
        booking_id = uuid4()

        try:
            async with unit_of_work(self.db):
                user = await self._get_user(user_id)
                tour = await self._get_tour(tour_id)

                if tour.start_date <= now:
                    raise BookingRuleError(
                        detail="Cannot book a tour that has already started",
                        code="TOUR_STARTED",
                        tour_id=str(tour_id),
                    )

                if await self._find_active_booking(user_id, tour_id) is not None:
                    raise _duplicate_booking_error(user_id, tour_id)

                transition = plan_transition(
                    str(booking_id), None, BookingStatus.PENDING, Trigger.CREATE
                )
                await self.ledger.apply(transition.slot_effect, tour_id, participant_count)

                booking = Booking(
                    id=booking_id,
                    tour_id=tour_id,
                    user_id=user_id,
                    participant_count=participant_count,
                    total_amount=tour.price_amount * participant_count,
                    currency=tour.price_currency,
                    status=BookingStatus.PENDING,
                    booked_at=now,
                    updated_at=now,
                )
                self.db.add(booking)
                await self.db.flush()
                notice = self._notice(booking, tour, user)
        except IntegrityError as e:
            # Partial unique index on active (user_id, tour_id) lost a race
            logger.warning(
                "Booking creation hit the active booking constraint",
                extra={"user_id": str(user_id), "tour_id": str(tour_id), "error": str(e)}
            )
            raise _duplicate_booking_error(user_id, tour_id) from e

        metrics_collector.record_booking_created()
        metrics_collector.record_transition("NONE", BookingStatus.PENDING.value, Trigger.CREATE.value)
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "tour_id": str(tour_id),
                "user_id": str(user_id),
                "participant_count": participant_count,
                "total_amount": booking.total_amount,
            }
        )

        if self.notifier is not None:
            await self.notifier.booking_created(notice)
        return booking

    async def cancel_booking(
        self, user_id: UUID, booking_id: UUID, reason: Optional[str] = None
    ) -> Booking:
        """
        Cancel one of the user's own bookings.

        Raises:
            NotFoundError: If the booking does not exist
            AuthorizationError: If the booking belongs to someone else
            BookingStateConflictError: If the booking is already cancelled
            InvalidTransitionError: If the booking is completed
            BookingRuleError: If the tour already started
        """
        async with unit_of_work(self.db):
            booking = await self._lock_booking(booking_id)
            if booking.user_id != user_id:
                logger.warning(
                    "Cancellation refused - booking owned by another user",
                    extra={"booking_id": str(booking_id), "user_id": str(user_id)}
                )
                raise AuthorizationError(detail="You can only cancel your own bookings")

            transition = await self._transition(
                booking, BookingStatus.CANCELLED, Trigger.USER_CANCEL, reason=reason
            )
            notice = await self._notice_for(booking)

        self._record(transition)
        if self.notifier is not None:
            await self.notifier.booking_cancelled(notice)
        return booking

    async def admin_cancel_booking(self, booking_id: UUID, reason: Optional[str] = None) -> Booking:
        """Cancel any booking, regardless of the tour start date."""
        async with unit_of_work(self.db):
            booking = await self._lock_booking(booking_id)
            transition = await self._transition(
                booking,
                BookingStatus.CANCELLED,
                Trigger.ADMIN_CANCEL,
                reason=reason or ADMIN_CANCEL_REASON,
            )
            notice = await self._notice_for(booking)

        self._record(transition)
        if self.notifier is not None:
            await self.notifier.booking_cancelled(notice)
        return booking

    async def admin_set_status(self, booking_id: UUID, new_status: BookingStatus) -> Booking:
        """
        Force a booking into a status.

        Writing the current status again is a no-op. Leaving a slot-holding
        status releases the booking's slots and entering one reserves them.

        Args:
            booking_id: Booking to change
            new_status: Target status

        Returns:
            The booking after the change

        Raises:
            NotFoundError: If the booking does not exist
            BookingLockedError: If the booking is COMPLETED
            InsufficientCapacityError: If a reactivation does not fit on the tour
            BookingRuleError: If a reactivation would give the user a second
                active booking for the tour
        """
        new_status = BookingStatus(new_status)
        try:
            async with unit_of_work(self.db):
                booking = await self._lock_booking(booking_id)
                user_id, tour_id = booking.user_id, booking.tour_id
                transition = await self._transition(
                    booking, new_status, Trigger.ADMIN_OVERRIDE, reason=ADMIN_CANCEL_REASON
                )
                notice = await self._notice_for(booking)
        except IntegrityError as e:
            raise _duplicate_booking_error(user_id, tour_id) from e

        if transition.is_noop:
            return booking

        self._record(transition)
        if new_status is BookingStatus.CANCELLED and self.notifier is not None:
            await self.notifier.booking_cancelled(notice)
        return booking

    async def confirm_payment(
        self, transaction_reference: str, gateway_status: VerificationStatus
    ) -> PaymentOutcome:
        """
        Apply a verified gateway status to the booking that owns the reference.

        A booking that is already CONFIRMED is reported as paid without any
        write, so repeated verifications are harmless. A failed payment only
        moves a PENDING booking to FAILED (releasing its slots). A pending
        verification changes nothing.

        Args:
            transaction_reference: Reference stored when payment was initialized
            gateway_status: Status reported by the gateway

        Returns:
            The outcome and the booking it applies to

        Raises:
            NotFoundError: If no booking carries the reference
            InsufficientCapacityError: If a late success cannot re-reserve slots
        """
        gateway_status = VerificationStatus(gateway_status)
        metrics_collector.record_payment_verification(gateway_status.value)

        transition: Optional[Transition] = None
        async with unit_of_work(self.db):
            booking = await self._lock_booking_by_reference(transaction_reference)
            current = BookingStatus(booking.status)

            if current is BookingStatus.CONFIRMED:
                outcome_status = VerificationStatus.SUCCESS
            elif gateway_status is VerificationStatus.SUCCESS:
                outcome_status = VerificationStatus.SUCCESS
                if current in (BookingStatus.PENDING, BookingStatus.FAILED):
                    transition = await self._transition(
                        booking, BookingStatus.CONFIRMED, Trigger.PAYMENT_SUCCESS
                    )
                else:
                    logger.warning(
                        "Payment succeeded for a booking that can no longer be confirmed",
                        extra={
                            "booking_id": str(booking.id),
                            "status": current.value,
                            "transaction_reference": transaction_reference,
                        }
                    )
            elif gateway_status is VerificationStatus.FAILED:
                outcome_status = VerificationStatus.FAILED
                if current is BookingStatus.PENDING:
                    transition = await self._transition(
                        booking, BookingStatus.FAILED, Trigger.PAYMENT_FAILURE
                    )
            else:
                outcome_status = VerificationStatus.PENDING

            notice = await self._notice_for(booking, transaction_reference=transaction_reference)

        changed = transition is not None
        if changed:
            self._record(transition)

        logger.info(
            "Payment verification applied",
            extra={
                "booking_id": str(booking.id),
                "transaction_reference": transaction_reference,
                "gateway_status": gateway_status.value,
                "booking_status": BookingStatus(booking.status).value,
                "changed": changed,
            }
        )

        if (
            changed
            and transition.target is BookingStatus.CONFIRMED
            and self.notifier is not None
        ):
            await self.notifier.payment_succeeded(notice)

        return PaymentOutcome(booking=booking, status=outcome_status, changed=changed)

    async def attach_payment_reference(self, booking_id: UUID, transaction_reference: str) -> Booking:
        """
        Store a new payment reference on a payable booking.

        A FAILED booking is moved back to PENDING first, which re-reserves its
        slots.

        Raises:
            NotFoundError: If the booking does not exist
            BookingStateConflictError: If the booking is paid, cancelled or completed
            InsufficientCapacityError: If a FAILED booking no longer fits on its tour
        """
        transition: Optional[Transition] = None
        try:
            async with unit_of_work(self.db):
                booking = await self._lock_booking(booking_id)
                user_id, tour_id = booking.user_id, booking.tour_id
                ensure_payable(booking)
                if BookingStatus(booking.status) is BookingStatus.FAILED:
                    transition = await self._transition(
                        booking, BookingStatus.PENDING, Trigger.PAYMENT_RETRY
                    )
                booking.payment_reference = transaction_reference
                booking.payment_started_at = utcnow()
                await self.db.flush()
        except IntegrityError as e:
            raise _duplicate_booking_error(user_id, tour_id) from e

        if transition is not None:
            self._record(transition)
        logger.info(
            "Payment reference attached",
            extra={
                "booking_id": str(booking_id),
                "transaction_reference": transaction_reference,
                "retried": transition is not None,
            }
        )
        return booking

    async def expire_stale_bookings(
        self,
        older_than: datetime,
        limit: int = 100,
        gateway: Optional[PaymentGateway] = None,
    ) -> int:
        """
        Fail PENDING bookings idle since before older_than, releasing their slots.

        A booking is idle since its last checkout was opened, or since it was
        made when it never reached checkout. A booking with an open checkout
        is first verified with the gateway: a settled payment is applied
        instead of expiring the booking, and an unreachable gateway postpones
        the expiry to a later run. Without a gateway, bookings in checkout
        are left alone.

        Each booking is expired in its own unit of work, so one failure does
        not hold back the rest.

        Returns:
            Number of bookings expired
        """
        idle_since = func.coalesce(Booking.payment_started_at, Booking.booked_at)
        stmt = (
            select(Booking.id, Booking.payment_reference)
            .where(Booking.status == BookingStatus.PENDING.value, idle_since < older_than)
            .order_by(idle_since)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        candidates = list(result.all())
        await self.db.commit()

        expired = 0
        for booking_id, transaction_reference in candidates:
            if transaction_reference is not None and await self._checkout_still_open(
                booking_id, transaction_reference, gateway
            ):
                continue

            try:
                async with unit_of_work(self.db):
                    booking = await self._lock_booking(booking_id)
                    if BookingStatus(booking.status) is not BookingStatus.PENDING:
                        continue
                    transition = await self._transition(booking, BookingStatus.FAILED, Trigger.EXPIRE)
            except ProblemDetailsException as e:
                logger.error(
                    "Failed to expire pending booking",
                    extra={"booking_id": str(booking_id), "error": str(e.detail)}
                )
                continue

            self._record(transition)
            expired += 1

        if expired:
            logger.info(
                "Expired stale pending bookings",
                extra={"expired_count": expired, "cutoff": older_than.isoformat()}
            )
        return expired

    async def _checkout_still_open(
        self,
        booking_id: UUID,
        transaction_reference: str,
        gateway: Optional[PaymentGateway],
    ) -> bool:
        """True when a stale booking in checkout must not be expired on this run."""
        if gateway is None:
            logger.info(
                "Expiry skipped - booking is in checkout and no gateway can verify it",
                extra={"booking_id": str(booking_id), "transaction_reference": transaction_reference}
            )
            return True

        try:
            verification = await gateway.verify(transaction_reference)
        except PaymentGatewayUnavailableError as e:
            logger.warning(
                "Expiry postponed - payment gateway unreachable",
                extra={"booking_id": str(booking_id), "error": str(e.detail)}
            )
            return True

        if verification.status is VerificationStatus.PENDING:
            return False

        try:
            outcome = await self.confirm_payment(transaction_reference, verification.status)
        except ProblemDetailsException as e:
            logger.error(
                "Failed to settle checkout before expiry",
                extra={"booking_id": str(booking_id), "error": str(e.detail)}
            )
            return True

        logger.info(
            "Checkout settled instead of expiring",
            extra={
                "booking_id": str(booking_id),
                "transaction_reference": transaction_reference,
                "booking_status": outcome.booking_status.value,
            }
        )
        return True

    async def get_booking_for_user(self, user_id: UUID, booking_id: UUID) -> Booking:
        """Fetch a booking the user owns."""
        booking = await self._get_booking(booking_id)
        if booking.user_id != user_id:
            raise AuthorizationError(detail="You can only view your own bookings")
        return booking

    async def list_bookings_for_user(
        self,
        user_id: UUID,
        status: Optional[BookingStatus] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> tuple[list[Booking], Optional[str]]:
        """List the user's bookings, one page at a time."""
        return await self._list(Booking.user_id == user_id, status=status, cursor=cursor, limit=limit)

    async def admin_get_booking(self, booking_id: UUID) -> Booking:
        return await self._get_booking(booking_id)

    async def admin_list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        tour_id: Optional[UUID] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> tuple[list[Booking], Optional[str]]:
        """List all bookings, optionally narrowed to a status or a tour."""
        criteria = [Booking.tour_id == tour_id] if tour_id is not None else []
        return await self._list(*criteria, status=status, cursor=cursor, limit=limit)

    async def _list(
        self,
        *criteria,
        status: Optional[BookingStatus],
        cursor: Optional[str],
        limit: int,
    ) -> tuple[list[Booking], Optional[str]]:
        stmt = select(Booking).options(selectinload(Booking.tour)).where(*criteria)
        if status is not None:
            stmt = stmt.where(Booking.status == BookingStatus(status).value)

        if cursor:
            try:
                stmt = stmt.where(Booking.id > UUID(cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in booking listing", extra={"cursor": cursor})

        stmt = stmt.order_by(Booking.id).limit(limit + 1)
        result = await self.db.execute(stmt)
        bookings = list(result.scalars().all())

        next_cursor = None
        if len(bookings) > limit:
            bookings = bookings[:limit]
            next_cursor = str(bookings[-1].id)
        return bookings, next_cursor

    async def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        trigger: Trigger,
        *,
        reason: Optional[str] = None,
    ) -> Transition:
        """
        Validate a status change, claim it, move the slots it implies, then write it.

        The claim is a conditional UPDATE on the status the transition was
        planned from. Row locks are not enough on every backend (SQLite ignores
        FOR UPDATE), so a request that lost a race finds no row to update and
        fails before the ledger is touched.
        """
        now = utcnow()
        tour = await self._get_tour(booking.tour_id)
        transition = plan_transition(
            str(booking.id),
            booking.status,
            target,
            trigger,
            tour_started=tour.start_date <= now,
        )
        if transition.is_noop:
            return transition

        claimed = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == transition.source.value)
            .values(status=transition.target.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self._raise_stale_status(booking.id, transition)

        await self.ledger.apply(transition.slot_effect, booking.tour_id, booking.participant_count)
        apply_transition(booking, transition, now=now, reason=reason)
        await self.db.flush()

        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking.id),
                "from_status": transition.source.value,
                "to_status": transition.target.value,
                "trigger": trigger.value,
                "slot_effect": transition.slot_effect.value,
            }
        )
        return transition

    async def _raise_stale_status(self, booking_id: UUID, transition: Transition) -> None:
        current = await self.db.scalar(select(Booking.status).where(Booking.id == booking_id))
        current = BookingStatus(current)
        logger.warning(
            "Booking status changed by a concurrent request",
            extra={
                "booking_id": str(booking_id),
                "expected_status": transition.source.value,
                "current_status": current.value,
                "trigger": transition.trigger.value,
            }
        )
        if current is transition.target:
            raise BookingStateConflictError(str(booking_id), current.value)
        raise BookingStateConflictError(
            str(booking_id),
            current.value,
            detail=f"Booking {booking_id} changed from {transition.source.value} to "
                   f"{current.value} while this request was in progress",
            code="CONCURRENT_STATUS_CHANGE",
        )

    def _record(self, transition: Transition) -> None:
        metrics_collector.record_transition(
            transition.source.value if transition.source is not None else "NONE",
            transition.target.value,
            transition.trigger.value,
        )

    async def _lock_booking(self, booking_id: UUID) -> Booking:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def _lock_booking_by_reference(self, transaction_reference: str) -> Booking:
        stmt = (
            select(Booking)
            .where(Booking.payment_reference == transaction_reference)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if booking is None:
            logger.warning(
                "No booking found for transaction reference",
                extra={"transaction_reference": transaction_reference}
            )
            raise NotFoundError(
                resource_type="payment",
                resource_id=transaction_reference,
                detail=f"No booking found for transaction reference '{transaction_reference}'",
            )
        return booking

    async def _get_booking(self, booking_id: UUID) -> Booking:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.tour), selectinload(Booking.user))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def _find_active_booking(self, user_id: UUID, tour_id: UUID) -> Optional[Booking]:
        stmt = select(Booking).where(
            Booking.user_id == user_id,
            Booking.tour_id == tour_id,
            Booking.status.in_([status.value for status in ACTIVE_STATUSES]),
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _get_tour(self, tour_id: UUID) -> Tour:
        tour = await self.db.get(Tour, tour_id)
        if tour is None:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour

    async def _get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource_type="user", resource_id=str(user_id))
        return user

    async def _notice_for(
        self, booking: Booking, transaction_reference: Optional[str] = None
    ) -> BookingNotice:
        tour = await self._get_tour(booking.tour_id)
        user = await self._get_user(booking.user_id)
        return self._notice(booking, tour, user, transaction_reference)

    @staticmethod
    def _notice(
        booking: Booking,
        tour: Tour,
        user: User,
        transaction_reference: Optional[str] = None,
    ) -> BookingNotice:
        return BookingNotice(
            booking_id=booking.id,
            email=user.email,
            user_name=user.display_name,
            tour_name=tour.name,
            participant_count=booking.participant_count,
            total_amount=booking.total_amount,
            currency=booking.currency,
            tour_start=tour.start_date,
            tour_end=tour.end_date,
            booked_at=booking.booked_at,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            paid_at=booking.paid_at,
            transaction_reference=transaction_reference or booking.payment_reference,
        )
