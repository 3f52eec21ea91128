"""
Booking lifecycle state machine.

Decides whether a booking may move between two statuses for a given trigger
and which slot ledger operation the move implies. Nothing here touches the
database; the booking service applies the returned plan inside its unit of
work.

The slot effect of a transition is derived from whether the source and target
statuses hold slots, never chosen per call site. A booking that already
released its claim therefore cannot release it again, and a booking that
holds a claim cannot acquire a second one.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..core.exceptions import (
    BookingLockedError,
    BookingRuleError,
    BookingStateConflictError,
    InvalidTransitionError,
)
from ..models.booking import Booking, BookingStatus


class Trigger(str, Enum):
    """What is asking for the status change."""
    CREATE = "CREATE"
    USER_CANCEL = "USER_CANCEL"
    ADMIN_CANCEL = "ADMIN_CANCEL"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILURE = "PAYMENT_FAILURE"
    PAYMENT_RETRY = "PAYMENT_RETRY"
    EXPIRE = "EXPIRE"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"


class SlotEffect(str, Enum):
    """Slot ledger operation implied by a transition."""
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    NONE = "NONE"


# Statuses whose participants are counted in Tour.reserved_slots
HOLDING_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
})

# Statuses that block a second booking by the same user for the same tour
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

_CANCELLABLE = {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.FAILED}

_ALLOWED: dict[Trigger, frozenset[tuple[Optional[BookingStatus], BookingStatus]]] = {
    Trigger.CREATE: frozenset({(None, BookingStatus.PENDING)}),
    Trigger.USER_CANCEL: frozenset((s, BookingStatus.CANCELLED) for s in _CANCELLABLE),
    Trigger.ADMIN_CANCEL: frozenset((s, BookingStatus.CANCELLED) for s in _CANCELLABLE),
    Trigger.PAYMENT_SUCCESS: frozenset({
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.FAILED, BookingStatus.CONFIRMED),
    }),
    Trigger.PAYMENT_FAILURE: frozenset({(BookingStatus.PENDING, BookingStatus.FAILED)}),
    Trigger.PAYMENT_RETRY: frozenset({(BookingStatus.FAILED, BookingStatus.PENDING)}),
    Trigger.EXPIRE: frozenset({(BookingStatus.PENDING, BookingStatus.FAILED)}),
}


def holds_slots(status: Optional[BookingStatus]) -> bool:
    """Whether a booking in this status is counted against its tour's capacity."""
    return status is not None and BookingStatus(status) in HOLDING_STATUSES


def slot_effect_for(source: Optional[BookingStatus], target: BookingStatus) -> SlotEffect:
    """Ledger operation needed to keep reserved_slots equal to the held participants."""
    before, after = holds_slots(source), holds_slots(target)
    if after and not before:
        return SlotEffect.RESERVE
    if before and not after:
        return SlotEffect.RELEASE
    return SlotEffect.NONE


@dataclass(frozen=True)
class Transition:
    """A validated status change and the slot ledger operation it requires."""

    source: Optional[BookingStatus]
    target: BookingStatus
    trigger: Trigger

    @property
    def slot_effect(self) -> SlotEffect:
        return slot_effect_for(self.source, self.target)

    @property
    def is_noop(self) -> bool:
        return self.source == self.target


def plan_transition(
    booking_id: str,
    source: Optional[BookingStatus],
    target: BookingStatus,
    trigger: Trigger,
    *,
    tour_started: bool = False,
) -> Transition:
    """
    Validate a status change.

    Args:
        booking_id: Booking identifier, used in error payloads
        source: Current status (None for a booking being created)
        target: Requested status
        trigger: What is asking for the change
        tour_started: Whether the tour has already started (user cancellation guard)

    Returns:
        The validated transition

    Raises:
        BookingLockedError: A COMPLETED booking would be changed by an admin
        BookingStateConflictError: The booking is already in the requested state
        BookingRuleError: A user cancels after the tour started
        InvalidTransitionError: The trigger does not allow this change
    """
    source = BookingStatus(source) if source is not None else None
    target = BookingStatus(target)

    if trigger is Trigger.ADMIN_OVERRIDE:
        if source is BookingStatus.COMPLETED and target is not BookingStatus.COMPLETED:
            raise BookingLockedError(booking_id, target.value)
        if source is None:
            raise InvalidTransitionError(None, target.value, trigger.value)
        return Transition(source, target, trigger)

    if source is not None and source == target:
        raise BookingStateConflictError(booking_id, source.value)

    if (source, target) not in _ALLOWED[trigger]:
        raise InvalidTransitionError(
            source.value if source is not None else None, target.value, trigger.value
        )

    if trigger is Trigger.USER_CANCEL and tour_started:
        raise BookingRuleError(
            detail="Cannot cancel a booking for a tour that has already started",
            code="TOUR_STARTED",
            booking_id=booking_id,
        )

    return Transition(source, target, trigger)


def apply_transition(
    booking: Booking,
    transition: Transition,
    *,
    now: datetime,
    reason: Optional[str] = None,
) -> None:
    """Write a validated transition onto the booking's lifecycle fields."""
    source, target = transition.source, transition.target
    booking.status = target

    if target is BookingStatus.CANCELLED and source is not BookingStatus.CANCELLED:
        booking.cancelled_at = now
        booking.cancellation_reason = reason
    elif source is BookingStatus.CANCELLED and target is not BookingStatus.CANCELLED:
        booking.cancelled_at = None
        booking.cancellation_reason = None

    if (
        transition.trigger is Trigger.PAYMENT_SUCCESS
        and target is BookingStatus.CONFIRMED
        and booking.paid_at is None
    ):
        booking.paid_at = now
