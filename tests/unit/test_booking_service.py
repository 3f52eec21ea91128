"""Unit tests for the booking service."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update

from tourbook.core.database import utcnow
from tourbook.core.exceptions import (
    AuthorizationError,
    BookingLockedError,
    BookingRuleError,
    BookingStateConflictError,
    InsufficientCapacityError,
    NotFoundError,
)
from tourbook.models.booking import Booking, BookingStatus
from tourbook.services.booking_service import ADMIN_CANCEL_REASON, BookingService
from tourbook.services.payment_gateway import VerificationStatus
from tourbook.services.tour_service import TourService


async def _reserved(session, tour_id) -> int:
    tour = await TourService(session).get_tour_by_id_or_raise(tour_id)
    return tour.reserved_slots


async def _status(session, booking_id) -> BookingStatus:
    booking = await BookingService(session).admin_get_booking(booking_id)
    return BookingStatus(booking.status)


async def _start_tour(session, tour_id) -> None:
    tour = await TourService(session).get_tour_by_id_or_raise(tour_id)
    tour.start_date = utcnow() - timedelta(hours=1)
    await session.commit()


@pytest.mark.asyncio
async def test_create_booking(test_session, make_user, make_tour, notifier, email_sender):
    provider = await make_user(name="Tour Operator")
    customer = await make_user(name="Selam Tesfaye")
    tour = await make_tour(provider.id, capacity=10, price_amount=150_000)
    tour_id = tour.id

    booking = await BookingService(test_session, notifier).create_booking(customer.id, tour_id, 3)

    assert booking.status == BookingStatus.PENDING
    assert booking.participant_count == 3
    assert booking.total_amount == 450_000
    assert booking.currency == "ETB"
    assert booking.payment_reference is None
    assert await _reserved(test_session, tour_id) == 3

    assert email_sender.kinds() == ["booking_confirmation"]
    assert email_sender.messages[0].to == customer.email
    assert "Selam Tesfaye" in email_sender.messages[0].text


@pytest.mark.asyncio
async def test_two_users_compete_for_last_slots(test_session, make_user, make_tour):
    provider = await make_user()
    first = await make_user()
    second = await make_user()
    first_id, second_id = first.id, second.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    await service.create_booking(first_id, tour_id, 3)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await service.create_booking(second_id, tour_id, 3)
    assert exc_info.value.remaining == 2
    assert exc_info.value.problem_details["code"] == "INSUFFICIENT_CAPACITY"

    booking = await service.create_booking(second_id, tour_id, 2)
    assert booking.status == BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 5


@pytest.mark.asyncio
async def test_create_booking_unknown_tour(test_session, make_user):
    customer = await make_user()

    with pytest.raises(NotFoundError):
        await BookingService(test_session).create_booking(customer.id, uuid4(), 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("participant_count", [0, 51])
async def test_create_booking_participant_count_out_of_range(
    test_session, make_user, make_tour, participant_count
):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id)

    with pytest.raises(BookingRuleError) as exc_info:
        await BookingService(test_session).create_booking(customer.id, tour.id, participant_count)
    assert exc_info.value.code == "INVALID_PARTICIPANT_COUNT"


@pytest.mark.asyncio
async def test_cannot_book_started_tour(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, starts_in=timedelta(hours=-1))
    tour_id = tour.id

    with pytest.raises(BookingRuleError) as exc_info:
        await BookingService(test_session).create_booking(customer.id, tour_id, 1)

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "TOUR_STARTED"
    assert await _reserved(test_session, tour_id) == 0


@pytest.mark.asyncio
async def test_duplicate_active_booking(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=10)
    tour_id = tour.id
    service = BookingService(test_session)

    first = await service.create_booking(customer_id, tour_id, 2)
    first_id = first.id

    with pytest.raises(BookingRuleError) as exc_info:
        await service.create_booking(customer_id, tour_id, 1)
    assert exc_info.value.code == "DUPLICATE_ACTIVE_BOOKING"
    assert await _reserved(test_session, tour_id) == 2

    # A cancelled booking no longer blocks a new one
    await service.cancel_booking(customer_id, first_id)
    second = await service.create_booking(customer_id, tour_id, 1)
    assert second.status == BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 1


@pytest.mark.asyncio
async def test_cancel_releases_slots(test_session, make_user, make_tour, notifier, email_sender):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session, notifier)

    booking = await service.create_booking(customer_id, tour_id, 4)
    cancelled = await service.cancel_booking(customer_id, booking.id, reason="Change of plans")

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "Change of plans"
    assert await _reserved(test_session, tour_id) == 0
    assert email_sender.kinds() == ["booking_confirmation", "booking_cancellation"]


@pytest.mark.asyncio
async def test_cancel_twice_is_conflict(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer_id, tour_id, 2)
    booking_id = booking.id
    await service.cancel_booking(customer_id, booking_id)

    with pytest.raises(BookingStateConflictError) as exc_info:
        await service.cancel_booking(customer_id, booking_id)

    assert exc_info.value.status_code == 409
    # Slots were released exactly once
    assert await _reserved(test_session, tour_id) == 0


@pytest.mark.asyncio
async def test_cancel_someone_elses_booking(test_session, make_user, make_tour):
    provider = await make_user()
    owner = await make_user()
    intruder = await make_user()
    intruder_id = intruder.id
    tour = await make_tour(provider.id)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(owner.id, tour_id, 2)
    booking_id = booking.id

    with pytest.raises(AuthorizationError):
        await service.cancel_booking(intruder_id, booking_id)

    assert await _status(test_session, booking_id) is BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_user_cannot_cancel_after_start_but_admin_can(
    test_session, make_user, make_tour, notifier, email_sender
):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session, notifier)

    booking = await service.create_booking(customer_id, tour_id, 2)
    booking_id = booking.id
    await _start_tour(test_session, tour_id)

    with pytest.raises(BookingRuleError) as exc_info:
        await service.cancel_booking(customer_id, booking_id)
    assert exc_info.value.code == "TOUR_STARTED"
    assert await _status(test_session, booking_id) is BookingStatus.PENDING

    cancelled = await service.admin_cancel_booking(booking_id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == ADMIN_CANCEL_REASON
    assert await _reserved(test_session, tour_id) == 0
    assert email_sender.kinds()[-1] == "booking_cancellation"


@pytest.mark.asyncio
async def test_admin_reactivation_needs_capacity(test_session, make_user, make_tour):
    provider = await make_user()
    first = await make_user()
    second = await make_user()
    first_id, second_id = first.id, second.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(first_id, tour_id, 4)
    booking_id = booking.id
    await service.cancel_booking(first_id, booking_id)
    await service.create_booking(second_id, tour_id, 2)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await service.admin_set_status(booking_id, BookingStatus.CONFIRMED)

    assert exc_info.value.remaining == 3
    assert await _status(test_session, booking_id) is BookingStatus.CANCELLED
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_admin_reactivation_reserves_and_clears_cancellation(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer_id, tour_id, 3)
    await service.cancel_booking(customer_id, booking.id, reason="Mistake")

    restored = await service.admin_set_status(booking.id, BookingStatus.CONFIRMED)

    assert restored.status == BookingStatus.CONFIRMED
    assert restored.cancelled_at is None
    assert restored.cancellation_reason is None
    assert await _reserved(test_session, tour_id) == 3


@pytest.mark.asyncio
async def test_admin_reactivation_rejects_second_active_booking(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=10)
    tour_id = tour.id
    service = BookingService(test_session)

    old = await service.create_booking(customer_id, tour_id, 2)
    old_id = old.id
    await service.cancel_booking(customer_id, old_id)
    await service.create_booking(customer_id, tour_id, 1)

    with pytest.raises(BookingRuleError) as exc_info:
        await service.admin_set_status(old_id, BookingStatus.PENDING)

    assert exc_info.value.code == "DUPLICATE_ACTIVE_BOOKING"
    assert await _status(test_session, old_id) is BookingStatus.CANCELLED
    assert await _reserved(test_session, tour_id) == 1


@pytest.mark.asyncio
async def test_completed_booking_is_locked(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer.id, tour_id, 2)
    booking_id = booking.id
    completed = await service.admin_set_status(booking_id, BookingStatus.COMPLETED)
    assert completed.status == BookingStatus.COMPLETED
    assert await _reserved(test_session, tour_id) == 2

    with pytest.raises(BookingLockedError) as exc_info:
        await service.admin_set_status(booking_id, BookingStatus.CANCELLED)

    assert exc_info.value.status_code == 400
    assert await _status(test_session, booking_id) is BookingStatus.COMPLETED
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_admin_set_same_status_is_noop(test_session, make_user, make_tour, notifier, email_sender):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session, notifier)

    booking = await service.create_booking(customer.id, tour_id, 2)
    unchanged = await service.admin_set_status(booking.id, BookingStatus.PENDING)

    assert unchanged.status == BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2
    assert email_sender.kinds() == ["booking_confirmation"]


@pytest.mark.asyncio
async def test_payment_success_is_idempotent(test_session, make_user, make_tour, notifier, email_sender):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session, notifier)

    booking = await service.create_booking(customer.id, tour_id, 2)
    await service.attach_payment_reference(booking.id, "TXN-success-1")

    outcome = await service.confirm_payment("TXN-success-1", VerificationStatus.SUCCESS)
    assert outcome.changed
    assert outcome.status is VerificationStatus.SUCCESS
    assert outcome.booking_status is BookingStatus.CONFIRMED
    paid_at = outcome.booking.paid_at
    assert paid_at is not None

    again = await service.confirm_payment("TXN-success-1", VerificationStatus.SUCCESS)
    assert not again.changed
    assert again.booking_status is BookingStatus.CONFIRMED
    assert again.booking.paid_at == paid_at

    assert await _reserved(test_session, tour_id) == 2
    assert email_sender.kinds().count("payment_success") == 1


@pytest.mark.asyncio
async def test_payment_failure_releases_and_retry_reserves(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer.id, tour_id, 3)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-fail-1")

    outcome = await service.confirm_payment("TXN-fail-1", VerificationStatus.FAILED)
    assert outcome.changed
    assert outcome.booking_status is BookingStatus.FAILED
    assert await _reserved(test_session, tour_id) == 0

    # A repeated failure report changes nothing
    repeated = await service.confirm_payment("TXN-fail-1", VerificationStatus.FAILED)
    assert not repeated.changed
    assert await _reserved(test_session, tour_id) == 0

    retried = await service.attach_payment_reference(booking_id, "TXN-fail-2")
    assert retried.status == BookingStatus.PENDING
    assert retried.payment_reference == "TXN-fail-2"
    assert await _reserved(test_session, tour_id) == 3


@pytest.mark.asyncio
async def test_late_success_on_failed_booking_reacquires_slots(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer.id, tour_id, 2)
    await service.attach_payment_reference(booking.id, "TXN-late-1")
    await service.confirm_payment("TXN-late-1", VerificationStatus.FAILED)
    assert await _reserved(test_session, tour_id) == 0

    outcome = await service.confirm_payment("TXN-late-1", VerificationStatus.SUCCESS)

    assert outcome.changed
    assert outcome.booking_status is BookingStatus.CONFIRMED
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_pending_verification_changes_nothing(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer.id, tour_id, 2)
    await service.attach_payment_reference(booking.id, "TXN-wait-1")

    outcome = await service.confirm_payment("TXN-wait-1", VerificationStatus.PENDING)

    assert not outcome.changed
    assert outcome.status is VerificationStatus.PENDING
    assert outcome.booking_status is BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_payment_success_for_cancelled_booking_is_not_applied(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(customer_id, tour_id, 2)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-gone-1")
    await service.cancel_booking(customer_id, booking_id)

    outcome = await service.confirm_payment("TXN-gone-1", VerificationStatus.SUCCESS)

    assert not outcome.changed
    assert outcome.booking_status is BookingStatus.CANCELLED
    assert await _reserved(test_session, tour_id) == 0


@pytest.mark.asyncio
async def test_confirm_unknown_reference(test_session):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).confirm_payment("TXN-missing", VerificationStatus.SUCCESS)


@pytest.mark.asyncio
async def test_attach_reference_refuses_paid_and_cancelled(test_session, make_user, make_tour):
    provider = await make_user()
    first = await make_user()
    second = await make_user()
    first_id, second_id = first.id, second.id
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    paid = await service.create_booking(first_id, tour_id, 1)
    paid_id = paid.id
    await service.attach_payment_reference(paid_id, "TXN-paid-1")
    await service.confirm_payment("TXN-paid-1", VerificationStatus.SUCCESS)

    with pytest.raises(BookingStateConflictError) as exc_info:
        await service.attach_payment_reference(paid_id, "TXN-paid-2")
    assert exc_info.value.code == "ALREADY_PAID"

    cancelled = await service.create_booking(second_id, tour_id, 1)
    cancelled_id = cancelled.id
    await service.cancel_booking(second_id, cancelled_id)

    with pytest.raises(BookingStateConflictError) as exc_info:
        await service.attach_payment_reference(cancelled_id, "TXN-cancelled-1")
    assert exc_info.value.code == "NOT_PAYABLE"


@pytest.mark.asyncio
async def test_expire_stale_bookings(test_session, make_user, make_tour):
    provider = await make_user()
    stale_user = await make_user()
    fresh_user = await make_user()
    paid_user = await make_user()
    tour = await make_tour(provider.id, capacity=10)
    tour_id = tour.id
    service = BookingService(test_session)

    stale = await service.create_booking(stale_user.id, tour_id, 2)
    stale_id = stale.id
    fresh = await service.create_booking(fresh_user.id, tour_id, 3)
    fresh_id = fresh.id
    paid = await service.create_booking(paid_user.id, tour_id, 1)
    paid_id = paid.id
    await service.attach_payment_reference(paid_id, "TXN-expiry-1")
    await service.confirm_payment("TXN-expiry-1", VerificationStatus.SUCCESS)

    two_hours_ago = utcnow() - timedelta(hours=2)
    await test_session.execute(
        update(Booking)
        .where(Booking.id.in_([stale_id, paid_id]))
        .values(booked_at=two_hours_ago)
    )
    await test_session.commit()

    expired = await service.expire_stale_bookings(utcnow() - timedelta(minutes=60))

    assert expired == 1
    assert await _status(test_session, stale_id) is BookingStatus.FAILED
    assert await _status(test_session, fresh_id) is BookingStatus.PENDING
    assert await _status(test_session, paid_id) is BookingStatus.CONFIRMED
    assert await _reserved(test_session, tour_id) == 4

    assert await service.expire_stale_bookings(utcnow() - timedelta(minutes=60)) == 0


async def _backdate_checkout(session, booking_id, hours: int = 2) -> None:
    long_ago = utcnow() - timedelta(hours=hours)
    await session.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(booked_at=long_ago, payment_started_at=long_ago)
    )
    await session.commit()


@pytest.mark.asyncio
async def test_expiry_confirms_checkout_the_gateway_reports_paid(
    test_session, make_user, make_tour, payment_gateway
):
    provider = await make_user()
    payer = await make_user()
    latecomer = await make_user()
    latecomer_id = latecomer.id
    tour = await make_tour(provider.id, capacity=2)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(payer.id, tour_id, 2)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-paid-late")
    await _backdate_checkout(test_session, booking_id)

    payment_gateway.status = VerificationStatus.SUCCESS
    expired = await service.expire_stale_bookings(
        utcnow() - timedelta(minutes=60), gateway=payment_gateway
    )

    assert expired == 0
    assert payment_gateway.verified == ["TXN-paid-late"]
    assert await _status(test_session, booking_id) is BookingStatus.CONFIRMED
    assert await _reserved(test_session, tour_id) == 2

    with pytest.raises(InsufficientCapacityError):
        await service.create_booking(latecomer_id, tour_id, 2)

    outcome = await service.confirm_payment("TXN-paid-late", VerificationStatus.SUCCESS)
    assert outcome.booking_status is BookingStatus.CONFIRMED
    assert outcome.changed is False
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_expiry_applies_failed_checkout_without_counting_it(
    test_session, make_user, make_tour, payment_gateway
):
    provider = await make_user()
    payer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(payer.id, tour_id, 3)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-declined")
    await _backdate_checkout(test_session, booking_id)

    payment_gateway.status = VerificationStatus.FAILED
    expired = await service.expire_stale_bookings(
        utcnow() - timedelta(minutes=60), gateway=payment_gateway
    )

    assert expired == 0
    assert await _status(test_session, booking_id) is BookingStatus.FAILED
    assert await _reserved(test_session, tour_id) == 0


@pytest.mark.asyncio
async def test_expiry_ttl_runs_from_checkout_start(
    test_session, make_user, make_tour, payment_gateway
):
    provider = await make_user()
    payer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(payer.id, tour_id, 2)
    booking_id = booking.id
    await test_session.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(booked_at=utcnow() - timedelta(hours=2))
    )
    await test_session.commit()
    await service.attach_payment_reference(booking_id, "TXN-fresh-checkout")

    payment_gateway.status = VerificationStatus.PENDING
    cutoff = utcnow() - timedelta(minutes=60)

    assert await service.expire_stale_bookings(cutoff, gateway=payment_gateway) == 0
    assert payment_gateway.verified == []
    assert await _status(test_session, booking_id) is BookingStatus.PENDING

    await _backdate_checkout(test_session, booking_id)

    assert await service.expire_stale_bookings(cutoff, gateway=payment_gateway) == 1
    assert payment_gateway.verified == ["TXN-fresh-checkout"]
    assert await _status(test_session, booking_id) is BookingStatus.FAILED
    assert await _reserved(test_session, tour_id) == 0


@pytest.mark.asyncio
async def test_unreachable_gateway_postpones_expiry(
    test_session, make_user, make_tour, payment_gateway
):
    provider = await make_user()
    payer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(payer.id, tour_id, 2)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-gateway-down")
    await _backdate_checkout(test_session, booking_id)

    payment_gateway.unavailable = True
    cutoff = utcnow() - timedelta(minutes=60)

    assert await service.expire_stale_bookings(cutoff, gateway=payment_gateway) == 0
    assert await _status(test_session, booking_id) is BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2

    payment_gateway.unavailable = False
    payment_gateway.status = VerificationStatus.PENDING
    assert await service.expire_stale_bookings(cutoff, gateway=payment_gateway) == 1
    assert await _status(test_session, booking_id) is BookingStatus.FAILED


@pytest.mark.asyncio
async def test_checkout_is_left_alone_without_a_gateway(test_session, make_user, make_tour):
    provider = await make_user()
    payer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    service = BookingService(test_session)

    booking = await service.create_booking(payer.id, tour_id, 2)
    booking_id = booking.id
    await service.attach_payment_reference(booking_id, "TXN-no-gateway")
    await _backdate_checkout(test_session, booking_id)

    assert await service.expire_stale_bookings(utcnow() - timedelta(minutes=60)) == 0
    assert await _status(test_session, booking_id) is BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_booking(
    test_session, make_user, make_tour, notifier, email_sender
):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    tour_id = tour.id
    email_sender.fail = True

    booking = await BookingService(test_session, notifier).create_booking(customer.id, tour_id, 2)

    assert booking.status == BookingStatus.PENDING
    assert email_sender.messages == []
    assert await _status(test_session, booking.id) is BookingStatus.PENDING
    assert await _reserved(test_session, tour_id) == 2


@pytest.mark.asyncio
async def test_slow_notification_is_abandoned(
    test_session, make_user, make_tour, notifier, email_sender
):
    provider = await make_user()
    customer = await make_user()
    tour = await make_tour(provider.id, capacity=5)
    email_sender.delay_seconds = 2.0

    booking = await BookingService(test_session, notifier).create_booking(customer.id, tour.id, 1)

    assert booking.status == BookingStatus.PENDING
    assert email_sender.messages == []


@pytest.mark.asyncio
async def test_get_booking_for_other_user(test_session, make_user, make_tour):
    provider = await make_user()
    owner = await make_user()
    other = await make_user()
    tour = await make_tour(provider.id)
    service = BookingService(test_session)

    booking = await service.create_booking(owner.id, tour.id, 1)

    fetched = await service.get_booking_for_user(owner.id, booking.id)
    assert fetched.id == booking.id
    with pytest.raises(AuthorizationError):
        await service.get_booking_for_user(other.id, booking.id)


@pytest.mark.asyncio
async def test_list_bookings_pagination_and_filter(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    customer_id = customer.id
    service = BookingService(test_session)

    booking_ids = []
    for index in range(3):
        tour = await make_tour(provider.id, name=f"Tour {index}")
        booking = await service.create_booking(customer_id, tour.id, 1)
        booking_ids.append(booking.id)
    await service.cancel_booking(customer_id, booking_ids[0])

    page, next_cursor = await service.list_bookings_for_user(customer_id, limit=2)
    assert len(page) == 2
    assert next_cursor is not None

    rest, final_cursor = await service.list_bookings_for_user(customer_id, cursor=next_cursor, limit=2)
    assert len(rest) == 1
    assert final_cursor is None
    assert {b.id for b in page + rest} == set(booking_ids)

    cancelled, _ = await service.list_bookings_for_user(customer_id, status=BookingStatus.CANCELLED)
    assert [b.id for b in cancelled] == [booking_ids[0]]

    everything, _ = await service.admin_list_bookings(status=BookingStatus.PENDING)
    assert len(everything) == 2
