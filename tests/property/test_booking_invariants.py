"""Property-based tests for booking system invariants."""

import asyncio
from datetime import timedelta

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourbook.core.database import Base, build_engine, utcnow
from tourbook.core.exceptions import ProblemDetailsException
from tourbook.models import Booking, Tour, User
from tourbook.models.booking import BookingStatus
from tourbook.services.booking_lifecycle import HOLDING_STATUSES
from tourbook.services.booking_service import BookingService
from tourbook.services.payment_gateway import VerificationStatus

USERS = 4

# Strategies for generating test data
capacity_values = st.integers(min_value=1, max_value=12)
participant_counts = st.integers(min_value=1, max_value=6)
user_indexes = st.integers(min_value=0, max_value=USERS - 1)
settable_statuses = st.sampled_from(list(BookingStatus))

operations = st.one_of(
    st.tuples(st.just("create"), user_indexes, participant_counts),
    st.tuples(st.just("cancel"), user_indexes, st.just(0)),
    st.tuples(st.just("pay"), user_indexes, st.sampled_from(list(VerificationStatus))),
    st.tuples(st.just("retry"), user_indexes, st.just(0)),
    st.tuples(st.just("admin_set"), user_indexes, settable_statuses),
    st.tuples(st.just("expire"), st.just(0), st.just(0)),
)


async def _run_scenario(capacity: int, steps: list) -> tuple[int, int, list]:
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as db:
            users = [User(email=f"user{i}@example.com", name=f"User {i}") for i in range(USERS)]
            db.add_all(users)
            await db.flush()
            start = utcnow() + timedelta(days=10)
            tour = Tour(
                provider_id=users[0].id,
                name="Property Tour",
                location="Axum",
                start_date=start,
                end_date=start + timedelta(days=1),
                price_amount=10_000,
                price_currency="ETB",
                capacity=capacity,
                reserved_slots=0,
            )
            db.add(tour)
            await db.commit()
            user_ids = [user.id for user in users]
            tour_id = tour.id

            service = BookingService(db)
            latest: dict[int, object] = {}
            references = 0

            for action, user_index, argument in steps:
                booking_id = latest.get(user_index)
                try:
                    if action == "create":
                        booking = await service.create_booking(user_ids[user_index], tour_id, argument)
                        latest[user_index] = booking.id
                    elif action == "expire":
                        await service.expire_stale_bookings(utcnow() + timedelta(minutes=1))
                    elif booking_id is None:
                        continue
                    elif action == "cancel":
                        await service.cancel_booking(user_ids[user_index], booking_id)
                    elif action in ("pay", "retry"):
                        references += 1
                        reference = f"TXN-{references}"
                        await service.attach_payment_reference(booking_id, reference)
                        if action == "pay":
                            await service.confirm_payment(reference, argument)
                    elif action == "admin_set":
                        await service.admin_set_status(booking_id, argument)
                except ProblemDetailsException:
                    pass

            reserved = await db.scalar(
                select(Tour.reserved_slots)
                .where(Tour.id == tour_id)
                .execution_options(populate_existing=True)
            )
            rows = (await db.execute(
                select(Booking.user_id, Booking.status, Booking.participant_count)
            )).all()
    finally:
        await engine.dispose()

    held = sum(count for _, status, count in rows if BookingStatus(status) in HOLDING_STATUSES)
    return reserved, held, rows


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(capacity=capacity_values, steps=st.lists(operations, min_size=1, max_size=25))
def test_reserved_slots_match_held_participants(capacity, steps):
    """Whatever happens, the ledger equals the participants of slot-holding bookings."""
    reserved, held, rows = asyncio.run(_run_scenario(capacity, steps))

    assert reserved == held
    assert 0 <= reserved <= capacity

    active_per_user: dict = {}
    for user_id, status, _ in rows:
        if BookingStatus(status) in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            active_per_user[user_id] = active_per_user.get(user_id, 0) + 1
    assert all(count == 1 for count in active_per_user.values())
