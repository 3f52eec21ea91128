"""Unit tests for tour service."""

from datetime import timedelta
from uuid import uuid4

import pytest

from tourbook.core.config import settings
from tourbook.core.database import utcnow
from tourbook.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tourbook.schemas.common import Money
from tourbook.schemas.tour import CreateTourRequest, SearchToursRequest, UpdateTourRequest
from tourbook.services.booking_service import BookingService
from tourbook.services.tour_service import TourService


def _create_request(**overrides) -> CreateTourRequest:
    start = utcnow() + timedelta(days=20)
    fields = dict(
        name="Bale Mountains Safari",
        description="Ethiopian wolves and the Sanetti plateau",
        location="Bale, Ethiopia",
        start_date=start,
        end_date=start + timedelta(days=3),
        price=Money(amount=900_000, currency="ETB"),
        capacity=12,
    )
    fields.update(overrides)
    return CreateTourRequest(**fields)


@pytest.mark.asyncio
async def test_create_tour(test_session, make_user):
    """Test creating a tour."""
    provider = await make_user()
    service = TourService(test_session)

    tour = await service.create_tour(provider.id, _create_request())

    assert tour.id is not None
    assert tour.provider_id == provider.id
    assert tour.name == "Bale Mountains Safari"
    assert tour.price_amount == 900_000
    assert tour.price_currency == "ETB"
    assert tour.capacity == 12
    assert tour.reserved_slots == 0
    assert tour.available_slots == 12


def test_create_tour_rejects_reversed_dates():
    start = utcnow() + timedelta(days=5)
    with pytest.raises(ValueError):
        _create_request(start_date=start, end_date=start - timedelta(days=1))


@pytest.mark.asyncio
async def test_get_tour_by_id(test_session, make_user, make_tour):
    """Test getting a tour by ID."""
    provider = await make_user()
    tour = await make_tour(provider.id)
    service = TourService(test_session)

    found = await service.get_tour_by_id(tour.id)
    assert found is not None
    assert found.id == tour.id

    assert await service.get_tour_by_id(uuid4()) is None
    with pytest.raises(NotFoundError):
        await service.get_tour_by_id_or_raise(uuid4())


@pytest.mark.asyncio
async def test_search_tours_filters(test_session, make_user, make_tour):
    provider = await make_user()
    customer = await make_user()
    cheap = await make_tour(provider.id, name="Addis Food Walk", location="Addis Ababa", price_amount=50_000, capacity=2)
    await make_tour(provider.id, name="Omo Valley Journey", location="South Omo", price_amount=3_000_000)
    await make_tour(provider.id, name="Old Harar Evening", location="Harar", starts_in=timedelta(days=-2))
    cheap_id = cheap.id
    service = TourService(test_session)

    tours, next_cursor = await service.search_tours(SearchToursRequest(search="omo"))
    assert [t.name for t in tours] == ["Omo Valley Journey"]
    assert next_cursor is None

    tours, _ = await service.search_tours(SearchToursRequest(location="addis"))
    assert [t.id for t in tours] == [cheap_id]

    tours, _ = await service.search_tours(SearchToursRequest(max_price=100_000))
    assert {t.name for t in tours} == {"Addis Food Walk"}

    tours, _ = await service.search_tours(SearchToursRequest(min_price=1_000_000))
    assert {t.name for t in tours} == {"Omo Valley Journey"}

    tours, _ = await service.search_tours(SearchToursRequest(upcoming_only=True))
    assert {t.name for t in tours} == {"Addis Food Walk", "Omo Valley Journey"}

    await BookingService(test_session).create_booking(customer.id, cheap_id, 2)
    tours, _ = await service.search_tours(SearchToursRequest(available_only=True, upcoming_only=True))
    assert {t.name for t in tours} == {"Omo Valley Journey"}


@pytest.mark.asyncio
async def test_search_tours_pagination(test_session, make_user, make_tour):
    provider = await make_user()
    for index in range(5):
        await make_tour(provider.id, name=f"Tour {index}")
    service = TourService(test_session)

    first_page, cursor = await service.search_tours(SearchToursRequest(limit=3))
    assert len(first_page) == 3
    assert cursor is not None

    second_page, cursor = await service.search_tours(SearchToursRequest(limit=3, cursor=cursor))
    assert len(second_page) == 2
    assert cursor is None
    assert not {t.id for t in first_page} & {t.id for t in second_page}


@pytest.mark.asyncio
async def test_update_tour(test_session, make_user, make_tour):
    provider = await make_user()
    tour = await make_tour(provider.id, capacity=10)

    updated = await TourService(test_session).update_tour(
        provider.id,
        False,
        UpdateTourRequest(tour_id=tour.id, name="Renamed Tour", price=Money(amount=99_900, currency="ETB")),
    )

    assert updated.name == "Renamed Tour"
    assert updated.price_amount == 99_900
    assert updated.capacity == 10


@pytest.mark.asyncio
async def test_update_tour_capacity_below_reserved(test_session, make_user, make_tour):
    provider = await make_user()
    provider_id = provider.id
    customer = await make_user()
    tour = await make_tour(provider_id, capacity=10)
    tour_id = tour.id
    await BookingService(test_session).create_booking(customer.id, tour_id, 4)
    service = TourService(test_session)

    with pytest.raises(ConflictError):
        await service.update_tour(provider_id, False, UpdateTourRequest(tour_id=tour_id, capacity=3))

    shrunk = await service.update_tour(provider_id, False, UpdateTourRequest(tour_id=tour_id, capacity=4))
    assert shrunk.capacity == 4
    assert shrunk.available_slots == 0


@pytest.mark.asyncio
async def test_update_tour_rejects_reversed_dates(test_session, make_user, make_tour):
    provider = await make_user()
    tour = await make_tour(provider.id)

    with pytest.raises(ValidationError):
        await TourService(test_session).update_tour(
            provider.id,
            False,
            UpdateTourRequest(tour_id=tour.id, end_date=utcnow() + timedelta(days=1)),
        )


@pytest.mark.asyncio
async def test_only_provider_or_admin_can_change_tour(test_session, make_user, make_tour):
    provider = await make_user()
    stranger = await make_user()
    stranger_id = stranger.id
    tour = await make_tour(provider.id)
    tour_id = tour.id
    service = TourService(test_session)

    with pytest.raises(AuthorizationError):
        await service.update_tour(stranger_id, False, UpdateTourRequest(tour_id=tour_id, name="Mine now"))
    with pytest.raises(AuthorizationError):
        await service.delete_tour(stranger_id, False, tour_id)

    updated = await service.update_tour(stranger_id, True, UpdateTourRequest(tour_id=tour_id, name="Admin edit"))
    assert updated.name == "Admin edit"


@pytest.mark.asyncio
async def test_delete_tour(test_session, make_user, make_tour):
    provider = await make_user()
    provider_id = provider.id
    customer = await make_user()
    booked = await make_tour(provider_id)
    booked_id = booked.id
    unbooked = await make_tour(provider_id)
    unbooked_id = unbooked.id
    await BookingService(test_session).create_booking(customer.id, booked_id, 1)
    service = TourService(test_session)

    with pytest.raises(ConflictError):
        await service.delete_tour(provider_id, False, booked_id)

    await service.delete_tour(provider_id, False, unbooked_id)
    assert await service.get_tour_by_id(unbooked_id) is None
    assert await service.get_tour_by_id(booked_id) is not None


@pytest.mark.asyncio
async def test_tour_price_must_use_payment_currency(test_session, make_user, make_tour):
    provider = await make_user()
    provider_id = provider.id
    tour = await make_tour(provider_id)
    tour_id = tour.id
    service = TourService(test_session)

    assert tour.price_currency == "ETB"

    with pytest.raises(ValidationError) as exc_info:
        await service.create_tour(provider_id, _create_request(price=Money(amount=5_000, currency="USD")))
    assert "price.currency" in exc_info.value.problem_details["errors"]

    with pytest.raises(ValidationError):
        await service.update_tour(
            provider_id,
            False,
            UpdateTourRequest(tour_id=tour_id, price=Money(amount=5_000, currency="USD")),
        )
    unchanged = await service.get_tour_by_id_or_raise(tour_id)
    assert unchanged.price_currency == "ETB"


@pytest.mark.asyncio
async def test_payment_currency_setting_drives_tour_prices(test_session, make_user, make_tour, monkeypatch):
    monkeypatch.setattr(settings, "payment_currency", "USD")
    provider = await make_user()
    provider_id = provider.id
    service = TourService(test_session)

    created = await service.create_tour(provider_id, _create_request(price=Money(amount=5_000, currency="USD")))
    assert created.price_currency == "USD"

    defaulted = await make_tour(provider_id)
    assert defaulted.price_currency == "USD"

    with pytest.raises(ValidationError):
        await service.create_tour(provider_id, _create_request())
