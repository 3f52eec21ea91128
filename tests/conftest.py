"""Test configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tourbook.core.config import settings
from tourbook.core.database import Base, utcnow
from tourbook.core.dependencies import get_db
from tourbook.core.exceptions import PaymentGatewayUnavailableError
from tourbook.models import Tour, User, UserRole
from tourbook.services.notification_service import BookingNotifier, EmailMessage
from tourbook.services.payment_gateway import (
    CheckoutRequest,
    CheckoutSession,
    PaymentVerification,
    VerificationStatus,
)

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingEmailSender:
    """Email sender that keeps messages in memory; can be told to fail or hang."""

    def __init__(self):
        self.messages: list[EmailMessage] = []
        self.fail = False
        self.delay_seconds = 0.0

    async def send(self, message: EmailMessage) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail:
            raise ConnectionError("SMTP server refused the connection")
        self.messages.append(message)

    def kinds(self) -> list[str]:
        return [message.kind for message in self.messages]


class StubPaymentGateway:
    """In-memory payment gateway with a scripted verification answer."""

    def __init__(self):
        self.status = VerificationStatus.SUCCESS
        self.amount: Optional[int] = None
        self.unavailable = False
        self.checkouts: list[CheckoutRequest] = []
        self.verified: list[str] = []

    async def initialize(self, checkout: CheckoutRequest) -> CheckoutSession:
        if self.unavailable:
            raise PaymentGatewayUnavailableError()
        self.checkouts.append(checkout)
        return CheckoutSession(
            checkout_url=f"https://checkout.test/{checkout.transaction_reference}",
            transaction_reference=checkout.transaction_reference,
        )

    async def verify(self, transaction_reference: str) -> PaymentVerification:
        if self.unavailable:
            raise PaymentGatewayUnavailableError()
        self.verified.append(transaction_reference)
        return PaymentVerification(
            transaction_reference=transaction_reference,
            status=self.status,
            amount=self.amount,
        )


def make_token(user_id: UUID, roles: tuple[str, ...] = (), email: Optional[str] = None) -> str:
    """Sign a bearer token the way the identity provider would."""
    payload = {
        "sub": str(user_id),
        "roles": list(roles),
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


def auth_headers(user_id: UUID, roles: tuple[str, ...] = ()) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, roles)}"}


@pytest.fixture
def auth():
    """Build Authorization headers for a user id and optional roles."""
    return auth_headers


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def notifier(email_sender):
    return BookingNotifier(email_sender, timeout_seconds=0.5)


@pytest.fixture
def payment_gateway():
    return StubPaymentGateway()


@pytest.fixture
def make_user(test_session):
    """Factory for committed users."""

    async def _make_user(
        name: Optional[str] = "Abebe Kebede",
        role: UserRole = UserRole.USER,
        email: Optional[str] = None,
    ) -> User:
        user = User(
            email=email or f"user-{uuid4().hex[:10]}@example.com",
            name=name,
            role=role,
            created_at=utcnow(),
        )
        test_session.add(user)
        await test_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_tour(test_session):
    """Factory for committed tours; upcoming unless starts_in says otherwise."""

    async def _make_tour(
        provider_id: UUID,
        capacity: int = 10,
        price_amount: int = 150_000,
        starts_in: timedelta = timedelta(days=30),
        name: str = "Lalibela Rock Churches",
        location: str = "Lalibela, Ethiopia",
        description: Optional[str] = "Guided visit of the rock-hewn churches",
    ) -> Tour:
        start = utcnow() + starts_in
        tour = Tour(
            provider_id=provider_id,
            name=name,
            description=description,
            location=location,
            start_date=start,
            end_date=start + timedelta(days=2),
            price_amount=price_amount,
            capacity=capacity,
            reserved_slots=0,
        )
        test_session.add(tour)
        await test_session.commit()
        return tour

    return _make_tour


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, payment_gateway, notifier):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError
    from fastapi.middleware.cors import CORSMiddleware

    from tourbook.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from tourbook.routers import admin, booking, category, health, metrics, payment, review, tour, wishlist

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Tourbook API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Simplified for tests
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "tourbook-api",
            "version": "1.0.0",
            "environment": "test",
        }

    # Register API routers
    app.include_router(health.router)
    app.include_router(tour.router)
    app.include_router(category.router)
    app.include_router(wishlist.router)
    app.include_router(booking.router)
    app.include_router(payment.router)
    app.include_router(review.router)
    app.include_router(admin.router)
    app.include_router(metrics.router)

    # Collaborators normally built by the lifespan
    app.state.payment_gateway = payment_gateway
    app.state.notifier = notifier

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_tour_data():
    """Sample tour creation payload."""
    start = utcnow() + timedelta(days=45)
    return {
        "name": "Danakil Depression Expedition",
        "description": "Three days among salt flats and the Erta Ale lava lake",
        "location": "Afar, Ethiopia",
        "start_date": start.isoformat() + "Z",
        "end_date": (start + timedelta(days=3)).isoformat() + "Z",
        "price": {
            "amount": 2_400_000,
            "currency": "ETB"
        },
        "capacity": 8
    }
