"""Fixtures for tests that run services on separate connections at once."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourbook.core.database import Base, build_engine, utcnow
from tourbook.models import Tour, User, UserRole


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed database so every task gets its own connection."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def seed_users(session_factory):
    """Factory committing users and returning their ids."""

    async def _seed_users(count: int, role: UserRole = UserRole.USER, prefix: str = "customer"):
        async with session_factory() as db:
            users = [
                User(email=f"{prefix}{i}@example.com", name=f"{prefix.title()} {i}", role=role)
                for i in range(count)
            ]
            db.add_all(users)
            await db.commit()
            return [user.id for user in users]

    return _seed_users


@pytest.fixture
def seed_tour(session_factory, seed_users):
    """Factory committing a tour plus customers, returning (tour_id, user_ids)."""

    async def _seed_tour(capacity: int, customers: int):
        user_ids = await seed_users(customers)
        async with session_factory() as db:
            start = utcnow() + timedelta(days=30)
            tour = Tour(
                provider_id=user_ids[0],
                name="Concurrent Test Tour",
                location="Gondar",
                start_date=start,
                end_date=start + timedelta(days=1),
                price_amount=10_000,
                capacity=capacity,
                reserved_slots=0,
            )
            db.add(tour)
            await db.commit()
            return tour.id, user_ids

    return _seed_tour
