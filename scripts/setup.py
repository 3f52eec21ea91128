#!/usr/bin/env python3
"""Setup script: migrate the database and seed an admin with a sample tour and categories."""

import asyncio
import logging
import os
from datetime import timedelta
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from tourbook.core.database import async_session_factory, unit_of_work, utcnow
from tourbook.models import Category, Tour, User, UserRole
from tourbook.services.category_service import slugify

ROOT_DIR = Path(__file__).resolve().parent.parent

SAMPLE_CATEGORIES = [("Hiking", "mountain"), ("Wildlife", "paw"), ("Cultural", "landmark")]

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Upgrade the database schema to the latest revision."""
    alembic_cfg = Config(str(ROOT_DIR / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create an admin user and one upcoming tour, unless tours already exist."""
    admin_email = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com")

    async with async_session_factory() as db:
        async with unit_of_work(db):
            if await db.scalar(select(func.count(Tour.id))):
                logger.info("Sample data already exists, skipping...")
                return

            admin = await db.scalar(select(User).where(User.email == admin_email))
            if admin is None:
                admin = User(email=admin_email, name="Tour Admin", role=UserRole.ADMIN)
                db.add(admin)
                await db.flush()

            start = utcnow().replace(hour=8, minute=0, second=0, microsecond=0) + timedelta(days=30)
            tour = Tour(
                provider_id=admin.id,
                name="Simien Mountains Trek",
                description="Four days of guided trekking among gelada baboons and escarpments",
                location="Simien Mountains, Ethiopia",
                start_date=start,
                end_date=start + timedelta(days=4),
                price_amount=1_250_000,  # 12,500.00 ETB
                capacity=12,
            )
            tour.categories = [
                Category(name=name, slug=slugify(name), icon=icon)
                for name, icon in SAMPLE_CATEGORIES
            ]
            db.add(tour)

        logger.info("Sample data created", extra={"admin_id": str(admin.id)})


def main() -> None:
    run_migrations()
    asyncio.run(create_sample_data())
    logger.info("Setup completed. Start the API with: uvicorn tourbook.main:app --reload")


if __name__ == "__main__":
    main()
