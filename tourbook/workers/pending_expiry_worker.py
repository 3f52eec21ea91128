"""Background worker that fails bookings left unpaid for too long."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory, utcnow
from ..services.booking_service import BookingService
from ..services.notification_service import BookingNotifier
from ..services.payment_gateway import PaymentGateway
from .base import BaseWorker

logger = logging.getLogger(__name__)


class PendingExpiryWorker(BaseWorker):
    """
    Moves PENDING bookings idle for longer than the TTL to FAILED.

    Each expiry releases the booking's slots, so abandoned checkouts do not
    keep a tour sold out. The TTL runs from the latest checkout start, and a
    booking in checkout is checked with the payment gateway before it is
    expired; until a gateway is bound such bookings are left alone.
    """

    def __init__(
        self,
        ttl_minutes: int,
        interval_seconds: int = 60,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        batch_size: int = 100,
        payment_gateway: Optional[PaymentGateway] = None,
        notifier: Optional[BookingNotifier] = None,
    ):
        super().__init__(name="PendingExpiry", interval_seconds=interval_seconds)
        self.ttl = timedelta(minutes=ttl_minutes)
        self.session_factory = session_factory or async_session_factory
        self.batch_size = batch_size
        self.payment_gateway = payment_gateway
        self.notifier = notifier

    async def process(self) -> int:
        cutoff = utcnow() - self.ttl
        async with self.session_factory() as db:
            service = BookingService(db, notifier=self.notifier)
            expired = await service.expire_stale_bookings(
                cutoff, limit=self.batch_size, gateway=self.payment_gateway
            )

        if expired:
            logger.info(
                "Expired stale pending bookings",
                extra={"expired_count": expired, "cutoff": cutoff.isoformat(), "worker": self.name}
            )
        return expired
