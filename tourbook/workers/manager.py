"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict, Optional

from ..core.config import Settings, settings
from ..services.notification_service import BookingNotifier
from ..services.payment_gateway import PaymentGateway
from .base import BaseWorker
from .pending_expiry_worker import PendingExpiryWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self, config: Settings = settings):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers(config)

    def _setup_workers(self, config: Settings) -> None:
        if config.pending_booking_ttl_minutes > 0:
            self.workers["pending_expiry"] = PendingExpiryWorker(
                ttl_minutes=config.pending_booking_ttl_minutes,
                interval_seconds=config.pending_expiry_interval_seconds,
            )
        else:
            logger.info("Pending booking expiry disabled")

        logger.info("Workers initialized", extra={"workers": list(self.workers)})

    def bind(
        self,
        payment_gateway: Optional[PaymentGateway] = None,
        notifier: Optional[BookingNotifier] = None,
    ) -> None:
        """Hand the app's long-lived collaborators to the workers that use them."""
        worker = self.workers.get("pending_expiry")
        if isinstance(worker, PendingExpiryWorker):
            worker.payment_gateway = payment_gateway
            worker.notifier = notifier

    async def start_all(self) -> None:
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error("Failed to start worker", exc_info=True, extra={"worker": name, "error": str(e)})

    async def stop_all(self) -> None:
        """Stop all workers, logging rather than raising individual failures."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )
        for name, result in zip(self.workers, results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})

    def get_worker(self, name: str) -> BaseWorker:
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.is_running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
