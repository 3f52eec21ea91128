"""Background workers for the tour booking service."""

from .pending_expiry_worker import PendingExpiryWorker

__all__ = ["PendingExpiryWorker"]
