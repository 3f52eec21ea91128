"""FastAPI routers package."""

from .admin import router as admin_router
from .booking import router as booking_router
from .category import router as category_router
from .health import router as health_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .review import router as review_router
from .tour import router as tour_router
from .wishlist import router as wishlist_router

__all__ = [
    "admin_router",
    "booking_router",
    "category_router",
    "health_router",
    "metrics_router",
    "payment_router",
    "review_router",
    "tour_router",
    "wishlist_router",
]
