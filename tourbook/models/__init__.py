"""Models module exporting all database models."""

from .booking import Booking, BookingStatus
from .category import Category, tour_categories
from .review import Review
from .tour import Tour
from .user import User, UserRole
from .wishlist import WishlistItem

__all__ = [
    # Core entities
    "Tour",
    "User",
    "UserRole",

    # Booking entities
    "Booking",
    "BookingStatus",

    # Catalog
    "Category",
    "tour_categories",

    # Feedback
    "Review",
    "WishlistItem",
]
