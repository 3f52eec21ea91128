"""Service layer package."""

from .booking_service import BookingService
from .payment_service import PaymentService
from .review_service import ReviewService
from .tour_service import TourService
from .user_service import UserService

__all__ = [
    "BookingService",
    "PaymentService",
    "ReviewService",
    "TourService",
    "UserService",
]
