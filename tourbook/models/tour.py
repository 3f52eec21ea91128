"""Tour model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.config import settings
from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .booking import Booking
    from .category import Category
    from .review import Review
    from .user import User
    from .wishlist import WishlistItem


class Tour(Base):
    """Tour entity; its reserved_slots counter is the slot ledger."""

    __tablename__ = "tours"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Owner (provider) of the tour
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Tour information
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Price information (stored as minor units)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default=lambda: settings.payment_currency
    )

    # Slot ledger
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_tour_capacity_positive"),
        CheckConstraint("reserved_slots >= 0", name="ck_tour_reserved_slots_non_negative"),
        CheckConstraint("reserved_slots <= capacity", name="ck_tour_reserved_slots_lte_capacity"),
        CheckConstraint("price_amount >= 0", name="ck_tour_price_amount_non_negative"),
        CheckConstraint("length(price_currency) = 3", name="ck_tour_price_currency_length"),
        CheckConstraint("end_date >= start_date", name="ck_tour_dates_ordered"),
    )

    # Relationships
    provider: Mapped["User"] = relationship("User", back_populates="tours")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="tour")
    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="tour",
        cascade="all, delete-orphan"
    )
    categories: Mapped[list["Category"]] = relationship(
        "Category",
        secondary="tour_categories",
        back_populates="tours"
    )
    wishlist_entries: Mapped[list["WishlistItem"]] = relationship(
        "WishlistItem",
        back_populates="tour",
        cascade="all, delete-orphan"
    )

    @property
    def available_slots(self) -> int:
        return self.capacity - self.reserved_slots

    def __repr__(self) -> str:
        return (
            f"<Tour(id={self.id}, name='{self.name}', "
            f"slots={self.reserved_slots}/{self.capacity})>"
        )
