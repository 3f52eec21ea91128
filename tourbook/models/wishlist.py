"""Wishlist model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .tour import Tour


class WishlistItem(Base):
    """A tour a user saved for later."""

    __tablename__ = "wishlist_items"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        index=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tour_id", name="uq_wishlist_user_tour"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="wishlist_entries")

    def __repr__(self) -> str:
        return f"<WishlistItem(user_id={self.user_id}, tour_id={self.tour_id})>"
