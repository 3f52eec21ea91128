"""User model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .booking import Booking
    from .tour import Tour


class UserRole(str, Enum):
    """User role enumeration."""
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    """
    User entity.

    Credentials live with the identity provider; this table keeps what the
    booking flows need: addressing for notifications and the role.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.USER,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(email) > 0", name="ck_user_email_not_empty"),
        CheckConstraint("role IN ('USER', 'ADMIN')", name="ck_user_role_valid"),
    )

    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="provider")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.name or "Customer"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
