"""User-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.user import UserRole
from .common import PageRequest, PaginatedResponse


class ListUsersRequest(PageRequest):
    """Request schema for listing users."""

    role: Optional[UserRole] = Field(None, description="Filter by role")


class SetUserRoleRequest(BaseModel):
    """Request schema for changing a user's role."""

    user_id: UUID = Field(..., description="User to change")
    role: UserRole = Field(..., description="New role")


class User(BaseModel):
    """User response schema."""

    id: str = Field(..., description="Unique user ID")
    email: str = Field(..., description="Email address")
    name: Optional[str] = Field(None, description="Display name")
    role: UserRole = Field(..., description="Role")
    created_at: datetime = Field(..., description="Registration time")

    class Config:
        from_attributes = True


class ListUsersResponse(PaginatedResponse):
    """Response schema for user listings."""

    items: list[User] = Field(..., description="Users")
