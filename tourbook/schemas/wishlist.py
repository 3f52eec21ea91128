"""Wishlist-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .tour import Tour


class WishlistTourRequest(BaseModel):
    """Request schema addressing one tour on the caller's wishlist."""

    tour_id: UUID = Field(..., description="Tour ID")


class WishlistStatusRequest(BaseModel):
    """Request schema for checking several tours at once."""

    tour_ids: list[UUID] = Field(..., min_length=1, max_length=100, description="Tours to check")


class MostWishlistedRequest(BaseModel):
    limit: int = Field(10, ge=1, le=50, description="Number of tours")


class WishlistItem(BaseModel):
    """A saved tour."""

    id: str = Field(..., description="Wishlist entry ID")
    tour: Tour = Field(..., description="The saved tour")
    added_at: datetime = Field(..., description="When the tour was saved")


class WishlistResponse(BaseModel):
    """The caller's wishlist, newest first."""

    items: list[WishlistItem] = Field(..., description="Saved tours")
    count: int = Field(..., ge=0, description="Number of saved tours")


class WishlistCheckResponse(BaseModel):
    tour_id: str = Field(..., description="Tour ID")
    in_wishlist: bool = Field(..., description="Whether the caller saved the tour")


class WishlistCountResponse(BaseModel):
    count: int = Field(..., ge=0, description="Number of saved tours")


class WishlistStatusResponse(BaseModel):
    """Saved flag per requested tour id."""

    statuses: dict[str, bool] = Field(..., description="Tour ID to saved flag")


class ClearWishlistResponse(BaseModel):
    removed: int = Field(..., ge=0, description="Entries removed")


class WishlistedTour(BaseModel):
    """A tour with the number of users who saved it."""

    tour: Tour = Field(..., description="The tour")
    wishlist_count: int = Field(..., ge=0, description="Users who saved it")


class MostWishlistedResponse(BaseModel):
    items: list[WishlistedTour] = Field(..., description="Tours, most saved first")
