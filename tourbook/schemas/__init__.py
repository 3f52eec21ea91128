"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .category import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .payment import *  # noqa: F403
from .review import *  # noqa: F403
from .tour import *  # noqa: F403
from .user import *  # noqa: F403
from .wishlist import *  # noqa: F403
