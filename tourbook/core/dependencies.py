"""FastAPI dependencies for database sessions, authentication and collaborators."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncGenerator, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, AuthorizationError, PaymentGatewayUnavailableError

if TYPE_CHECKING:
    from ..services.notification_service import BookingNotifier
    from ..services.payment_gateway import PaymentGateway


ADMIN_ROLE = "ADMIN"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as asserted by the identity provider's token."""

    user_id: UUID
    email: Optional[str] = None
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def decode_token(token: str) -> Principal:
    """
    Validate a bearer token and turn its claims into a Principal.

    Raises:
        AuthenticationError: If the token is invalid, expired or lacks a subject
    """
    try:
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}")

    subject = payload.get("sub")
    if subject is None:
        raise AuthenticationError(detail="Invalid token payload")

    exp = payload.get("exp")
    if exp and datetime.now(timezone.utc).timestamp() > exp:
        raise AuthenticationError(detail="Token has expired")

    try:
        user_id = UUID(str(subject))
    except ValueError:
        raise AuthenticationError(detail="Token subject is not a valid user id")

    roles = payload.get("roles") or []
    if payload.get("role"):
        roles = [*roles, payload["role"]]

    return Principal(
        user_id=user_id,
        email=payload.get("email"),
        roles=tuple(str(role).upper() for role in roles),
    )


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Principal:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        Principal: The authenticated caller

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    return decode_token(token)


async def require_admin(principal: Principal = Depends(get_current_user)) -> Principal:
    """Authorization dependency for admin-only routes."""
    if not principal.is_admin:
        raise AuthorizationError(
            detail="Administrator role required",
            required_permissions=[ADMIN_ROLE],
        )
    return principal


def get_payment_gateway(request: Request) -> "PaymentGateway":
    """The payment gateway client built once in the application lifespan."""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise PaymentGatewayUnavailableError("The payment gateway is not configured")
    return gateway


def get_notifier(request: Request) -> Optional["BookingNotifier"]:
    """The booking notifier built once in the application lifespan, if any."""
    return getattr(request.app.state, "notifier", None)


DatabaseSession = Depends(get_db)
RequiredAuth = Depends(get_current_user)
AdminAuth = Depends(require_admin)
PaymentGatewayDependency = Depends(get_payment_gateway)
NotifierDependency = Depends(get_notifier)
