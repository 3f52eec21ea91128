"""User service: directory listing and role management."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..core.database import unit_of_work
from ..core.exceptions import ConflictError, NotFoundError
from ..models.user import User, UserRole
from ..schemas.user import ListUsersRequest

logger = logging.getLogger(__name__)


class UserService:
    """Service for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_or_raise(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource_type="user", resource_id=str(user_id))
        return user

    async def list_users(self, request: ListUsersRequest) -> tuple[list[User], Optional[str]]:
        """List users, optionally only those with a given role."""
        stmt = select(User)
        if request.role is not None:
            stmt = stmt.where(User.role == UserRole(request.role).value)
        if request.cursor:
            try:
                stmt = stmt.where(User.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in user listing", extra={"cursor": request.cursor})

        stmt = stmt.order_by(User.id).limit(request.limit + 1)
        users = list((await self.db.execute(stmt)).scalars().all())

        next_cursor = None
        if len(users) > request.limit:
            users = users[:request.limit]
            next_cursor = str(users[-1].id)
        return users, next_cursor

    async def set_role(self, user_id: UUID, role: UserRole) -> User:
        """
        Change a user's role.

        A demotion locks every admin row (in id order, so concurrent demotions
        queue up instead of deadlocking) and then applies the change with an
        UPDATE that only matches while another admin remains. Backends without
        row locks still refuse the second of two racing demotions.

        Args:
            user_id: User to change
            role: New role

        Returns:
            The updated user

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If the change would leave no admin
        """
        role = UserRole(role)
        async with unit_of_work(self.db):
            user = await self.db.get(User, user_id, populate_existing=True)
            if user is None:
                raise NotFoundError(resource_type="user", resource_id=str(user_id))

            if UserRole(user.role) is UserRole.ADMIN and role is not UserRole.ADMIN:
                await self._demote_admin(user_id, role)
            else:
                await self.db.execute(
                    select(User.id).where(User.id == user_id).with_for_update()
                )
                user.role = role
                await self.db.flush()

            await self.db.refresh(user)

        logger.info("User role changed", extra={"user_id": str(user_id), "role": role.value})
        return user

    async def _demote_admin(self, user_id: UUID, role: UserRole) -> None:
        admin_ids = (
            await self.db.execute(
                select(User.id)
                .where(User.role == UserRole.ADMIN.value)
                .order_by(User.id)
                .with_for_update()
            )
        ).scalars().all()
        if len(admin_ids) <= 1:
            logger.warning("Refused to demote the last admin", extra={"user_id": str(user_id)})
            raise ConflictError(detail="Cannot demote the last admin user")

        admins = aliased(User)
        other_admins_remain = (
            select(func.count(admins.id))
            .where(admins.role == UserRole.ADMIN.value)
            .scalar_subquery()
        ) > 1
        demoted = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.role == UserRole.ADMIN.value, other_admins_remain)
            .values(role=role.value)
            .execution_options(synchronize_session=False)
        )
        if demoted.rowcount == 0:
            logger.warning(
                "Refused to demote admin - admin set changed concurrently",
                extra={"user_id": str(user_id)}
            )
            raise ConflictError(detail="Cannot demote the last admin user")
