"""Category service: the catalog labels tours are grouped under."""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import unit_of_work, utcnow
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..models.category import Category, tour_categories
from ..models.tour import Tour
from ..schemas.category import CreateCategoryRequest, ListCategoryToursRequest, UpdateCategoryRequest

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(name: str) -> str:
    """Lowercase URL slug: punctuation dropped, runs of spaces, dashes and underscores joined by one dash."""
    slug = _NON_WORD.sub("", name.lower().strip())
    return _SEPARATORS.sub("-", slug).strip("-")


@dataclass(frozen=True)
class CategoryWithCount:
    category: Category
    tour_count: int = 0


class CategoryService:
    """Service for category operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_category(self, request: CreateCategoryRequest) -> Category:
        """
        Create a category; its slug is derived from the name.

        Raises:
            ValidationError: If the name yields an empty slug
            ConflictError: If a category with the same name or slug exists
        """
        slug = self._slug_or_raise(request.name)
        try:
            async with unit_of_work(self.db):
                await self._ensure_unique(request.name, slug)
                now = utcnow()
                category = Category(
                    name=request.name,
                    slug=slug,
                    description=request.description,
                    icon=request.icon,
                    color=request.color,
                    created_at=now,
                    updated_at=now,
                )
                self.db.add(category)
                await self.db.flush()
        except IntegrityError as e:
            raise self._duplicate_error(request.name, slug) from e

        logger.info("Category created", extra={"category_id": str(category.id), "slug": slug})
        return category

    async def list_categories(self) -> list[CategoryWithCount]:
        """All categories by name, each with the number of tours assigned to it."""
        counts = await self._tour_counts()
        result = await self.db.execute(select(Category).order_by(Category.name))
        return [
            CategoryWithCount(category, counts.get(category.id, 0))
            for category in result.scalars().all()
        ]

    async def get_category(self, category_id: UUID) -> CategoryWithCount:
        category = await self._get_or_raise(category_id)
        counts = await self._tour_counts([category.id])
        return CategoryWithCount(category, counts.get(category.id, 0))

    async def get_category_by_slug(self, slug: str) -> CategoryWithCount:
        category = await self.db.scalar(select(Category).where(Category.slug == slug))
        if category is None:
            raise NotFoundError(
                resource_type="category",
                resource_id=slug,
                detail=f"Category '{slug}' not found",
            )
        counts = await self._tour_counts([category.id])
        return CategoryWithCount(category, counts.get(category.id, 0))

    async def update_category(self, request: UpdateCategoryRequest) -> Category:
        """
        Update a category; renaming it also changes its slug.

        Raises:
            NotFoundError: If the category does not exist
            ValidationError: If the new name yields an empty slug
            ConflictError: If another category already has the new name or slug
        """
        slug = None
        try:
            async with unit_of_work(self.db):
                category = await self._get_or_raise(request.category_id)
                if request.name is not None and request.name != category.name:
                    slug = self._slug_or_raise(request.name)
                    await self._ensure_unique(request.name, slug, exclude_id=category.id)
                    category.name = request.name
                    category.slug = slug

                for field in ("description", "icon", "color"):
                    value = getattr(request, field)
                    if value is not None:
                        setattr(category, field, value)
                category.updated_at = utcnow()
                await self.db.flush()
        except IntegrityError as e:
            raise self._duplicate_error(request.name, slug) from e

        logger.info("Category updated", extra={"category_id": str(category.id), "slug": category.slug})
        return category

    async def delete_category(self, category_id: UUID) -> None:
        """
        Delete a category no tour is assigned to.

        Raises:
            NotFoundError: If the category does not exist
            ConflictError: If tours are still assigned to it
        """
        async with unit_of_work(self.db):
            category = await self._get_or_raise(category_id)
            tour_count = (await self._tour_counts([category_id])).get(category_id, 0)
            if tour_count:
                logger.warning(
                    "Category deletion refused - tours assigned",
                    extra={"category_id": str(category_id), "tour_count": tour_count}
                )
                raise ConflictError(
                    detail=f"Category '{category.name}' has {tour_count} tour(s) assigned and cannot be deleted",
                    conflicting_resource={"category_id": str(category_id), "tour_count": tour_count},
                )
            await self.db.delete(category)

        logger.info("Category deleted", extra={"category_id": str(category_id)})

    async def assign_to_tour(self, tour_id: UUID, category_ids: list[UUID]) -> list[Category]:
        """
        Replace the categories a tour is listed under.

        An empty list removes every assignment.

        Raises:
            NotFoundError: If the tour does not exist
            ValidationError: If any category id is unknown
        """
        wanted = list(dict.fromkeys(category_ids))
        async with unit_of_work(self.db):
            if await self.db.get(Tour, tour_id) is None:
                raise NotFoundError(resource_type="tour", resource_id=str(tour_id))

            if wanted:
                known = set(
                    (await self.db.execute(select(Category.id).where(Category.id.in_(wanted)))).scalars().all()
                )
                unknown = [str(category_id) for category_id in wanted if category_id not in known]
                if unknown:
                    raise ValidationError(
                        detail="One or more category IDs are invalid",
                        errors={"category_ids": unknown},
                    )

            await self.db.execute(delete(tour_categories).where(tour_categories.c.tour_id == tour_id))
            if wanted:
                await self.db.execute(
                    insert(tour_categories),
                    [{"tour_id": tour_id, "category_id": category_id} for category_id in wanted],
                )

        logger.info(
            "Tour categories assigned",
            extra={"tour_id": str(tour_id), "category_count": len(wanted)}
        )
        return await self.categories_for_tour(tour_id)

    async def categories_for_tour(self, tour_id: UUID) -> list[Category]:
        stmt = (
            select(Category)
            .join(tour_categories, tour_categories.c.category_id == Category.id)
            .where(tour_categories.c.tour_id == tour_id)
            .order_by(Category.name)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def list_tours(self, request: ListCategoryToursRequest) -> tuple[Category, list[Tour], Optional[str]]:
        """
        The tours listed under a category, one page at a time.

        Raises:
            NotFoundError: If the category does not exist
        """
        category = await self._get_or_raise(request.category_id)
        stmt = (
            select(Tour)
            .join(tour_categories, tour_categories.c.tour_id == Tour.id)
            .where(tour_categories.c.category_id == category.id)
        )
        if request.upcoming_only:
            stmt = stmt.where(Tour.start_date > utcnow())
        if request.cursor:
            try:
                stmt = stmt.where(Tour.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in category tour listing", extra={"cursor": request.cursor})

        stmt = stmt.order_by(Tour.id).limit(request.limit + 1)
        tours = list((await self.db.execute(stmt)).scalars().all())

        next_cursor = None
        if len(tours) > request.limit:
            tours = tours[:request.limit]
            next_cursor = str(tours[-1].id)
        return category, tours, next_cursor

    async def popular_categories(self, limit: int = 10) -> list[CategoryWithCount]:
        """Categories with the most tours first; empty categories are left out."""
        tour_count = func.count(tour_categories.c.tour_id)
        stmt = (
            select(Category, tour_count)
            .join(tour_categories, tour_categories.c.category_id == Category.id)
            .group_by(Category.id)
            .order_by(tour_count.desc(), Category.name)
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [CategoryWithCount(category, count) for category, count in rows]

    async def _tour_counts(self, category_ids: Optional[list[UUID]] = None) -> dict[UUID, int]:
        stmt = select(tour_categories.c.category_id, func.count(tour_categories.c.tour_id)).group_by(
            tour_categories.c.category_id
        )
        if category_ids is not None:
            stmt = stmt.where(tour_categories.c.category_id.in_(category_ids))
        return {category_id: count for category_id, count in (await self.db.execute(stmt)).all()}

    async def _get_or_raise(self, category_id: UUID) -> Category:
        category = await self.db.get(Category, category_id, populate_existing=True)
        if category is None:
            raise NotFoundError(resource_type="category", resource_id=str(category_id))
        return category

    async def _ensure_unique(self, name: str, slug: str, exclude_id: Optional[UUID] = None) -> None:
        stmt = select(Category.id).where(or_(Category.name == name, Category.slug == slug))
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if await self.db.scalar(stmt.limit(1)) is not None:
            raise self._duplicate_error(name, slug)

    @staticmethod
    def _slug_or_raise(name: str) -> str:
        slug = slugify(name)
        if not slug:
            raise ValidationError(
                detail="Category name must contain at least one letter or digit",
                errors={"name": name},
            )
        return slug

    @staticmethod
    def _duplicate_error(name: Optional[str], slug: Optional[str]) -> ConflictError:
        logger.info("Category refused - name or slug taken", extra={"name": name, "slug": slug})
        return ConflictError(
            detail=f"A category named '{name}' already exists",
            conflicting_resource={"name": name, "slug": slug},
        )
