"""
Category registry.

Keeps category names unique, seeds the built-in categories on first run and
exposes rename/delete. Renames and deletes never touch expenses: an expense
keeps whatever category name it was saved with.
"""

import logging
from dataclasses import replace
from typing import Optional

from taxtracker.db import Collection, RecordStore
from taxtracker.errors import DuplicateCategory, NotFound
from taxtracker.models import Category, default_categories

logger = logging.getLogger(__name__)


class CategoryRegistry:
    """Service for managing expense categories."""

    def __init__(self, store: RecordStore):
        """
        Initialize the registry.

        Args:
            store: The process-wide record store
        """
        self.store = store

    async def list_categories(self) -> list[Category]:
        return await self.store.get_all(Collection.CATEGORIES)

    async def get_category(self, category_id: int) -> Optional[Category]:
        return await self.store.get(Collection.CATEGORIES, category_id)

    async def get_by_name(self, name: str) -> Optional[Category]:
        """Find a category by exact (case-sensitive) name."""
        for category in await self.list_categories():
            if category.name == name:
                return category
        return None

    async def add_category(
        self, name: str, icon: Optional[str] = None, color: Optional[str] = None
    ) -> Category:
        """
        Create a new category.

        Raises:
            ValueError: If the name is empty
            DuplicateCategory: If a category with this exact name exists
        """
        if not name or not name.strip():
            raise ValueError("Category name cannot be empty")

        category = await self.store.add_category(
            Category(id=None, name=name, icon=icon, color=color)
        )
        logger.info(f"Created category '{category.name}' (id {category.id})")
        return category

    async def get_or_create(
        self, name: str, icon: Optional[str] = None, color: Optional[str] = None
    ) -> Category:
        """Return the named category, creating it if it does not exist."""
        try:
            return await self.add_category(name, icon, color)
        except DuplicateCategory:
            existing = await self.get_by_name(name.strip())
            if existing is None:
                raise
            return existing

    async def rename_category(self, category_id: int, new_name: str) -> Category:
        """
        Rename a category. Expenses using the old name are left as they are.

        Raises:
            ValueError: If the new name is empty
            NotFound: If the category does not exist
            DuplicateCategory: If another category already has the new name
        """
        if not new_name or not new_name.strip():
            raise ValueError("Category name cannot be empty")

        renamed = await self.store.update(
            Collection.CATEGORIES,
            category_id,
            lambda current: replace(current, name=new_name),
        )
        logger.info(f"Renamed category {category_id} to '{renamed.name}'")
        return renamed

    async def delete_category(self, category_id: int) -> None:
        """
        Delete a category without checking which expenses reference it.

        Raises:
            NotFound: If the category does not exist
        """
        if not await self.store.delete(Collection.CATEGORIES, category_id):
            raise NotFound(Collection.CATEGORIES.value, category_id)
        logger.info(f"Deleted category {category_id}")

    async def initialize_defaults(self) -> list[Category]:
        """
        Seed the built-in categories on first run.

        An empty registry receives the defaults in a single batch. A populated
        registry is never re-seeded; pending category migrations are applied
        instead.

        Returns:
            The current list of categories
        """
        existing = await self.list_categories()
        if existing:
            await self.store.apply_migrations()
            return await self.list_categories()

        seeded = await self.store.bulk_insert(
            Collection.CATEGORIES, default_categories()
        )
        logger.info(f"Seeded {len(seeded)} default categories")
        return seeded
