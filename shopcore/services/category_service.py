import asyncpg
import logging
from typing import List, Dict, Optional, Any
from ..errors import DuplicateName, HasDependents, NotFound
from ..models.category import Category, CascadeResult
from ..utils.query import build_update_query
from .cascade_service import CascadeService

class CategoryService:
    """Category management"""

    UPDATABLE_FIELDS = ("name", "description")

    def __init__(self, db, cascade: Optional[CascadeService] = None):
        self.db = db
        self.cascade = cascade or CascadeService()
        self.logger = logging.getLogger(__name__)

    async def add_category(self, category_data: Dict[str, Any]) -> Category:
        """Create a new, active category"""
        name = category_data['name']
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO categories (name, description)
                    VALUES ($1, $2)
                    RETURNING *
                """,
                    name,
                    category_data.get('description')
                )
        except asyncpg.exceptions.UniqueViolationError:
            raise DuplicateName("category", name) from None

        self.logger.info(f"Category {row['category_id']} created: {name}")
        return Category.from_record(row)

    async def get_category(self, category_id: int) -> Optional[Category]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM categories WHERE category_id = $1
            """, category_id)
            return Category.from_record(row) if row else None

    async def get_all_categories(self, is_active: Optional[bool] = None) -> List[Category]:
        """List categories by name, optionally filtered by active flag"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM categories
                WHERE $1::boolean IS NULL OR is_active = $1
                ORDER BY name
            """, is_active)
            return [Category.from_record(row) for row in rows]

    async def update_category(self, category_id: int, update_data: Dict[str, Any]) -> Category:
        """Update name/description; activation goes through set_active"""
        query, params = build_update_query(
            "categories", "category_id", category_id,
            update_data, self.UPDATABLE_FIELDS
        )
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(query, *params)
        except asyncpg.exceptions.UniqueViolationError:
            raise DuplicateName("category", update_data.get('name')) from None

        if row is None:
            raise NotFound("category", category_id)
        return Category.from_record(row)

    async def set_active(self, category_id: int, active: bool) -> CascadeResult:
        """Toggle the active flag.

        Deactivation cascades to every subcategory and product below.
        Activation flips only this category.
        """
        async with self.db.transaction() as conn:
            if not active:
                result = await self.cascade.deactivate_category(conn, category_id)
                if result is None:
                    raise NotFound("category", category_id)
                return result

            row = await conn.fetchrow("""
                SELECT is_active FROM categories
                WHERE category_id = $1
                FOR UPDATE
            """, category_id)
            if row is None:
                raise NotFound("category", category_id)
            if row['is_active']:
                return CascadeResult()

            await conn.execute("""
                UPDATE categories
                SET is_active = true, updated_at = CURRENT_TIMESTAMP
                WHERE category_id = $1
            """, category_id)
            self.logger.info(f"Category {category_id} activated")
            return CascadeResult(categories=1)

    async def delete_category(self, category_id: int) -> None:
        """Delete a category that has no subcategories or products"""
        try:
            async with self.db.transaction() as conn:
                exists = await conn.fetchval("""
                    SELECT 1 FROM categories WHERE category_id = $1 FOR UPDATE
                """, category_id)
                if exists is None:
                    raise NotFound("category", category_id)

                subcategories = await self._count_subcategories(conn, category_id)
                if subcategories:
                    raise HasDependents("category", category_id, "subcategories", subcategories)

                products = await self._count_products(conn, category_id)
                if products:
                    raise HasDependents("category", category_id, "products", products)

                await conn.execute("""
                    DELETE FROM categories WHERE category_id = $1
                """, category_id)
        except asyncpg.exceptions.ForeignKeyViolationError:
            # A child was inserted concurrently after the checks above
            dependents, count = await self._dependents(category_id)
            raise HasDependents("category", category_id, dependents, count) from None

        self.logger.info(f"Category {category_id} deleted")

    async def count_subcategories(self, category_id: int) -> int:
        async with self.db.pool.acquire() as conn:
            return await self._count_subcategories(conn, category_id)

    async def count_products(self, category_id: int) -> int:
        async with self.db.pool.acquire() as conn:
            return await self._count_products(conn, category_id)

    async def _dependents(self, category_id: int):
        subcategories = await self.count_subcategories(category_id)
        if subcategories:
            return "subcategories", subcategories
        return "products", await self.count_products(category_id)

    @staticmethod
    async def _count_subcategories(conn, category_id: int) -> int:
        count = await conn.fetchval("""
            SELECT COUNT(*) FROM subcategories WHERE category_id = $1
        """, category_id)
        return count or 0

    @staticmethod
    async def _count_products(conn, category_id: int) -> int:
        count = await conn.fetchval("""
            SELECT COUNT(*) FROM products WHERE category_id = $1
        """, category_id)
        return count or 0
