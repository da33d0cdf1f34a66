import asyncpg
import logging
from decimal import Decimal
from typing import List, Dict, Optional, Any
from ..errors import (
    Conflict, DuplicateName, HasDependents, NotFound, ParentInactive, ParentNotFound
)
from ..models.category import Subcategory, CascadeResult, InventorySummary
from ..utils.query import build_update_query
from .cascade_service import CascadeService

class SubcategoryService:
    """Subcategory management"""

    UPDATABLE_FIELDS = ("name", "description", "category_id")

    def __init__(self, db, cascade: Optional[CascadeService] = None):
        self.db = db
        self.cascade = cascade or CascadeService()
        self.logger = logging.getLogger(__name__)

    async def add_subcategory(self, subcategory_data: Dict[str, Any]) -> Subcategory:
        """Create a subcategory under an existing, active category"""
        category_id = subcategory_data['category_id']
        name = subcategory_data['name']
        try:
            async with self.db.transaction() as conn:
                await self._lock_active_category(conn, category_id)

                duplicate = await conn.fetchval("""
                    SELECT 1 FROM subcategories
                    WHERE category_id = $1 AND name = $2
                """, category_id, name)
                if duplicate:
                    raise DuplicateName("subcategory", name)

                row = await conn.fetchrow("""
                    INSERT INTO subcategories (category_id, name, description)
                    VALUES ($1, $2, $3)
                    RETURNING *
                """,
                    category_id,
                    name,
                    subcategory_data.get('description')
                )
        except asyncpg.exceptions.UniqueViolationError:
            raise DuplicateName("subcategory", name) from None

        self.logger.info(
            f"Subcategory {row['subcategory_id']} created under category {category_id}: {name}"
        )
        return Subcategory.from_record(row)

    async def get_subcategory(self, subcategory_id: int) -> Optional[Subcategory]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM subcategories WHERE subcategory_id = $1
            """, subcategory_id)
            return Subcategory.from_record(row) if row else None

    async def get_subcategories(self, category_id: int,
                                is_active: Optional[bool] = None) -> List[Subcategory]:
        """Subcategories of one category"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM subcategories
                WHERE category_id = $1
                  AND ($2::boolean IS NULL OR is_active = $2)
                ORDER BY name
            """, category_id, is_active)
            return [Subcategory.from_record(row) for row in rows]

    async def update_subcategory(self, subcategory_id: int,
                                 update_data: Dict[str, Any]) -> Subcategory:
        """Update a subcategory.

        Moving it to another category requires the target to exist and be
        active, and carries its products along so they keep pointing at the
        subcategory's category.
        """
        query, params = build_update_query(
            "subcategories", "subcategory_id", subcategory_id,
            update_data, self.UPDATABLE_FIELDS
        )
        try:
            async with self.db.transaction() as conn:
                category_id = await self._current_category(conn, subcategory_id)
                new_category_id = update_data.get('category_id', category_id)
                moved = new_category_id != category_id
                if moved:
                    await self._lock_active_category(conn, new_category_id)

                current = await self._lock_subcategory(conn, subcategory_id, category_id)

                row = await conn.fetchrow(query, *params)

                if moved:
                    await conn.execute("""
                        UPDATE products
                        SET category_id = $1, updated_at = CURRENT_TIMESTAMP
                        WHERE subcategory_id = $2
                    """, new_category_id, subcategory_id)
                    self.logger.info(
                        f"Subcategory {subcategory_id} moved from category "
                        f"{current['category_id']} to {new_category_id}"
                    )
        except asyncpg.exceptions.UniqueViolationError:
            raise DuplicateName("subcategory", update_data.get('name', '')) from None

        return Subcategory.from_record(row)

    async def set_active(self, subcategory_id: int, active: bool) -> CascadeResult:
        """Toggle the active flag.

        Deactivation cascades to the subcategory's products; activation
        requires an active category and never touches the products.
        """
        async with self.db.transaction() as conn:
            if not active:
                result = await self.cascade.deactivate_subcategory(conn, subcategory_id)
                if result is None:
                    raise NotFound("subcategory", subcategory_id)
                return result

            category_id = await self._current_category(conn, subcategory_id)
            await self._lock_active_category(conn, category_id)
            row = await self._lock_subcategory(conn, subcategory_id, category_id)
            if row['is_active']:
                return CascadeResult()

            await conn.execute("""
                UPDATE subcategories
                SET is_active = true, updated_at = CURRENT_TIMESTAMP
                WHERE subcategory_id = $1
            """, subcategory_id)
            self.logger.info(f"Subcategory {subcategory_id} activated")
            return CascadeResult(subcategories=1)

    async def delete_subcategory(self, subcategory_id: int) -> None:
        """Delete a subcategory that has no products"""
        try:
            async with self.db.transaction() as conn:
                exists = await conn.fetchval("""
                    SELECT 1 FROM subcategories WHERE subcategory_id = $1 FOR UPDATE
                """, subcategory_id)
                if exists is None:
                    raise NotFound("subcategory", subcategory_id)

                products = await conn.fetchval("""
                    SELECT COUNT(*) FROM products WHERE subcategory_id = $1
                """, subcategory_id)
                if products:
                    raise HasDependents("subcategory", subcategory_id, "products", products)

                await conn.execute("""
                    DELETE FROM subcategories WHERE subcategory_id = $1
                """, subcategory_id)
        except asyncpg.exceptions.ForeignKeyViolationError:
            raise HasDependents("subcategory", subcategory_id, "products", 1) from None

        self.logger.info(f"Subcategory {subcategory_id} deleted")

    async def get_inventory_summary(self, subcategory_id: int) -> InventorySummary:
        """Product counts, stock and stock value of a subcategory"""
        async with self.db.pool.acquire() as conn:
            exists = await conn.fetchval("""
                SELECT 1 FROM subcategories WHERE subcategory_id = $1
            """, subcategory_id)
            if exists is None:
                raise NotFound("subcategory", subcategory_id)

            row = await conn.fetchrow("""
                SELECT
                    COUNT(*) AS total_products,
                    COUNT(*) FILTER (WHERE is_active) AS active_products,
                    COALESCE(SUM(stock), 0) AS total_stock,
                    COALESCE(SUM(price * stock), 0) AS inventory_value
                FROM products
                WHERE subcategory_id = $1
            """, subcategory_id)

        return InventorySummary(
            subcategory_id=subcategory_id,
            total_products=row['total_products'],
            active_products=row['active_products'],
            inactive_products=row['total_products'] - row['active_products'],
            total_stock=row['total_stock'],
            inventory_value=Decimal(row['inventory_value']).quantize(Decimal("0.01"))
        )

    @staticmethod
    async def _lock_active_category(conn, category_id: int) -> None:
        """Share-lock the parent category so it cannot be deactivated mid-write"""
        row = await conn.fetchrow("""
            SELECT is_active FROM categories
            WHERE category_id = $1
            FOR SHARE
        """, category_id)
        if row is None:
            raise ParentNotFound("category", category_id)
        if not row['is_active']:
            raise ParentInactive("category", category_id)

    @staticmethod
    async def _current_category(conn, subcategory_id: int) -> int:
        """Parent id read without a lock, so the parent can be locked first"""
        category_id = await conn.fetchval("""
            SELECT category_id FROM subcategories WHERE subcategory_id = $1
        """, subcategory_id)
        if category_id is None:
            raise NotFound("subcategory", subcategory_id)
        return category_id

    @staticmethod
    async def _lock_subcategory(conn, subcategory_id: int, category_id: int):
        row = await conn.fetchrow("""
            SELECT * FROM subcategories
            WHERE subcategory_id = $1
            FOR UPDATE
        """, subcategory_id)
        if row is None:
            raise NotFound("subcategory", subcategory_id)
        if row['category_id'] != category_id:
            raise Conflict(f"subcategory {subcategory_id} was moved concurrently")
        return row
