import logging
from typing import Optional
from ..models.category import CascadeResult
from ..utils.query import affected_rows

class CascadeService:
    """Deactivation propagation down the catalog hierarchy.

    Every method runs on the caller's connection so the whole cascade commits
    or rolls back together with the flag flip that triggered it. Only rows
    that were still active are touched and counted, which makes repeated
    deactivation a no-op.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def deactivate_category(self, conn, category_id: int) -> Optional[CascadeResult]:
        """Deactivate a category with all its subcategories and their products"""
        row = await conn.fetchrow("""
            SELECT is_active FROM categories
            WHERE category_id = $1
            FOR UPDATE
        """, category_id)
        if row is None:
            return None

        categories = await self._flip(conn, """
            UPDATE categories
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE category_id = $1 AND is_active
        """, category_id)

        subcategories = await self._flip(conn, """
            UPDATE subcategories
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE category_id = $1 AND is_active
        """, category_id)

        products = await self._flip(conn, """
            UPDATE products
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE is_active AND subcategory_id IN (
                SELECT subcategory_id FROM subcategories WHERE category_id = $1
            )
        """, category_id)

        result = CascadeResult(
            categories=categories,
            subcategories=subcategories,
            products=products
        )
        self.logger.info(
            f"Category {category_id} deactivated: {result.subcategories} subcategories, "
            f"{result.products} products affected"
        )
        return result

    async def deactivate_subcategory(self, conn, subcategory_id: int) -> Optional[CascadeResult]:
        """Deactivate a subcategory and its products"""
        row = await conn.fetchrow("""
            SELECT is_active FROM subcategories
            WHERE subcategory_id = $1
            FOR UPDATE
        """, subcategory_id)
        if row is None:
            return None

        subcategories = await self._flip(conn, """
            UPDATE subcategories
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE subcategory_id = $1 AND is_active
        """, subcategory_id)

        products = await self._flip(conn, """
            UPDATE products
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE subcategory_id = $1 AND is_active
        """, subcategory_id)

        result = CascadeResult(subcategories=subcategories, products=products)
        self.logger.info(
            f"Subcategory {subcategory_id} deactivated: {result.products} products affected"
        )
        return result

    async def deactivate_product(self, conn, product_id: int) -> Optional[CascadeResult]:
        """Leaf case, no cascade"""
        exists = await conn.fetchval("""
            SELECT 1 FROM products WHERE product_id = $1 FOR UPDATE
        """, product_id)
        if exists is None:
            return None

        products = await self._flip(conn, """
            UPDATE products
            SET is_active = false, updated_at = CURRENT_TIMESTAMP
            WHERE product_id = $1 AND is_active
        """, product_id)
        return CascadeResult(products=products)

    @staticmethod
    async def _flip(conn, query: str, *args) -> int:
        return affected_rows(await conn.execute(query, *args))
