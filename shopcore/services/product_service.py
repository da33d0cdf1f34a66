import asyncpg
import logging
from typing import List, Dict, Optional, Any, Tuple
from ..errors import (
    Conflict, HasDependents, HierarchyMismatch, NotFound, ParentInactive, ParentNotFound,
    ensure_price, ensure_stock
)
from ..models.category import CascadeResult
from ..models.product import Product
from ..utils.query import build_update_query
from .cascade_service import CascadeService

class ProductService:
    """Product management; stock changes go through StockService"""

    UPDATABLE_FIELDS = (
        "name", "description", "price", "category_id", "subcategory_id", "image_ref"
    )

    def __init__(self, db, cascade: Optional[CascadeService] = None):
        self.db = db
        self.cascade = cascade or CascadeService()
        self.logger = logging.getLogger(__name__)

    async def add_product(self, product_data: Dict[str, Any]) -> Product:
        """Create a product under an active category/subcategory pair"""
        price = ensure_price(product_data['price'])
        stock = ensure_stock(product_data.get('stock', 0))

        async with self.db.transaction() as conn:
            await self._check_hierarchy(
                conn,
                product_data['category_id'],
                product_data['subcategory_id']
            )
            row = await conn.fetchrow("""
                INSERT INTO products (
                    category_id, subcategory_id, name, description,
                    price, stock, image_ref
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """,
                product_data['category_id'],
                product_data['subcategory_id'],
                product_data['name'],
                product_data.get('description'),
                price,
                stock,
                product_data.get('image_ref')
            )

        self.logger.info(f"Product {row['product_id']} created: {row['name']}")
        return Product.from_record(row)

    async def update_product(self, product_id: int, product_data: Dict[str, Any]) -> Product:
        """Update product fields.

        Changing either parent re-validates the pair; the new parents must be
        active and consistent with each other.
        """
        update_data = dict(product_data)
        if 'price' in update_data:
            update_data['price'] = ensure_price(update_data['price'])
        query, params = build_update_query(
            "products", "product_id", product_id,
            update_data, self.UPDATABLE_FIELDS
        )

        async with self.db.transaction() as conn:
            parents = await self._current_parents(conn, product_id)
            new_parents = (
                update_data.get('category_id', parents[0]),
                update_data.get('subcategory_id', parents[1])
            )
            if new_parents != parents:
                await self._check_hierarchy(conn, *new_parents)
            await self._lock_product(conn, product_id, parents)

            row = await conn.fetchrow(query, *params)

        return Product.from_record(row)

    async def get_product(self, product_id: int) -> Optional[Product]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM products WHERE product_id = $1
            """, product_id)
            return Product.from_record(row) if row else None

    async def get_products(self, category_id: Optional[int] = None,
                           subcategory_id: Optional[int] = None,
                           is_active: Optional[bool] = None) -> List[Product]:
        """List products, optionally narrowed by parent and active flag"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM products
                WHERE ($1::integer IS NULL OR category_id = $1)
                  AND ($2::integer IS NULL OR subcategory_id = $2)
                  AND ($3::boolean IS NULL OR is_active = $3)
                ORDER BY name, product_id
            """, category_id, subcategory_id, is_active)
            return [Product.from_record(row) for row in rows]

    async def set_active(self, product_id: int, active: bool) -> CascadeResult:
        """Toggle the active flag; activation requires active parents"""
        async with self.db.transaction() as conn:
            if not active:
                result = await self.cascade.deactivate_product(conn, product_id)
                if result is None:
                    raise NotFound("product", product_id)
                return result

            parents = await self._current_parents(conn, product_id)
            await self._check_hierarchy(conn, *parents)
            row = await self._lock_product(conn, product_id, parents)
            if row['is_active']:
                return CascadeResult()

            await conn.execute("""
                UPDATE products
                SET is_active = true, updated_at = CURRENT_TIMESTAMP
                WHERE product_id = $1
            """, product_id)
            self.logger.info(f"Product {product_id} activated")
            return CascadeResult(products=1)

    async def delete_product(self, product_id: int) -> None:
        """Delete a product that was never ordered; cart lines go with it"""
        try:
            async with self.db.transaction() as conn:
                exists = await conn.fetchval("""
                    SELECT 1 FROM products WHERE product_id = $1 FOR UPDATE
                """, product_id)
                if exists is None:
                    raise NotFound("product", product_id)

                order_lines = await conn.fetchval("""
                    SELECT COUNT(*) FROM order_lines WHERE product_id = $1
                """, product_id)
                if order_lines:
                    raise HasDependents("product", product_id, "order lines", order_lines)

                await conn.execute("""
                    DELETE FROM products WHERE product_id = $1
                """, product_id)
        except asyncpg.exceptions.ForeignKeyViolationError:
            raise HasDependents("product", product_id, "order lines", 1) from None

        self.logger.info(f"Product {product_id} deleted")

    @staticmethod
    async def _current_parents(conn, product_id: int) -> Tuple[int, int]:
        """Parent ids read without a lock, so the parents can be locked first"""
        row = await conn.fetchrow("""
            SELECT category_id, subcategory_id FROM products WHERE product_id = $1
        """, product_id)
        if row is None:
            raise NotFound("product", product_id)
        return row['category_id'], row['subcategory_id']

    @staticmethod
    async def _lock_product(conn, product_id: int, parents: Tuple[int, int]):
        row = await conn.fetchrow("""
            SELECT * FROM products
            WHERE product_id = $1
            FOR UPDATE
        """, product_id)
        if row is None:
            raise NotFound("product", product_id)
        if (row['category_id'], row['subcategory_id']) != parents:
            raise Conflict(f"product {product_id} was moved concurrently")
        return row

    @staticmethod
    async def _check_hierarchy(conn, category_id: int, subcategory_id: int) -> None:
        """Both parents must exist, be active and belong together"""
        category = await conn.fetchrow("""
            SELECT is_active FROM categories
            WHERE category_id = $1
            FOR SHARE
        """, category_id)
        if category is None:
            raise ParentNotFound("category", category_id)

        subcategory = await conn.fetchrow("""
            SELECT category_id, is_active FROM subcategories
            WHERE subcategory_id = $1
            FOR SHARE
        """, subcategory_id)
        if subcategory is None:
            raise ParentNotFound("subcategory", subcategory_id)

        if subcategory['category_id'] != category_id:
            raise HierarchyMismatch(subcategory_id, category_id, subcategory['category_id'])
        if not category['is_active']:
            raise ParentInactive("category", category_id)
        if not subcategory['is_active']:
            raise ParentInactive("subcategory", subcategory_id)
