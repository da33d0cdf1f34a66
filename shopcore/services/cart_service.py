import asyncpg
import logging
from typing import Optional
from ..errors import MAX_STOCK, InvalidQuantity, NotFound, ProductInactive
from ..models.cart import Cart, CartLine
from ..utils.query import affected_rows

# Serializes cart writers of one user against order placement
CART_LOCK_QUERY = "SELECT pg_advisory_xact_lock(hashtextextended('cart:' || $1::bigint::text, 0))"

class CartService:
    """Per-user shopping cart with add-time price snapshots"""

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def add_or_increment(self, user_id: int, product_id: int, quantity: int = 1) -> CartLine:
        """Add a product to the cart, or bump the quantity of its line.

        The unit price is captured on first add only; repeat adds keep the
        original snapshot.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= MAX_STOCK:
            raise InvalidQuantity(quantity)

        async with self.db.transaction() as conn:
            await conn.execute(CART_LOCK_QUERY, user_id)

            product = await conn.fetchrow("""
                SELECT price, is_active FROM products
                WHERE product_id = $1
                FOR SHARE
            """, product_id)
            if product is None:
                raise NotFound("product", product_id)
            if not product['is_active']:
                raise ProductInactive(product_id)

            try:
                row = await conn.fetchrow("""
                    INSERT INTO cart_lines (user_id, product_id, quantity, unit_price)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (user_id, product_id)
                    DO UPDATE SET quantity = cart_lines.quantity + EXCLUDED.quantity,
                                  updated_at = CURRENT_TIMESTAMP
                    RETURNING *
                """, user_id, product_id, quantity, product['price'])
            except asyncpg.exceptions.NumericValueOutOfRangeError:
                # Incremented quantity no longer fits the column
                raise InvalidQuantity(quantity) from None

        return CartLine.from_record(row)

    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> Optional[CartLine]:
        """Overwrite a line's quantity; zero removes the line"""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 <= quantity <= MAX_STOCK:
            raise InvalidQuantity(quantity)
        if quantity == 0:
            await self.remove(user_id, product_id)
            return None

        async with self.db.transaction() as conn:
            await conn.execute(CART_LOCK_QUERY, user_id)
            row = await conn.fetchrow("""
                UPDATE cart_lines
                SET quantity = $3, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = $1 AND product_id = $2
                RETURNING *
            """, user_id, product_id, quantity)

        if row is None:
            raise NotFound("cart line", product_id)
        return CartLine.from_record(row)

    async def remove(self, user_id: int, product_id: int) -> None:
        async with self.db.transaction() as conn:
            await conn.execute(CART_LOCK_QUERY, user_id)
            status = await conn.execute("""
                DELETE FROM cart_lines
                WHERE user_id = $1 AND product_id = $2
            """, user_id, product_id)

        if affected_rows(status) == 0:
            raise NotFound("cart line", product_id)

    async def clear_cart(self, user_id: int) -> int:
        """Drop every line of the cart and return how many were removed"""
        async with self.db.transaction() as conn:
            await conn.execute(CART_LOCK_QUERY, user_id)
            status = await conn.execute("""
                DELETE FROM cart_lines WHERE user_id = $1
            """, user_id)
        return affected_rows(status)

    async def get_cart(self, user_id: int) -> Cart:
        """Read the cart without locking; the summary is computed here"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM cart_lines
                WHERE user_id = $1
                ORDER BY created_at, product_id
            """, user_id)
        return Cart.from_lines(user_id, [CartLine.from_record(row) for row in rows])
