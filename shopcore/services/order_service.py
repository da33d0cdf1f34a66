import logging
from typing import List, Optional
from ..errors import EmptyCart, InsufficientStock, ProductUnavailable
from ..models.cart import CartLine
from ..models.order import BestSeller, Order, OrderLine, build_order_lines
from ..utils.formatters import format_datetime, format_price
from .cart_service import CART_LOCK_QUERY
from .stock_service import StockOperation, StockService

class OrderService:
    """Cart-to-order conversion and order lookups"""

    def __init__(self, db, stock_service: Optional[StockService] = None):
        self.db = db
        self.stock_service = stock_service or StockService(db)
        self.logger = logging.getLogger(__name__)

    async def place_order(self, user_id: int) -> Order:
        """Convert the user's cart into an order in one transaction.

        Lines keep the cart's price snapshot. Products are locked and
        decremented in product id order. On any failure nothing is written
        and the cart stays as it was.
        """
        async with self.db.transaction() as conn:
            await conn.execute(CART_LOCK_QUERY, user_id)

            rows = await conn.fetch("""
                SELECT *
                FROM cart_lines
                WHERE user_id = $1
                ORDER BY product_id
                FOR UPDATE
            """, user_id)
            if not rows:
                raise EmptyCart(user_id)
            cart_lines = [CartLine.from_record(row) for row in rows]

            products = await conn.fetch("""
                SELECT product_id, stock, is_active
                FROM products
                WHERE product_id = ANY($1::integer[])
                ORDER BY product_id
                FOR UPDATE
            """, [line.product_id for line in cart_lines])
            products = {row['product_id']: row for row in products}

            for line in cart_lines:
                product = products.get(line.product_id)
                if product is None or not product['is_active']:
                    raise ProductUnavailable(line.product_id, "inactive")
                if product['stock'] < line.quantity:
                    raise ProductUnavailable(
                        line.product_id, "insufficient stock",
                        requested=line.quantity, available=product['stock']
                    )

            lines, total = build_order_lines(cart_lines)

            order_row = await conn.fetchrow("""
                INSERT INTO orders (user_id, total)
                VALUES ($1, $2)
                RETURNING *
            """, user_id, total)
            order_id = order_row['order_id']

            await conn.executemany("""
                INSERT INTO order_lines (
                    order_id, product_id, quantity, unit_price, subtotal
                ) VALUES ($1, $2, $3, $4, $5)
            """, [
                (order_id, line.product_id, line.quantity, line.unit_price, line.subtotal)
                for line in lines
            ])

            for line in lines:
                try:
                    await self.stock_service.adjust(
                        conn, line.product_id, StockOperation.DECREASE, line.quantity
                    )
                except InsufficientStock as e:
                    raise ProductUnavailable(
                        e.product_id, "insufficient stock",
                        requested=e.requested, available=e.available
                    ) from e

            await conn.execute("""
                DELETE FROM cart_lines WHERE user_id = $1
            """, user_id)

        order = Order(
            order_id=order_id,
            user_id=user_id,
            created_at=order_row['created_at'],
            total=order_row['total'],
            lines=[line.model_copy(update={"order_id": order_id}) for line in lines]
        )
        self.logger.info(
            f"Order {order_id} placed by user {user_id} at {format_datetime(order.created_at)}: "
            f"{len(lines)} lines, total {format_price(order.total)}"
        )
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM orders WHERE order_id = $1
            """, order_id)
            if row is None:
                return None

            lines = await conn.fetch("""
                SELECT *
                FROM order_lines
                WHERE order_id = $1
                ORDER BY product_id
            """, order_id)

        return Order(
            **dict(row),
            lines=[OrderLine.model_validate(dict(line)) for line in lines]
        )

    async def get_user_orders(self, user_id: int, limit: int = 10) -> List[Order]:
        """Most recent orders of a user, newest first"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM orders
                WHERE user_id = $1
                ORDER BY created_at DESC, order_id DESC
                LIMIT $2
            """, user_id, limit)

            lines = await conn.fetch("""
                SELECT *
                FROM order_lines
                WHERE order_id = ANY($1::integer[])
                ORDER BY order_id, product_id
            """, [row['order_id'] for row in rows])

        lines_by_order = {}
        for line in lines:
            lines_by_order.setdefault(line['order_id'], []).append(
                OrderLine.model_validate(dict(line))
            )

        return [
            Order(**dict(row), lines=lines_by_order.get(row['order_id'], []))
            for row in rows
        ]

    async def get_best_sellers(self, limit: int = 10) -> List[BestSeller]:
        """Products ranked by quantity ordered"""
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT p.product_id, p.name, SUM(ol.quantity) AS total_quantity
                FROM order_lines ol
                JOIN products p ON p.product_id = ol.product_id
                GROUP BY p.product_id, p.name
                ORDER BY total_quantity DESC, p.product_id
                LIMIT $1
            """, limit)
            return [BestSeller.model_validate(dict(row)) for row in rows]
