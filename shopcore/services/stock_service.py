import logging
from enum import Enum
from ..errors import MAX_STOCK, InsufficientStock, InvalidStock, NotFound, ensure_stock
from ..models.product import StockAdjustment

class StockOperation(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    SET = "set"

class StockService:
    """Floor-guarded stock adjustments.

    Each adjustment locks the product row, so concurrent adjustments of the
    same product are applied one after another and stock never drops
    below zero.
    """

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def increase(self, product_id: int, quantity: int) -> StockAdjustment:
        async with self.db.transaction() as conn:
            return await self.adjust(conn, product_id, StockOperation.INCREASE, quantity)

    async def decrease(self, product_id: int, quantity: int) -> StockAdjustment:
        async with self.db.transaction() as conn:
            return await self.adjust(conn, product_id, StockOperation.DECREASE, quantity)

    async def set_stock(self, product_id: int, quantity: int) -> StockAdjustment:
        async with self.db.transaction() as conn:
            return await self.adjust(conn, product_id, StockOperation.SET, quantity)

    async def adjust(self, conn, product_id: int, operation: StockOperation,
                     quantity: int) -> StockAdjustment:
        """Apply one adjustment on the caller's transaction"""
        ensure_stock(quantity)

        previous = await conn.fetchval("""
            SELECT stock FROM products
            WHERE product_id = $1
            FOR UPDATE
        """, product_id)
        if previous is None:
            raise NotFound("product", product_id)

        new_stock = apply_stock_operation(product_id, previous, operation, quantity)

        await conn.execute("""
            UPDATE products
            SET stock = $1, updated_at = CURRENT_TIMESTAMP
            WHERE product_id = $2
        """, new_stock, product_id)

        self.logger.info(
            f"Stock of product {product_id} {operation.value}: {previous} -> {new_stock}"
        )
        return StockAdjustment(
            product_id=product_id,
            previous_stock=previous,
            new_stock=new_stock
        )

def apply_stock_operation(product_id: int, current: int,
                          operation: StockOperation, quantity: int) -> int:
    """New stock value after the operation, or InsufficientStock"""
    if operation == StockOperation.INCREASE:
        if current + quantity > MAX_STOCK:
            raise InvalidStock(current + quantity)
        return current + quantity
    if operation == StockOperation.DECREASE:
        if quantity > current:
            raise InsufficientStock(product_id, quantity, current)
        return current - quantity
    return quantity
