from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from pydantic import BaseModel
from .cart import CartLine

class OrderLine(BaseModel):
    """Frozen line of an order; subtotal is stored, never recomputed"""
    order_id: Optional[int] = None
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

class Order(BaseModel):
    """Order created from a cart"""
    order_id: int
    user_id: int
    created_at: datetime
    total: Decimal
    lines: List[OrderLine] = []

def build_order_lines(cart_lines: Sequence[CartLine]) -> Tuple[List[OrderLine], Decimal]:
    """Turn cart lines into order lines ordered by product id.

    Prices come from the cart snapshot, not from the live product.
    """
    lines = []
    total = Decimal("0.00")
    for cart_line in sorted(cart_lines, key=lambda line: line.product_id):
        subtotal = cart_line.unit_price * cart_line.quantity
        lines.append(OrderLine(
            product_id=cart_line.product_id,
            quantity=cart_line.quantity,
            unit_price=cart_line.unit_price,
            subtotal=subtotal
        ))
        total += subtotal
    return lines, total

class BestSeller(BaseModel):
    product_id: int
    name: str
    total_quantity: int
