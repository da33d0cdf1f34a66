from decimal import Decimal
from typing import List, Sequence
from pydantic import BaseModel, computed_field
from .base import TimeStampedModel

class CartLine(TimeStampedModel):
    """Product held in a user's cart at the price seen when first added"""
    user_id: int
    product_id: int
    quantity: int
    unit_price: Decimal

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class CartSummary(BaseModel):
    line_count: int = 0
    total_quantity: int = 0
    total_value: Decimal = Decimal("0.00")

class Cart(BaseModel):
    user_id: int
    lines: List[CartLine] = []
    summary: CartSummary = CartSummary()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @classmethod
    def from_lines(cls, user_id: int, lines: Sequence[CartLine]) -> "Cart":
        """Build a cart and compute its summary on read"""
        summary = CartSummary(
            line_count=len(lines),
            total_quantity=sum(line.quantity for line in lines),
            total_value=sum((line.line_total for line in lines), Decimal("0.00"))
        )
        return cls(user_id=user_id, lines=list(lines), summary=summary)
