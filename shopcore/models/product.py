from decimal import Decimal
from typing import Optional
from pydantic import BaseModel
from .base import TimeStampedModel

class Product(TimeStampedModel):
    """Sellable item placed under a category and one of its subcategories"""
    product_id: int
    category_id: int
    subcategory_id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int = 0
    is_active: bool = True
    # Opaque handle issued by the upload service
    image_ref: Optional[str] = None

class StockAdjustment(BaseModel):
    """Before/after view of a single stock mutation"""
    product_id: int
    previous_stock: int
    new_stock: int

    @property
    def delta(self) -> int:
        return self.new_stock - self.previous_stock
