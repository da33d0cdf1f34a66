from decimal import Decimal
from typing import Optional
from pydantic import BaseModel
from .base import TimeStampedModel

class Category(TimeStampedModel):
    """Top level of the catalog hierarchy"""
    category_id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True

class Subcategory(TimeStampedModel):
    """Second level of the catalog; always owned by one category"""
    subcategory_id: int
    category_id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True

class CascadeResult(BaseModel):
    """Rows whose active flag actually flipped during a deactivation"""
    categories: int = 0
    subcategories: int = 0
    products: int = 0

    @property
    def total(self) -> int:
        return self.categories + self.subcategories + self.products

class InventorySummary(BaseModel):
    subcategory_id: int
    total_products: int = 0
    active_products: int = 0
    inactive_products: int = 0
    total_stock: int = 0
    inventory_value: Decimal = Decimal("0.00")
