from enum import Enum
from ..models.category import CascadeResult
from .cascade_service import CascadeService
from .category_service import CategoryService
from .product_service import ProductService
from .subcategory_service import SubcategoryService

class NodeType(str, Enum):
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    PRODUCT = "product"

class CatalogService:
    """Entry point over the three catalog levels, sharing one cascade"""

    def __init__(self, db):
        self.db = db
        cascade = CascadeService()
        self.categories = CategoryService(db, cascade)
        self.subcategories = SubcategoryService(db, cascade)
        self.products = ProductService(db, cascade)

    def _service(self, node_type):
        return {
            NodeType.CATEGORY: self.categories,
            NodeType.SUBCATEGORY: self.subcategories,
            NodeType.PRODUCT: self.products,
        }[NodeType(node_type)]

    async def set_active(self, node_type, node_id: int, active: bool) -> CascadeResult:
        return await self._service(node_type).set_active(node_id, active)

    async def delete(self, node_type, node_id: int) -> None:
        node_type = NodeType(node_type)
        if node_type == NodeType.CATEGORY:
            await self.categories.delete_category(node_id)
        elif node_type == NodeType.SUBCATEGORY:
            await self.subcategories.delete_subcategory(node_id)
        else:
            await self.products.delete_product(node_id)
