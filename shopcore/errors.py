"""Store core exceptions.

Validation errors are terminal for the given input. ``Conflict`` and
``Timeout`` mark transient store failures; callers may retry those with
backoff, never the others.
"""

from decimal import Decimal
from typing import Any, Optional


class StoreError(Exception):
    """Base class for every error raised by the store core"""

    kind = "store_error"
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": str(self), **self.context}


class NotFound(StoreError):
    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class DuplicateName(StoreError):
    kind = "duplicate_name"

    def __init__(self, entity: str, name: str):
        super().__init__(f"{entity} named {name!r} already exists", entity=entity, name=name)
        self.entity = entity
        self.name = name


class ParentNotFound(StoreError):
    kind = "parent_not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"parent {entity} {entity_id} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class ParentInactive(StoreError):
    kind = "parent_inactive"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"parent {entity} {entity_id} is inactive", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class HierarchyMismatch(StoreError):
    """The subcategory does not belong to the given category."""

    kind = "hierarchy_mismatch"

    def __init__(self, subcategory_id: int, category_id: int, actual_category_id: int):
        super().__init__(
            f"subcategory {subcategory_id} belongs to category {actual_category_id}, "
            f"not {category_id}",
            subcategory_id=subcategory_id,
            category_id=category_id,
            actual_category_id=actual_category_id,
        )
        self.subcategory_id = subcategory_id
        self.category_id = category_id
        self.actual_category_id = actual_category_id


class InvalidPrice(StoreError):
    kind = "invalid_price"

    def __init__(self, price: Any):
        super().__init__(f"invalid price {price}", price=price)
        self.price = price


class InvalidStock(StoreError):
    kind = "invalid_stock"

    def __init__(self, value: Any):
        super().__init__(f"invalid stock quantity {value}", value=value)
        self.value = value


class InvalidQuantity(StoreError):
    kind = "invalid_quantity"

    def __init__(self, quantity: Any):
        super().__init__(f"invalid cart quantity {quantity}", quantity=quantity)
        self.quantity = quantity


class InvalidUpdate(StoreError):
    """Update request naming no columns or columns that cannot be changed."""

    kind = "invalid_update"

    def __init__(self, entity: str, fields):
        fields = sorted(fields)
        if fields:
            message = f"cannot update {', '.join(fields)} on {entity}"
        else:
            message = f"nothing to update on {entity}"
        super().__init__(message, entity=entity, fields=fields)
        self.entity = entity
        self.fields = fields


class InsufficientStock(StoreError):
    kind = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"product {product_id} has {available} in stock, {requested} requested",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class HasDependents(StoreError):
    """Delete rejected; deactivate the node instead."""

    kind = "has_dependents"

    def __init__(self, entity: str, entity_id: Any, dependents: str, count: int):
        super().__init__(
            f"{entity} {entity_id} still has {count} {dependents}",
            entity=entity,
            id=entity_id,
            dependents=dependents,
            count=count,
        )
        self.entity = entity
        self.entity_id = entity_id
        self.dependents = dependents
        self.count = count


class ProductInactive(StoreError):
    kind = "product_inactive"

    def __init__(self, product_id: int):
        super().__init__(f"product {product_id} is inactive", product_id=product_id)
        self.product_id = product_id


class ProductUnavailable(StoreError):
    kind = "product_unavailable"

    def __init__(self, product_id: int, reason: str,
                 requested: Optional[int] = None, available: Optional[int] = None):
        super().__init__(
            f"product {product_id} is unavailable: {reason}",
            product_id=product_id,
            reason=reason,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.reason = reason
        self.requested = requested
        self.available = available


class EmptyCart(StoreError):
    kind = "empty_cart"

    def __init__(self, user_id: int):
        super().__init__(f"cart of user {user_id} is empty", user_id=user_id)
        self.user_id = user_id


class Conflict(StoreError):
    """Lock contention or serialization failure."""

    kind = "conflict"
    retryable = True

    def __init__(self, message: str = "concurrent update conflict"):
        super().__init__(message)


class Timeout(StoreError):
    kind = "timeout"
    retryable = True

    def __init__(self, message: str = "operation timed out"):
        super().__init__(message)


# Column limits: NUMERIC(10, 2) prices, INTEGER stock
MAX_PRICE = Decimal("99999999.99")
MAX_STOCK = 2 ** 31 - 1


def ensure_price(price: Any) -> Decimal:
    """Normalize a price to two decimal places within the column range"""
    try:
        value = Decimal(str(price))
        if not value.is_finite() or value < 0 or value > MAX_PRICE:
            raise InvalidPrice(price)
        return value.quantize(Decimal("0.01"))
    except (ArithmeticError, ValueError):
        raise InvalidPrice(price) from None


def ensure_stock(value: Any) -> int:
    """Validate a non-negative integer stock quantity"""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_STOCK:
        raise InvalidStock(value)
    return value
