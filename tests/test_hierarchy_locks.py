from contextlib import asynccontextmanager

import pytest

from shopcore.errors import Conflict
from shopcore.services.product_service import ProductService
from shopcore.services.subcategory_service import SubcategoryService


class MovingConnection:
    """Row moves to another category between the unlocked read and the row lock"""

    def __init__(self):
        self.queries = []

    async def fetchval(self, query, *args):
        self.queries.append(query)
        return 1

    async def fetchrow(self, query, *args):
        self.queries.append(query)
        if "FROM categories" in query:
            return {"is_active": True}
        if "FROM subcategories" in query and "FOR SHARE" in query:
            return {"category_id": 1, "is_active": True}
        if "FOR UPDATE" in query:
            return {"category_id": 2, "subcategory_id": 5, "is_active": False}
        return {"category_id": 1, "subcategory_id": 5}

    async def execute(self, query, *args):
        self.queries.append(query)
        return "UPDATE 1"


class FakeDatabase:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def transaction(self):
        yield self.conn


def lock_order(queries):
    return [
        "categories" if "FROM categories" in query else "row"
        for query in queries
        if "FOR SHARE" in query or "FOR UPDATE" in query
    ]


async def test_subcategory_activation_locks_parent_first():
    conn = MovingConnection()
    service = SubcategoryService(FakeDatabase(conn))

    with pytest.raises(Conflict):
        await service.set_active(5, True)

    assert lock_order(conn.queries) == ["categories", "row"]
    assert not any(query.strip().startswith("UPDATE") for query in conn.queries)


async def test_subcategory_move_locks_target_first():
    conn = MovingConnection()
    service = SubcategoryService(FakeDatabase(conn))

    with pytest.raises(Conflict):
        await service.update_subcategory(5, {"category_id": 3})

    assert lock_order(conn.queries) == ["categories", "row"]


async def test_product_activation_locks_parents_first():
    conn = MovingConnection()
    service = ProductService(FakeDatabase(conn))

    with pytest.raises(Conflict) as excinfo:
        await service.set_active(9, True)

    assert excinfo.value.retryable
    assert lock_order(conn.queries)[-1] == "row"
    assert "FROM categories" in [q for q in conn.queries if "FOR SHARE" in q][0]
    assert not any(query.strip().startswith("UPDATE") for query in conn.queries)
