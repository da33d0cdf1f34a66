import os
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pytest_postgresql.janitor import DatabaseJanitor

from shopcore.database.database import Database
from shopcore.services.cart_service import CartService
from shopcore.services.category_service import CategoryService
from shopcore.services.order_service import OrderService
from shopcore.services.product_service import ProductService
from shopcore.services.stock_service import StockService
from shopcore.services.subcategory_service import SubcategoryService

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def database_url(request):
    """DSN of the test database.

    TEST_DATABASE_URL points the suite at an existing server; otherwise a
    throwaway PostgreSQL instance is started for the session.
    """
    if TEST_DATABASE_URL:
        yield TEST_DATABASE_URL
        return

    proc = request.getfixturevalue("postgresql_proc")
    with DatabaseJanitor(
        user=proc.user,
        host=proc.host,
        port=proc.port,
        version=proc.version,
        dbname="shopcore_test",
        password=proc.password,
    ):
        credentials = f"{proc.user}:{proc.password}" if proc.password else proc.user
        yield f"postgresql://{credentials}@{proc.host}:{proc.port}/shopcore_test"


@pytest.fixture
async def db(database_url):
    database = Database(database_url)
    await database.connect()
    async with database.pool.acquire() as conn:
        await conn.execute("""
            TRUNCATE order_lines, orders, cart_lines, products, subcategories, categories
            RESTART IDENTITY CASCADE
        """)
    yield database
    await database.close()


@pytest.fixture
def services(db):
    return SimpleNamespace(
        categories=CategoryService(db),
        subcategories=SubcategoryService(db),
        products=ProductService(db),
        stock=StockService(db),
        cart=CartService(db),
        orders=OrderService(db),
    )


@pytest.fixture
async def drinks(services):
    """Drinks -> Soda -> Cola (stock 10, price 1.50)"""
    category = await services.categories.add_category({"name": "Drinks"})
    subcategory = await services.subcategories.add_subcategory({
        "name": "Soda",
        "category_id": category.category_id,
    })
    cola = await services.products.add_product({
        "name": "Cola",
        "category_id": category.category_id,
        "subcategory_id": subcategory.subcategory_id,
        "price": Decimal("1.50"),
        "stock": 10,
    })
    return SimpleNamespace(category=category, subcategory=subcategory, cola=cola)
