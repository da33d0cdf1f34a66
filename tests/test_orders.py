import asyncio
from decimal import Decimal

import pytest

from shopcore.errors import EmptyCart, ProductUnavailable

USER_ID = 7


async def order_count(db):
    async with db.pool.acquire() as conn:
        return await conn.fetchval("SELECT COUNT(*) FROM orders")


async def test_order_keeps_cart_price(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 3)
    await services.products.update_product(drinks.cola.product_id, {"price": "2.00"})

    order = await services.orders.place_order(USER_ID)

    assert len(order.lines) == 1
    line = order.lines[0]
    assert line.unit_price == Decimal("1.50")
    assert line.quantity == 3
    assert line.subtotal == Decimal("4.50")
    assert order.total == Decimal("4.50")

    cola = await services.products.get_product(drinks.cola.product_id)
    assert cola.stock == 7
    assert (await services.cart.get_cart(USER_ID)).is_empty


async def test_empty_cart_creates_no_order(db, services, drinks):
    with pytest.raises(EmptyCart):
        await services.orders.place_order(USER_ID)

    assert await order_count(db) == 0


async def test_total_is_frozen(services, drinks):
    tonic = await services.products.add_product({
        "name": "Tonic",
        "category_id": drinks.category.category_id,
        "subcategory_id": drinks.subcategory.subcategory_id,
        "price": "2.25",
        "stock": 4,
    })
    await services.cart.add_or_increment(USER_ID, tonic.product_id, 2)
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)
    cart = await services.cart.get_cart(USER_ID)

    order = await services.orders.place_order(USER_ID)
    await services.products.update_product(tonic.product_id, {"price": "9.99"})
    stored = await services.orders.get_order(order.order_id)

    assert order.total == cart.summary.total_value == Decimal("6.00")
    assert stored.total == Decimal("6.00")
    assert [l.product_id for l in stored.lines] == sorted([tonic.product_id, drinks.cola.product_id])
    assert sum(l.subtotal for l in stored.lines) == stored.total


async def test_insufficient_stock_leaves_cart_untouched(db, services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 4)
    await services.stock.set_stock(drinks.cola.product_id, 3)

    with pytest.raises(ProductUnavailable) as exc_info:
        await services.orders.place_order(USER_ID)

    assert exc_info.value.product_id == drinks.cola.product_id
    assert exc_info.value.available == 3
    assert await order_count(db) == 0
    assert (await services.cart.get_cart(USER_ID)).summary.total_quantity == 4
    assert (await services.products.get_product(drinks.cola.product_id)).stock == 3


async def test_inactive_product_blocks_whole_order(db, services, drinks):
    tonic = await services.products.add_product({
        "name": "Tonic",
        "category_id": drinks.category.category_id,
        "subcategory_id": drinks.subcategory.subcategory_id,
        "price": "2.25",
        "stock": 4,
    })
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)
    await services.cart.add_or_increment(USER_ID, tonic.product_id, 1)
    await services.products.set_active(tonic.product_id, False)

    with pytest.raises(ProductUnavailable) as exc_info:
        await services.orders.place_order(USER_ID)

    assert exc_info.value.product_id == tonic.product_id
    assert await order_count(db) == 0
    assert (await services.products.get_product(drinks.cola.product_id)).stock == 10
    assert (await services.cart.get_cart(USER_ID)).summary.line_count == 2


async def test_competing_orders_do_not_oversell(db, services, drinks):
    await services.cart.add_or_increment(1, drinks.cola.product_id, 6)
    await services.cart.add_or_increment(2, drinks.cola.product_id, 6)

    results = await asyncio.gather(
        services.orders.place_order(1),
        services.orders.place_order(2),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ProductUnavailable)
    assert await order_count(db) == 1
    assert (await services.products.get_product(drinks.cola.product_id)).stock == 4


async def test_user_orders_and_best_sellers(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 2)
    first = await services.orders.place_order(USER_ID)
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)
    second = await services.orders.place_order(USER_ID)

    orders = await services.orders.get_user_orders(USER_ID)
    best = await services.orders.get_best_sellers()

    assert [o.order_id for o in orders] == [second.order_id, first.order_id]
    assert orders[1].lines[0].quantity == 2
    assert best[0].product_id == drinks.cola.product_id
    assert best[0].total_quantity == 3


async def test_get_missing_order(services):
    assert await services.orders.get_order(999) is None
