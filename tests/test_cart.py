from decimal import Decimal

import pytest

from shopcore.errors import InvalidQuantity, NotFound, ProductInactive

USER_ID = 42


async def test_add_snapshots_current_price(services, drinks):
    line = await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 3)

    assert line.quantity == 3
    assert line.unit_price == Decimal("1.50")
    assert line.line_total == Decimal("4.50")


async def test_repeat_add_keeps_first_price(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)
    await services.products.update_product(drinks.cola.product_id, {"price": "2.00"})

    line = await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 2)

    assert line.quantity == 3
    assert line.unit_price == Decimal("1.50")


async def test_readding_after_removal_takes_new_price(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)
    await services.products.update_product(drinks.cola.product_id, {"price": "2.00"})
    await services.cart.remove(USER_ID, drinks.cola.product_id)

    line = await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    assert line.unit_price == Decimal("2.00")


async def test_inactive_product_cannot_be_added(services, drinks):
    await services.products.set_active(drinks.cola.product_id, False)

    with pytest.raises(ProductInactive):
        await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)


async def test_unknown_product(services, drinks):
    with pytest.raises(NotFound):
        await services.cart.add_or_increment(USER_ID, 999, 1)


@pytest.mark.parametrize("quantity", [0, -2])
async def test_add_requires_positive_quantity(services, drinks, quantity):
    with pytest.raises(InvalidQuantity):
        await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, quantity)


async def test_get_cart_summary(services, drinks):
    tonic = await services.products.add_product({
        "name": "Tonic",
        "category_id": drinks.category.category_id,
        "subcategory_id": drinks.subcategory.subcategory_id,
        "price": "2.25",
        "stock": 4,
    })
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 3)
    await services.cart.add_or_increment(USER_ID, tonic.product_id, 2)

    cart = await services.cart.get_cart(USER_ID)

    assert cart.summary.line_count == 2
    assert cart.summary.total_quantity == 5
    assert cart.summary.total_value == Decimal("9.00")


async def test_carts_are_per_user(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    cart = await services.cart.get_cart(USER_ID + 1)

    assert cart.is_empty


async def test_set_quantity(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    line = await services.cart.set_quantity(USER_ID, drinks.cola.product_id, 5)

    assert line.quantity == 5
    assert line.unit_price == Decimal("1.50")


async def test_set_quantity_zero_removes_line(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    assert await services.cart.set_quantity(USER_ID, drinks.cola.product_id, 0) is None
    assert (await services.cart.get_cart(USER_ID)).is_empty


async def test_set_quantity_on_missing_line(services, drinks):
    with pytest.raises(NotFound):
        await services.cart.set_quantity(USER_ID, drinks.cola.product_id, 2)
    with pytest.raises(InvalidQuantity):
        await services.cart.set_quantity(USER_ID, drinks.cola.product_id, -1)


async def test_remove_missing_line(services, drinks):
    with pytest.raises(NotFound):
        await services.cart.remove(USER_ID, drinks.cola.product_id)


async def test_clear_cart(services, drinks):
    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    assert await services.cart.clear_cart(USER_ID) == 1
    assert (await services.cart.get_cart(USER_ID)).is_empty


async def test_quantity_beyond_column_range(services, drinks):
    with pytest.raises(InvalidQuantity):
        await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 2 ** 31)

    await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 2 ** 31 - 1)
    with pytest.raises(InvalidQuantity):
        await services.cart.add_or_increment(USER_ID, drinks.cola.product_id, 1)

    cart = await services.cart.get_cart(USER_ID)
    assert cart.summary.total_quantity == 2 ** 31 - 1
