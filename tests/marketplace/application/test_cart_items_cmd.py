"""Tests for cart item commands."""

import pytest
from protean import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItem
from marketplace.errors import CartNotFound, InsufficientStock, ProductUnavailable


def _cart(user_id="user-001"):
    return current_domain.repository_for(ShoppingCart).find_for_user(user_id)


def _process(command):
    return current_domain.process(command, asynchronous=False)


class TestAddToCart:
    def test_creates_cart_and_captures_price(self, make_product):
        product = make_product(price=80.0, discount_price=72.0)
        cart_id = _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=2))

        cart = _cart()
        assert str(cart.id) == cart_id
        assert cart.items[0].quantity == 2
        assert cart.items[0].price_at_time == 72.0

    def test_option_modifier_in_captured_price(self, make_product):
        product = make_product(
            price=80.0,
            attribute_options=[{"attribute": "size", "value": "L", "price_modifier": 5.0}],
        )
        _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=1, attributes={"size": "L"}))
        assert _cart().items[0].price_at_time == 85.0

    def test_same_line_merges(self, make_product):
        product = make_product(stock=6)
        for _ in range(2):
            _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=2))

        cart = _cart()
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 4

    def test_merged_quantity_checked_against_stock(self, make_product):
        product = make_product(stock=3)
        _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=2))

        with pytest.raises(InsufficientStock):
            _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=2))
        assert _cart().items[0].quantity == 2

    def test_inactive_product(self, make_product):
        product = make_product(is_active=False)
        with pytest.raises(ProductUnavailable):
            _process(AddToCart(user_id="user-001", product_id=str(product.id), quantity=1))

    def test_unknown_product(self):
        with pytest.raises(ProductUnavailable):
            _process(AddToCart(user_id="user-001", product_id="missing", quantity=1))


class TestChangeCart:
    def test_update_quantity(self, make_product, fill_cart):
        product = make_product(stock=6)
        fill_cart("user-001", (product, 1))

        _process(UpdateCartItem(user_id="user-001", product_id=str(product.id), quantity=5))
        assert _cart().items[0].quantity == 5

    def test_update_to_zero_removes_line(self, make_product, fill_cart):
        product = make_product()
        fill_cart("user-001", (product, 1))

        _process(UpdateCartItem(user_id="user-001", product_id=str(product.id), quantity=0))
        assert len(_cart().items) == 0

    def test_update_beyond_stock(self, make_product, fill_cart):
        product = make_product(stock=2)
        fill_cart("user-001", (product, 1))

        with pytest.raises(InsufficientStock):
            _process(UpdateCartItem(user_id="user-001", product_id=str(product.id), quantity=3))

    def test_update_without_cart(self, make_product):
        product = make_product()
        with pytest.raises(CartNotFound):
            _process(UpdateCartItem(user_id="user-404", product_id=str(product.id), quantity=1))

    def test_remove(self, make_product, fill_cart):
        backpack = make_product(title="Trail Backpack")
        bottle = make_product(title="Water Bottle", price=12.0)
        fill_cart("user-001", (backpack, 1), (bottle, 2))

        _process(RemoveFromCart(user_id="user-001", product_id=str(backpack.id)))
        assert [str(item.product_id) for item in _cart().items] == [str(bottle.id)]

    def test_clear(self, make_product, fill_cart):
        product = make_product()
        fill_cart("user-001", (product, 2))

        _process(ClearCart(user_id="user-001"))
        assert len(_cart().items) == 0
