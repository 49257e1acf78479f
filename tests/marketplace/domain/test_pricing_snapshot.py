"""Tests for checkout re-pricing against the current catalogue."""

import pytest

from marketplace.cart.gate import CartLine, CartSnapshot
from marketplace.catalogue.product import Product
from marketplace.errors import InsufficientStock, ProductUnavailable
from marketplace.pricing.snapshot import price_snapshot, unit_price


def _product(**overrides):
    data = {"title": "Trail Backpack", "price": 80.0, "stock": 6}
    data.update(overrides)
    return Product.create(**data)


def _snapshot(*lines):
    return CartSnapshot(
        cart_id="cart-001",
        user_id="user-001",
        revision=1,
        lines=tuple(
            CartLine(product_id=str(pid), quantity=qty, attributes=attrs, price_at_time=1.0)
            for pid, qty, attrs in lines
        ),
    )


class TestUnitPrice:
    def test_modifiers_add_to_effective_price(self):
        product = _product(
            discount_price=70.0,
            attribute_options=[
                {"attribute": "size", "value": "L", "price_modifier": 5.0},
                {"attribute": "color", "value": "red", "price_modifier": 2.5},
            ],
        )
        assert unit_price(product, {"size": "L", "color": "red"}) == 77.5

    def test_missing_option(self):
        product = _product()
        with pytest.raises(ProductUnavailable):
            unit_price(product, {"size": "XXL"})


class TestPriceSnapshot:
    def test_cart_price_is_ignored(self):
        product = _product(price=80.0)
        priced = price_snapshot(_snapshot((product.id, 3, "{}")), {str(product.id): product})

        assert priced.subtotal == 240.0
        line = priced.lines[0]
        assert line.unit_price == 80.0
        assert line.line_total == 240.0
        assert line.title == "Trail Backpack"

    def test_rounds_to_cents(self):
        product = _product(price=19.999)
        priced = price_snapshot(_snapshot((product.id, 3, "{}")), {str(product.id): product})
        assert priced.lines[0].unit_price == 20.0
        assert priced.subtotal == 60.0

    def test_deleted_product(self):
        with pytest.raises(ProductUnavailable):
            price_snapshot(_snapshot(("prod-gone", 1, "{}")), {})

    def test_inactive_product(self):
        product = _product(is_active=False)
        with pytest.raises(ProductUnavailable):
            price_snapshot(_snapshot((product.id, 1, "{}")), {str(product.id): product})

    def test_quantity_over_stock(self):
        product = _product(stock=1)
        with pytest.raises(InsufficientStock) as exc_info:
            price_snapshot(_snapshot((product.id, 3, "{}")), {str(product.id): product})
        assert exc_info.value.product_id == str(product.id)

    def test_variants_share_product_stock(self):
        product = _product(
            stock=3,
            attribute_options=[
                {"attribute": "size", "value": "L", "price_modifier": 0.0},
                {"attribute": "size", "value": "M", "price_modifier": 0.0},
            ],
        )
        snapshot = _snapshot((product.id, 2, '{"size": "L"}'), (product.id, 2, '{"size": "M"}'))
        with pytest.raises(InsufficientStock):
            price_snapshot(snapshot, {str(product.id): product})
