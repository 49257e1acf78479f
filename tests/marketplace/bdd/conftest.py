"""Shared BDD fixtures and step definitions for checkout."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from marketplace.cart.cart import ShoppingCart
from marketplace.catalogue.product import Product
from marketplace.checkout.orchestrator import CheckoutOrchestrator
from marketplace.coupon.coupon import Coupon
from marketplace.order.order import Order


@pytest.fixture()
def user_id():
    return "user-001"


@pytest.fixture()
def catalogue():
    """Products created in Given steps, by title."""
    return {}


@pytest.fixture()
def orchestrator():
    return CheckoutOrchestrator()


@pytest.fixture()
def outcome():
    """Orders placed and the error raised by When steps."""
    return {"orders": [], "error": None}


def _product(catalogue, title):
    return current_domain.repository_for(Product).get(catalogue[title].id)


def _last_order():
    return current_domain.repository_for(Order)._dao.query.all().items[-1]


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{title}" priced {price:f} with {stock:d} in stock'))
def _(catalogue, make_product, title, price, stock):
    catalogue[title] = make_product(title=title, price=price, stock=stock)


@given(parsers.cfparse('a coupon "{code}" for {percent:d} percent used {used:d} of {limit:d} times'))
def _(make_coupon, code, percent, used, limit):
    make_coupon(code=code, discount_value=float(percent), usage_limit=limit, usage_count=used)


@given("the shopper has a shipping address", target_fixture="address")
def _(make_address, user_id):
    return make_address(user_id=user_id)


@given(parsers.cfparse('the shopper has {quantity:d} "{title}" in the cart'))
def _(fill_cart, catalogue, user_id, quantity, title):
    fill_cart(user_id, (catalogue[title], quantity))


@given(parsers.cfparse('"{title}" has only {stock:d} in stock'))
def _(catalogue, title, stock):
    product = _product(catalogue, title)
    product.stock = stock
    current_domain.repository_for(Product).add(product)


@given(parsers.cfparse('coupon "{code}" has no uses left'))
def _(code):
    repo = current_domain.repository_for(Coupon)
    coupon = repo.find_by_code(code)
    coupon.usage_count = coupon.usage_limit
    repo.add(coupon)


@given("the payment gateway is unavailable")
def _(gateway):
    gateway.configure(available=False)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order total is {total:f} after a discount of {discount:f}"))
def _(outcome, total, discount):
    order = outcome["orders"][-1]
    assert order.pricing.grand_total == total
    assert order.pricing.discount_total == discount


@then(parsers.cfparse('"{title}" has {stock:d} in stock'))
def _(catalogue, title, stock):
    assert _product(catalogue, title).stock == stock


@then(parsers.cfparse('coupon "{code}" has been used {count:d} times'))
def _(code, count):
    assert current_domain.repository_for(Coupon).find_by_code(code).usage_count == count


@then("the cart is empty")
def _(user_id):
    assert len(current_domain.repository_for(ShoppingCart).find_for_user(user_id).items) == 0


@then(parsers.cfparse("the cart still holds {quantity:d} items"))
def _(user_id, quantity):
    cart = current_domain.repository_for(ShoppingCart).find_for_user(user_id)
    assert sum(item.quantity for item in cart.items) == quantity


@then(parsers.cfparse('checkout fails with "{error}"'))
def _(outcome, error):
    assert outcome["error"] is not None
    assert type(outcome["error"]).__name__ == error


@then("the order is cancelled with a failed payment")
def _():
    order = _last_order()
    assert order.order_status == "cancelled"
    assert order.payment_status == "failed"


@then("the order is placed and paid")
def _():
    order = _last_order()
    assert order.order_status == "placed"
    assert order.payment_status == "paid"


@then("both checkouts return the same order")
def _(outcome):
    first, second = outcome["orders"]
    assert first.id == second.id
