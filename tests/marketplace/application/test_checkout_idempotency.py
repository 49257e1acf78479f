"""Tests for repeating a checkout with the same idempotency key."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from marketplace.cart.cart import ShoppingCart
from marketplace.cart.gate import CartGate
from marketplace.checkout.attempt import AttemptStatus, CheckoutAttempt, StartCheckoutAttempt
from marketplace.checkout.orchestrator import derive_idempotency_key
from marketplace.errors import CheckoutInProgress, InsufficientStock, InvalidCheckoutRequest
from marketplace.order.order import OrderStatus


@pytest.fixture
def shop(make_product, make_address, fill_cart):
    product = make_product(price=80.0, stock=6)
    address = make_address()
    fill_cart("user-001", (product, 3))
    return {"product": product, "address": address}


def _checkout(orchestrator, shop, key, user_id="user-001"):
    return orchestrator.create_order(
        user_id, str(shop["address"].id), "cash_on_delivery", idempotency_key=key
    )


def _attempt(key):
    return current_domain.repository_for(CheckoutAttempt).find_by_key(key)


def test_repeat_returns_the_same_order(orchestrator, shop, stored_orders, reload):
    first = _checkout(orchestrator, shop, "key-001")
    second = _checkout(orchestrator, shop, "key-001")

    assert second.id == first.id
    assert len(stored_orders()) == 1
    assert reload(shop["product"]).stock == 3
    assert _attempt("key-001").status == AttemptStatus.COMPLETED.value


def test_key_in_progress_is_refused(orchestrator, shop, stored_orders, reload):
    current_domain.process(
        StartCheckoutAttempt(idempotency_key="key-001", user_id="user-001"),
        asynchronous=False,
    )

    with pytest.raises(CheckoutInProgress) as exc_info:
        _checkout(orchestrator, shop, "key-001")

    assert exc_info.value.retryable
    assert stored_orders() == []
    assert reload(shop["product"]).stock == 6


def test_failed_key_can_be_retried(orchestrator, shop, reload):
    product = reload(shop["product"])
    product.stock = 1
    current_domain.repository_for(type(product)).add(product)

    with pytest.raises(InsufficientStock):
        _checkout(orchestrator, shop, "key-001")
    assert _attempt("key-001").status == AttemptStatus.FAILED.value

    product = reload(shop["product"])
    product.stock = 6
    current_domain.repository_for(type(product)).add(product)

    order = _checkout(orchestrator, shop, "key-001")

    attempt = _attempt("key-001")
    assert attempt.status == AttemptStatus.COMPLETED.value
    assert attempt.attempts == 2
    assert str(attempt.order_id) == str(order.id)


def test_key_belongs_to_one_user(orchestrator, shop, make_address, make_product, fill_cart):
    _checkout(orchestrator, shop, "key-001")

    other_address = make_address(user_id="user-002")
    fill_cart("user-002", (make_product(title="Water Bottle", price=12.0), 1))

    with pytest.raises(InvalidCheckoutRequest):
        orchestrator.create_order("user-002", str(other_address.id), "cash_on_delivery", idempotency_key="key-001")


def test_key_derived_from_cart_when_none_given(orchestrator, shop):
    expected = derive_idempotency_key("user-001", CartGate().begin_checkout("user-001"))

    order = orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")

    assert order.idempotency_key == expected
    assert _attempt(expected).status == AttemptStatus.COMPLETED.value


def test_derived_key_follows_cart_revision(shop, make_product, fill_cart):
    gate = CartGate()
    before = gate.begin_checkout("user-001")

    assert derive_idempotency_key("user-001", before) == derive_idempotency_key("user-001", before)

    fill_cart("user-001", (make_product(title="Water Bottle", price=12.0), 1))
    after = gate.begin_checkout("user-001")

    assert derive_idempotency_key("user-001", after) != derive_idempotency_key("user-001", before)


def test_keyless_retry_returns_the_same_order(orchestrator, shop, stored_orders, reload):
    first = orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")
    second = orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")

    assert second.id == first.id
    assert len(stored_orders()) == 1
    assert reload(shop["product"]).stock == 3


def test_keyless_checkout_after_new_items_is_a_new_order(orchestrator, shop, stored_orders, fill_cart):
    first = orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")
    fill_cart("user-001", (shop["product"], 1))

    second = orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")

    assert second.id != first.id
    assert len(stored_orders()) == 2


def test_keyless_retry_after_failure_is_not_replayed(orchestrator, shop, reload):
    product = reload(shop["product"])
    product.stock = 1
    current_domain.repository_for(type(product)).add(product)

    with pytest.raises(InsufficientStock):
        orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")
    with pytest.raises(InsufficientStock):
        orchestrator.create_order("user-001", str(shop["address"].id), "cash_on_delivery")


def test_order_is_cancelled_when_its_key_was_taken_over(orchestrator, shop, stored_orders, reload, monkeypatch):
    def taken_over(self, order_id):
        raise ValidationError({"status": ["Cannot complete a checkout that is completed"]})

    monkeypatch.setattr(CheckoutAttempt, "complete", taken_over)

    with pytest.raises(CheckoutInProgress):
        _checkout(orchestrator, shop, "key-001")

    [order] = stored_orders()
    assert order.order_status == OrderStatus.CANCELLED.value
    assert reload(shop["product"]).stock == 6
    cart = current_domain.repository_for(ShoppingCart).find_for_user("user-001")
    assert cart.items[0].quantity == 3
