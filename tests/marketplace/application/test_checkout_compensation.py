"""Tests for undoing completed checkout steps when a later one fails."""

import pytest
from protean import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.checkout import orchestrator as orchestrator_module
from marketplace.checkout.attempt import AttemptStatus, CheckoutAttempt
from marketplace.checkout.orchestrator import CheckoutOrchestrator
from marketplace.errors import (
    CheckoutInterrupted,
    CheckoutTimeout,
    GatewayUnavailable,
    InsufficientStock,
    PaymentDeclined,
)
from marketplace.inventory.stock import DecrementStock
from marketplace.order.order import OrderStatus, PaymentStatus
from marketplace.payment.payment import Payment


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def shop(make_product, make_address, make_coupon, fill_cart):
    """A cart of 3 x 80.00 with SAVE10 available (usage 5 of 10)."""
    product = make_product(price=80.0, stock=6)
    address = make_address()
    coupon = make_coupon(usage_limit=10, usage_count=5)
    fill_cart("user-001", (product, 3))
    return {"product": product, "address": address, "coupon": coupon}


def _checkout(orchestrator, shop, payment_method="cash_on_delivery"):
    return orchestrator.create_order(
        "user-001", str(shop["address"].id), payment_method, coupon_code="SAVE10"
    )


def _cart_quantity():
    cart = current_domain.repository_for(ShoppingCart).find_for_user("user-001")
    return sum(item.quantity for item in cart.items)


def _attempt(key):
    return current_domain.repository_for(CheckoutAttempt).find_by_key(key)


def _assert_released(shop, reload):
    assert reload(shop["product"]).stock == 6
    assert reload(shop["coupon"]).usage_count == 5
    assert _cart_quantity() == 3


class TestPaymentFailure:
    def test_gateway_unavailable(self, orchestrator, shop, gateway, stored_orders, reload):
        gateway.configure(available=False)

        with pytest.raises(GatewayUnavailable):
            _checkout(orchestrator, shop, payment_method="card")

        [order] = stored_orders()
        assert order.order_status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.cancelled_by == "system"

        payment = current_domain.repository_for(Payment).get(order.payment_id)
        assert payment.status == "failed"

        attempt = _attempt(order.idempotency_key)
        assert attempt.status == AttemptStatus.FAILED.value
        assert str(attempt.order_id) == str(order.id)

        _assert_released(shop, reload)

    def test_gateway_too_slow(self, orchestrator, shop, gateway, stored_orders, reload):
        gateway.configure(latency=30.0)

        with pytest.raises(GatewayUnavailable):
            _checkout(orchestrator, shop, payment_method="khalti")

        assert stored_orders()[0].order_status == OrderStatus.CANCELLED.value
        _assert_released(shop, reload)

    def test_declined(self, orchestrator, shop, gateway, stored_orders, reload):
        gateway.configure(outcome="failed", failure_reason="Insufficient funds")

        with pytest.raises(PaymentDeclined) as exc_info:
            _checkout(orchestrator, shop, payment_method="esewa")

        assert "Insufficient funds" in str(exc_info.value)
        [order] = stored_orders()
        assert order.payment_status == PaymentStatus.FAILED.value
        assert "Insufficient funds" in order.payment_failure_reason
        _assert_released(shop, reload)


class TestConcurrentStockChange:
    def test_stock_taken_between_pricing_and_reservation(
        self, orchestrator, make_product, make_address, make_coupon, fill_cart, monkeypatch, stored_orders, reload
    ):
        backpack = make_product(title="Trail Backpack", price=80.0, stock=6)
        bottle = make_product(title="Water Bottle", price=12.0, stock=2)
        address = make_address()
        coupon = make_coupon(usage_limit=10, usage_count=5)
        fill_cart("user-001", (backpack, 3), (bottle, 2))

        price_snapshot = orchestrator_module.price_snapshot

        def priced_then_outbid(snapshot, products):
            priced = price_snapshot(snapshot, products)
            current_domain.process(DecrementStock(product_id=str(bottle.id), quantity=1), asynchronous=False)
            return priced

        monkeypatch.setattr(orchestrator_module, "price_snapshot", priced_then_outbid)

        with pytest.raises(InsufficientStock):
            orchestrator.create_order("user-001", str(address.id), "cash_on_delivery", coupon_code="SAVE10")

        assert reload(backpack).stock == 6
        assert reload(bottle).stock == 1
        assert reload(coupon).usage_count == 5
        assert stored_orders() == []
        assert _cart_quantity() == 5


class TestStepTimeout:
    def test_slow_reservation_is_undone(self, shop, monkeypatch, stored_orders, reload):
        clock = FakeClock()
        orchestrator = CheckoutOrchestrator(clock=clock)
        reserve = orchestrator.inventory.reserve

        def slow_reserve(lines, reference):
            reservation = reserve(lines, reference=reference)
            clock.now += 30.0
            return reservation

        monkeypatch.setattr(orchestrator.inventory, "reserve", slow_reserve)

        with pytest.raises(CheckoutTimeout) as exc_info:
            _checkout(orchestrator, shop)

        assert exc_info.value.retryable
        assert stored_orders() == []
        _assert_released(shop, reload)


class TestUnexpectedFailure:
    def test_crash_after_order_write(self, orchestrator, shop, monkeypatch, stored_orders, reload):
        def crash(order, timeout=None):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(orchestrator.payments, "initiate", crash)

        with pytest.raises(CheckoutInterrupted) as exc_info:
            _checkout(orchestrator, shop)

        assert "payment" in str(exc_info.value)
        [order] = stored_orders()
        assert order.order_status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.PENDING.value
        _assert_released(shop, reload)

    def test_failing_compensation_does_not_hide_the_cause(
        self, orchestrator, shop, gateway, monkeypatch, reload
    ):
        gateway.configure(available=False)

        def broken_release(discount):
            raise RuntimeError("coupon store down")

        monkeypatch.setattr(orchestrator.coupons, "release", broken_release)

        with pytest.raises(GatewayUnavailable):
            _checkout(orchestrator, shop, payment_method="card")

        assert reload(shop["product"]).stock == 6
        assert reload(shop["coupon"]).usage_count == 6


class TestCartCommit:
    def test_commit_failure_keeps_the_order(self, orchestrator, shop, monkeypatch, reload):
        def broken_commit(snapshot, order_id):
            raise RuntimeError("cart store down")

        monkeypatch.setattr(orchestrator.cart_gate, "commit", broken_commit)

        order = _checkout(orchestrator, shop)

        assert order.order_status == OrderStatus.PLACED.value
        assert _attempt(order.idempotency_key).status == AttemptStatus.COMPLETED.value
        assert reload(shop["product"]).stock == 3
        assert _cart_quantity() == 3
