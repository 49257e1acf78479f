import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketplace.api import (
    cart_router,
    coupon_router,
    order_router,
    payment_router,
    register_exception_handlers,
)


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(cart_router)
    app.include_router(coupon_router)
    app.include_router(payment_router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def checkout_request(make_product, make_address, make_coupon, client):
    """Put 3 x 80.00 in user-001's cart and return a checkout body using SAVE10."""

    def _request(payment_method="cash_on_delivery", stock=6, **overrides):
        product = make_product(price=80.0, stock=stock)
        address = make_address()
        make_coupon(code="SAVE10", usage_limit=10, usage_count=5)
        response = client.post("/carts/user-001/items", json={"product_id": str(product.id), "quantity": 3})
        assert response.status_code == 200

        body = {
            "user_id": "user-001",
            "shipping_address_id": str(address.id),
            "payment_method": payment_method,
            "coupon_code": "SAVE10",
        }
        body.update(overrides)
        return body, product

    return _request
