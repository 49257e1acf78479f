"""Integration tests for the order endpoints via TestClient."""

from protean import current_domain

from marketplace.catalogue.product import Product
from marketplace.checkout.attempt import StartCheckoutAttempt


def test_checkout(client, checkout_request):
    body, product = checkout_request()

    response = client.post("/orders", json=body)

    assert response.status_code == 201
    data = response.json()
    assert data["order_status"] == "placed"
    assert data["payment_status"] == "pending"
    assert data["subtotal"] == 240.0
    assert data["discount_total"] == 24.0
    assert data["grand_total"] == 216.0
    assert data["coupon_code"] == "SAVE10"
    assert data["items"][0]["quantity"] == 3
    assert current_domain.repository_for(Product).get(product.id).stock == 3

    cart = client.get("/carts/user-001").json()
    assert cart["items"] == []


def test_checkout_with_delivery_preferences(client, checkout_request):
    body, _ = checkout_request(delivery_date="2026-11-02", delivery_time_slot="evening", notes="Call first")

    data = client.post("/orders", json=body).json()

    assert data["delivery_date"] == "2026-11-02"
    assert data["delivery_time_slot"] == "evening"
    assert data["notes"] == "Call first"


def test_idempotency_key_header(client, checkout_request):
    body, product = checkout_request()
    headers = {"Idempotency-Key": "key-api-001"}

    first = client.post("/orders", json=body, headers=headers)
    second = client.post("/orders", json=body, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["order_id"] == first.json()["order_id"]
    assert current_domain.repository_for(Product).get(product.id).stock == 3


def test_insufficient_stock_is_a_business_error(client, checkout_request):
    body, product = checkout_request()
    stored = current_domain.repository_for(Product).get(product.id)
    stored.stock = 1
    current_domain.repository_for(Product).add(stored)

    response = client.post("/orders", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "InsufficientStock"
    assert data["category"] == "business_rule"
    assert data["retryable"] is False


def test_unknown_payment_method(client, checkout_request):
    body, _ = checkout_request(payment_method="bitcoin")

    response = client.post("/orders", json=body)

    assert response.status_code == 400
    assert "payment_method" in response.json()["messages"]


def test_unknown_address_is_not_found(client, checkout_request):
    body, _ = checkout_request(shipping_address_id="addr-missing")

    response = client.post("/orders", json=body)

    assert response.status_code == 404
    assert response.json()["error"] == "AddressNotFound"


def test_gateway_outage(client, checkout_request, gateway):
    gateway.configure(available=False)
    body, _ = checkout_request(payment_method="esewa")

    response = client.post("/orders", json=body)

    assert response.status_code == 502
    assert response.json()["retryable"] is True


def test_key_in_use(client, checkout_request):
    body, _ = checkout_request()
    current_domain.process(
        StartCheckoutAttempt(idempotency_key="key-busy", user_id="user-001"),
        asynchronous=False,
    )

    response = client.post("/orders", json=body, headers={"Idempotency-Key": "key-busy"})

    assert response.status_code == 409
    assert response.json()["error"] == "CheckoutInProgress"


def test_get_order(client, checkout_request):
    body, _ = checkout_request()
    order_id = client.post("/orders", json=body).json()["order_id"]

    response = client.get(f"/orders/{order_id}")

    assert response.status_code == 200
    assert response.json()["order_id"] == order_id


def test_get_missing_order(client):
    assert client.get("/orders/ord-missing").status_code == 404


def test_status_transitions(client, checkout_request):
    body, _ = checkout_request()
    order_id = client.post("/orders", json=body).json()["order_id"]

    for status in ("confirmed", "shipped", "delivered"):
        response = client.put(f"/orders/{order_id}/status", json={"status": status})
        assert response.status_code == 200
        assert response.json()["order_status"] == status

    assert response.json()["payment_status"] == "paid"


def test_invalid_transition(client, checkout_request):
    body, _ = checkout_request()
    order_id = client.post("/orders", json=body).json()["order_id"]

    response = client.put(f"/orders/{order_id}/status", json={"status": "delivered"})

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidTransition"


def test_unsupported_status(client, checkout_request):
    body, _ = checkout_request()
    order_id = client.post("/orders", json=body).json()["order_id"]

    response = client.put(f"/orders/{order_id}/status", json={"status": "returned"})

    assert response.status_code == 400


def test_cancel_restores_stock(client, checkout_request):
    body, product = checkout_request()
    order_id = client.post("/orders", json=body).json()["order_id"]

    response = client.put(f"/orders/{order_id}/status", json={"status": "cancelled", "reason": "Duplicate order"})

    assert response.status_code == 200
    assert response.json()["order_status"] == "cancelled"
    assert current_domain.repository_for(Product).get(product.id).stock == 6
