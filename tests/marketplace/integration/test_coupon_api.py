"""Integration tests for the coupon endpoints via TestClient."""


def _create(client, **overrides):
    body = {"code": "welcome20", "discount_type": "percentage", "discount_value": 20.0, "usage_limit": 100}
    body.update(overrides)
    return client.post("/coupons", json=body)


def test_create_and_quote(client):
    response = _create(client, max_discount_amount=30.0)
    assert response.status_code == 201
    assert response.json()["coupon_id"]

    quote = client.post("/coupons/quote", json={"code": "WELCOME20", "subtotal": 240.0})

    assert quote.status_code == 200
    assert quote.json() == {"code": "WELCOME20", "subtotal": 240.0, "discount_amount": 30.0, "total": 210.0}


def test_duplicate_code(client):
    _create(client)
    response = _create(client, code="WELCOME20")

    assert response.status_code == 400
    assert "code" in response.json()["messages"]


def test_deactivated_coupon_cannot_be_quoted(client):
    coupon_id = _create(client).json()["coupon_id"]

    assert client.put(f"/coupons/{coupon_id}/deactivate").status_code == 200
    response = client.post("/coupons/quote", json={"code": "WELCOME20", "subtotal": 240.0})

    assert response.status_code == 400
    assert response.json()["error"] == "CouponInvalid"


def test_minimum_not_met(client):
    _create(client, min_order_amount=500.0)

    response = client.post("/coupons/quote", json={"code": "WELCOME20", "subtotal": 240.0})

    assert response.json()["error"] == "MinimumNotMet"


def test_unknown_code(client):
    response = client.post("/coupons/quote", json={"code": "NOPE", "subtotal": 240.0})
    assert response.status_code == 400
