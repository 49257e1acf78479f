"""Pydantic request/response schemas for the Marketplace API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands and aggregates.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    error: str
    category: str
    retryable: bool = False
    messages: dict[str, list[str]] = {}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    user_id: str
    shipping_address_id: str
    payment_method: str
    coupon_code: str | None = None
    notes: str | None = Field(default=None, max_length=1000)
    delivery_date: date | None = None
    delivery_time_slot: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "shipping_address_id": "addr-001",
                    "payment_method": "cash_on_delivery",
                    "coupon_code": "SAVE10",
                    "delivery_time_slot": "morning",
                }
            ]
        }
    }


class UpdateOrderStatusRequest(BaseModel):
    status: str
    reason: str | None = Field(default=None, max_length=500)


class OrderItemResponse(BaseModel):
    product_id: str
    title: str
    unit_price: float
    quantity: int
    attributes: dict
    line_total: float


class OrderResponse(BaseModel):
    order_id: str
    user_id: str
    order_status: str
    payment_status: str
    payment_method: str
    payment_id: str | None = None
    items: list[OrderItemResponse]
    subtotal: float
    discount_total: float
    grand_total: float
    currency: str
    coupon_code: str | None = None
    notes: str | None = None
    delivery_date: date | None = None
    delivery_time_slot: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddCartItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    attributes: dict[str, str] = {}


class UpdateCartItemRequest(BaseModel):
    quantity: int
    attributes: dict[str, str] = {}


class CartItemResponse(BaseModel):
    product_id: str
    quantity: int
    price_at_time: float
    attributes: dict


class CartResponse(BaseModel):
    cart_id: str
    user_id: str
    revision: int
    items: list[CartItemResponse]
    indicative_total: float


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    discount_type: str
    discount_value: float = Field(ge=0)
    min_order_amount: float = Field(default=0.0, ge=0)
    max_discount_amount: float | None = Field(default=None, ge=0)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=0)


class CouponIdResponse(BaseModel):
    coupon_id: str


class CouponQuoteRequest(BaseModel):
    code: str
    subtotal: float = Field(ge=0)


class CouponQuoteResponse(BaseModel):
    code: str
    subtotal: float
    discount_amount: float
    total: float


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class ConfigureGatewayRequest(BaseModel):
    outcome: Literal["pending", "paid", "failed"] = "pending"
    failure_reason: str = "Payment declined"
    available: bool = True


class GatewayConfigResponse(BaseModel):
    gateway: str
    outcome: str
    available: bool


class PaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    status: str
    amount: float
    currency: str
    gateway_transaction_id: str | None = None
    failure_reason: str | None = None
