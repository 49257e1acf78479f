"""FastAPI routes for the Marketplace — checkout, orders, cart, coupons, payments."""

import json
import os

import structlog
from fastapi import APIRouter, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddCartItemRequest,
    CartItemResponse,
    CartResponse,
    CheckoutRequest,
    ConfigureGatewayRequest,
    CouponIdResponse,
    CouponQuoteRequest,
    CouponQuoteResponse,
    CreateCouponRequest,
    GatewayConfigResponse,
    OrderItemResponse,
    OrderResponse,
    PaymentResponse,
    StatusResponse,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
from marketplace.cart.cart import ShoppingCart
from marketplace.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItem
from marketplace.checkout.orchestrator import CheckoutOrchestrator
from marketplace.coupon.evaluator import CouponEvaluator
from marketplace.coupon.management import CreateCoupon, DeactivateCoupon
from marketplace.errors import CartNotFound, ErrorCategory, InvalidCheckoutRequest, MarketplaceError
from marketplace.order.order import CancellationActor, Order, OrderStatus
from marketplace.order.status import ConfirmOrder, DeliverOrder, ShipOrder
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.fake_adapter import FakeGateway
from marketplace.pricing.snapshot import money

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.BUSINESS_RULE: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.EXTERNAL: 502,
    ErrorCategory.INTERNAL: 503,
}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def _validation_error_response(request: Request, exc: ValidationError) -> JSONResponse:
    if isinstance(exc, MarketplaceError):
        category, retryable, error = exc.category, exc.retryable, type(exc).__name__
    else:
        category, retryable, error = ErrorCategory.VALIDATION, False, "ValidationError"

    status_code = _STATUS_CODES[category]
    if status_code >= 500:
        logger.warning("request_failed", path=request.url.path, error=error, status_code=status_code)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "category": category,
            "retryable": retryable,
            "messages": exc.messages,
        },
    )


def _not_found_response(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": "NotFound", "category": ErrorCategory.NOT_FOUND, "retryable": False, "messages": {}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into JSON responses with category-based status codes."""
    app.add_exception_handler(ValidationError, _validation_error_response)
    app.add_exception_handler(ObjectNotFoundError, _not_found_response)


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------
def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        user_id=str(order.user_id),
        order_status=order.order_status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        payment_id=str(order.payment_id) if order.payment_id else None,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                title=item.title,
                unit_price=item.unit_price,
                quantity=item.quantity,
                attributes=json.loads(item.attributes or "{}"),
                line_total=item.line_total,
            )
            for item in order.items
        ],
        subtotal=order.pricing.subtotal,
        discount_total=order.pricing.discount_total,
        grand_total=order.pricing.grand_total,
        currency=order.pricing.currency,
        coupon_code=order.coupon.code if order.coupon else None,
        notes=order.notes,
        delivery_date=order.delivery_date,
        delivery_time_slot=order.delivery_time_slot,
        created_at=order.created_at,
    )


def _cart_response(cart: ShoppingCart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        user_id=str(cart.user_id),
        revision=cart.revision or 0,
        items=[
            CartItemResponse(
                product_id=str(item.product_id),
                quantity=item.quantity,
                price_at_time=item.price_at_time,
                attributes=item.selections(),
            )
            for item in cart.items
        ],
        indicative_total=cart.indicative_total(),
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def checkout(
    body: CheckoutRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> OrderResponse:
    """Place an order from the user's cart.

    Repeating the request with the same ``Idempotency-Key`` returns the
    order created the first time.
    """
    order = CheckoutOrchestrator().create_order(
        user_id=body.user_id,
        shipping_address_id=body.shipping_address_id,
        payment_method=body.payment_method,
        coupon_code=body.coupon_code,
        notes=body.notes,
        delivery_date=body.delivery_date,
        delivery_time_slot=body.delivery_time_slot,
        idempotency_key=idempotency_key,
    )
    return _order_response(order)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderResponse:
    """Administrative status change. Cancelling releases stock and the coupon slot."""
    transitions = {
        OrderStatus.CONFIRMED.value: ConfirmOrder,
        OrderStatus.SHIPPED.value: ShipOrder,
        OrderStatus.DELIVERED.value: DeliverOrder,
    }

    if body.status == OrderStatus.CANCELLED.value:
        order = CheckoutOrchestrator().cancel_order(
            order_id,
            reason=body.reason or "Cancelled by admin",
            cancelled_by=CancellationActor.ADMIN.value,
        )
        return _order_response(order)

    command_cls = transitions.get(body.status)
    if command_cls is None:
        raise InvalidCheckoutRequest("status", f"Unsupported order status: {body.status}")

    current_domain.process(command_cls(order_id=order_id), asynchronous=False)
    return _order_response(current_domain.repository_for(Order).get(order_id))


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["cart"])


def _load_cart(user_id: str) -> ShoppingCart:
    cart = current_domain.repository_for(ShoppingCart).find_for_user(user_id)
    if cart is None:
        raise CartNotFound(user_id)
    return cart


@cart_router.get("/{user_id}", response_model=CartResponse)
async def get_cart(user_id: str) -> CartResponse:
    return _cart_response(_load_cart(user_id))


@cart_router.post("/{user_id}/items", response_model=CartResponse)
async def add_cart_item(user_id: str, body: AddCartItemRequest) -> CartResponse:
    current_domain.process(
        AddToCart(
            user_id=user_id,
            product_id=body.product_id,
            quantity=body.quantity,
            attributes=body.attributes,
        ),
        asynchronous=False,
    )
    return _cart_response(_load_cart(user_id))


@cart_router.put("/{user_id}/items/{product_id}", response_model=CartResponse)
async def update_cart_item(user_id: str, product_id: str, body: UpdateCartItemRequest) -> CartResponse:
    """Set a line's quantity; zero or less removes it."""
    current_domain.process(
        UpdateCartItem(
            user_id=user_id,
            product_id=product_id,
            quantity=body.quantity,
            attributes=body.attributes,
        ),
        asynchronous=False,
    )
    return _cart_response(_load_cart(user_id))


@cart_router.delete("/{user_id}/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(user_id: str, product_id: str) -> CartResponse:
    current_domain.process(RemoveFromCart(user_id=user_id, product_id=product_id), asynchronous=False)
    return _cart_response(_load_cart(user_id))


@cart_router.delete("/{user_id}", response_model=CartResponse)
async def clear_cart(user_id: str) -> CartResponse:
    current_domain.process(ClearCart(user_id=user_id), asynchronous=False)
    return _cart_response(_load_cart(user_id))


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponIdResponse)
async def create_coupon(body: CreateCouponRequest) -> CouponIdResponse:
    coupon_id = current_domain.process(CreateCoupon(**body.model_dump(exclude_none=True)), asynchronous=False)
    return CouponIdResponse(coupon_id=coupon_id)


@coupon_router.put("/{coupon_id}/deactivate", response_model=StatusResponse)
async def deactivate_coupon(coupon_id: str) -> StatusResponse:
    current_domain.process(DeactivateCoupon(coupon_id=coupon_id), asynchronous=False)
    return StatusResponse(status="deactivated")


@coupon_router.post("/quote", response_model=CouponQuoteResponse)
async def quote_coupon(body: CouponQuoteRequest) -> CouponQuoteResponse:
    """Show what a coupon would take off ``subtotal`` without using it."""
    result = CouponEvaluator().quote(body.code, body.subtotal)
    return CouponQuoteResponse(
        code=result.code,
        subtotal=body.subtotal,
        discount_amount=result.discount_amount,
        total=money(body.subtotal - result.discount_amount),
    )


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=PaymentResponse)
async def process_webhook(
    request: Request,
    x_gateway_signature: str = Header(default=""),
) -> PaymentResponse:
    """Apply a gateway verdict. The signature covers the raw request body."""
    payload = (await request.body()).decode()
    payment = CheckoutOrchestrator().payments.handle_webhook(payload, x_gateway_signature)
    return PaymentResponse(
        payment_id=str(payment.id),
        order_id=str(payment.order_id),
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        gateway_transaction_id=payment.gateway_transaction_id,
        failure_reason=payment.failure_reason,
    )


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(outcome=body.outcome, failure_reason=body.failure_reason, available=body.available)
    return GatewayConfigResponse(gateway=type(gateway).__name__, outcome=gateway.outcome, available=gateway.available)
