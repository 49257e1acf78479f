"""Marketplace API package."""

from marketplace.api.routes import (
    cart_router,
    coupon_router,
    order_router,
    payment_router,
    register_exception_handlers,
)

__all__ = ["cart_router", "coupon_router", "order_router", "payment_router", "register_exception_handlers"]
