"""Error taxonomy for the checkout engine.

Every domain failure is a Protean ``ValidationError`` so callers can read
``exc.messages`` the same way they do for field validation. ``category``
places the error in the taxonomy used by the HTTP layer, ``retryable``
tells a client whether repeating the same request can succeed.
"""

from protean.exceptions import ValidationError


class ErrorCategory:
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXTERNAL = "external"
    INTERNAL = "internal"


class MarketplaceError(ValidationError):
    """Base class for all checkout engine failures."""

    field = "checkout"
    category = ErrorCategory.BUSINESS_RULE
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__({self.field: [message]})
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class InvalidCheckoutRequest(MarketplaceError):
    category = ErrorCategory.VALIDATION

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------
class CartNotFound(MarketplaceError):
    field = "cart"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, user_id: str):
        super().__init__(f"No cart found for user {user_id}", user_id=user_id)


class EmptyCart(MarketplaceError):
    field = "cart"

    def __init__(self, user_id: str):
        super().__init__("Cart is empty", user_id=user_id)


class AddressNotFound(MarketplaceError):
    field = "shipping_address_id"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, address_id: str):
        super().__init__("Shipping address not found", address_id=address_id)


class ProductUnavailable(MarketplaceError):
    field = "product_id"

    def __init__(self, product_id: str, reason: str = "Product is not available"):
        super().__init__(reason, product_id=product_id)
        self.product_id = product_id


class InsufficientStock(MarketplaceError):
    field = "quantity"

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: {available} available, {requested} requested",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id


class CouponInvalid(MarketplaceError):
    field = "coupon_code"

    def __init__(self, code: str, reason: str = "Invalid coupon code"):
        super().__init__(reason, code=code)


class CouponExpired(MarketplaceError):
    field = "coupon_code"

    def __init__(self, code: str, reason: str = "Coupon has expired"):
        super().__init__(reason, code=code)


class CouponExhausted(MarketplaceError):
    field = "coupon_code"

    def __init__(self, code: str):
        super().__init__("Coupon usage limit reached", code=code)


class MinimumNotMet(MarketplaceError):
    field = "coupon_code"

    def __init__(self, code: str, minimum: float):
        super().__init__(f"Minimum order amount of {minimum:.2f} required", code=code, minimum=minimum)


class InvalidTransition(MarketplaceError):
    field = "status"


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------
class CheckoutInProgress(MarketplaceError):
    field = "idempotency_key"
    category = ErrorCategory.CONFLICT
    retryable = True

    def __init__(self, idempotency_key: str):
        super().__init__("A checkout with this idempotency key is already in progress", key=idempotency_key)


# ---------------------------------------------------------------------------
# External
# ---------------------------------------------------------------------------
class GatewayUnavailable(MarketplaceError):
    field = "payment"
    category = ErrorCategory.EXTERNAL
    retryable = True

    def __init__(self, provider: str, reason: str = "Payment gateway unavailable"):
        super().__init__(reason, provider=provider)


class InvalidWebhookSignature(MarketplaceError):
    field = "signature"
    category = ErrorCategory.VALIDATION

    def __init__(self):
        super().__init__("Webhook signature verification failed")


class PaymentDeclined(MarketplaceError):
    field = "payment"
    category = ErrorCategory.EXTERNAL

    def __init__(self, payment_id: str, reason: str):
        super().__init__(f"Payment declined: {reason}", payment_id=payment_id)


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------
class StockContention(MarketplaceError):
    field = "quantity"
    category = ErrorCategory.INTERNAL
    retryable = True

    def __init__(self, product_id: str):
        super().__init__(f"Stock for product {product_id} is under heavy contention", product_id=product_id)


class CouponContention(MarketplaceError):
    field = "coupon_code"
    category = ErrorCategory.INTERNAL
    retryable = True

    def __init__(self, code: str):
        super().__init__(f"Coupon {code} is under heavy contention", code=code)


class CheckoutTimeout(MarketplaceError):
    category = ErrorCategory.INTERNAL
    retryable = True

    def __init__(self, step: str, elapsed: float, limit: float):
        super().__init__(
            f"Checkout step '{step}' took {elapsed:.2f}s (limit {limit:.2f}s)",
            step=step,
            elapsed=elapsed,
            limit=limit,
        )


class CheckoutInterrupted(MarketplaceError):
    category = ErrorCategory.INTERNAL
    retryable = True

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"Checkout interrupted during '{step}': {cause}", step=step)
