"""Order aggregate (CQRS) — the immutable result of a checkout.

Everything captured at checkout (lines, prices, shipping address, coupon
application) is a value copy and is never re-derived from the cart, the
catalogue or the address book afterwards.

Two status fields evolve independently:

    order_status:   placed → confirmed → shipped → delivered
                    placed | confirmed → cancelled
    payment_status: pending → paid | failed

A failed payment is only ever seen on a placed or cancelled order: recording
the failure cancels an order that is still placed or confirmed. Orders paid
through a gateway ship only once paid; cash on delivery orders become paid
when delivery is recorded.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.errors import InvalidTransition
from marketplace.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    OrderShipped,
    PaymentAttached,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    ESEWA = "esewa"
    KHALTI = "khalti"
    CARD = "card"


GATEWAY_METHODS = {PaymentMethod.ESEWA.value, PaymentMethod.KHALTI.value, PaymentMethod.CARD.value}


class DeliveryTimeSlot(Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class CancellationActor(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


_VALID_TRANSITIONS = {
    OrderStatus.PLACED: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class ShippingAddress:
    """Copy of the address the order ships to, taken at checkout."""

    full_name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@marketplace.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(default=0.0)
    currency = String(max_length=3, default="NPR")


@marketplace.value_object(part_of="Order")
class CouponApplication:
    """The coupon as it applied to this order, frozen at order time."""

    coupon_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    discount_amount = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    title = String(required=True, max_length=200)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    attributes = Text(default="{}")
    line_total = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    pricing = ValueObject(OrderPricing)
    coupon = ValueObject(CouponApplication)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_id = Identifier()
    order_status = String(choices=OrderStatus, default=OrderStatus.PLACED.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    notes = String(max_length=1000)
    delivery_date = Date()
    delivery_time_slot = String(choices=DeliveryTimeSlot)
    reservation_id = Identifier()
    idempotency_key = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    payment_failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def failed_payment_only_on_placed_or_cancelled_order(self):
        if self.payment_status == PaymentStatus.FAILED.value and self.order_status not in (
            OrderStatus.PLACED.value,
            OrderStatus.CANCELLED.value,
        ):
            raise ValidationError(
                {"payment_status": ["An order with a failed payment must be placed or cancelled"]}
            )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        user_id,
        items_data,
        shipping_address,
        pricing,
        payment_method,
        coupon=None,
        notes=None,
        delivery_date=None,
        delivery_time_slot=None,
        reservation_id=None,
        idempotency_key=None,
    ):
        """Create an order in ``placed`` / ``pending``.

        Args:
            items_data: List of dicts with product_id, title, unit_price,
                        quantity, attributes, line_total.
            shipping_address: Dict of ``ShippingAddress`` fields.
            pricing: Dict with subtotal, discount_total, grand_total, currency.
            coupon: Dict with coupon_id, code, discount_amount, or None.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            items=[OrderItem(**item) for item in items_data],
            shipping_address=ShippingAddress(**shipping_address),
            pricing=OrderPricing(**pricing),
            coupon=CouponApplication(**coupon) if coupon else None,
            payment_method=payment_method,
            order_status=OrderStatus.PLACED.value,
            payment_status=PaymentStatus.PENDING.value,
            notes=notes,
            delivery_date=delivery_date,
            delivery_time_slot=delivery_time_slot,
            reservation_id=reservation_id,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(items_data),
                item_count=sum(item["quantity"] for item in items_data),
                subtotal=order.pricing.subtotal,
                discount_total=order.pricing.discount_total,
                grand_total=order.pricing.grand_total,
                currency=order.pricing.currency,
                payment_method=payment_method,
                coupon_code=coupon["code"] if coupon else None,
                reservation_id=reservation_id,
                delivery_date=delivery_date,
                delivery_time_slot=delivery_time_slot,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def pays_through_gateway(self) -> bool:
        return self.payment_method in GATEWAY_METHODS

    @property
    def is_cancelled(self) -> bool:
        return self.order_status == OrderStatus.CANCELLED.value

    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.order_status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(f"Cannot transition from {current.value} to {target_status.value}")

    # -------------------------------------------------------------------
    # Order status
    # -------------------------------------------------------------------
    def confirm(self):
        self._assert_can_transition(OrderStatus.CONFIRMED)
        if self.payment_status == PaymentStatus.FAILED.value:
            raise InvalidTransition("Cannot confirm an order whose payment failed")

        now = datetime.now(UTC)
        self.order_status = OrderStatus.CONFIRMED.value
        self.updated_at = now
        self.raise_(OrderConfirmed(order_id=str(self.id), user_id=str(self.user_id), confirmed_at=now))

    def ship(self):
        self._assert_can_transition(OrderStatus.SHIPPED)
        if self.pays_through_gateway and self.payment_status != PaymentStatus.PAID.value:
            raise InvalidTransition("Cannot ship an order before its payment is received")

        now = datetime.now(UTC)
        self.order_status = OrderStatus.SHIPPED.value
        self.updated_at = now
        self.raise_(OrderShipped(order_id=str(self.id), user_id=str(self.user_id), shipped_at=now))

    def deliver(self):
        """Record delivery; cash on delivery is collected at this point."""
        self._assert_can_transition(OrderStatus.DELIVERED)

        now = datetime.now(UTC)
        self.order_status = OrderStatus.DELIVERED.value
        self.updated_at = now
        self.raise_(OrderDelivered(order_id=str(self.id), user_id=str(self.user_id), delivered_at=now))

        if not self.pays_through_gateway and self.payment_status == PaymentStatus.PENDING.value:
            self.payment_status = PaymentStatus.PAID.value
            self.raise_(
                OrderPaid(
                    order_id=str(self.id),
                    user_id=str(self.user_id),
                    amount=self.pricing.grand_total,
                    payment_method=self.payment_method,
                    paid_at=now,
                )
            )

    def cancel(self, reason, cancelled_by=CancellationActor.ADMIN.value):
        self._assert_can_transition(OrderStatus.CANCELLED)

        previous = self.order_status
        now = datetime.now(UTC)
        self.order_status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                user_id=str(self.user_id),
                previous_status=previous,
                reason=reason,
                cancelled_by=cancelled_by,
                reservation_id=self.reservation_id,
                coupon_id=self.coupon.coupon_id if self.coupon else None,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment status
    # -------------------------------------------------------------------
    def attach_payment(self, payment_id):
        if not self.pays_through_gateway:
            raise ValidationError({"payment_method": ["Cash on delivery orders have no gateway payment"]})

        self.payment_id = payment_id
        self.updated_at = datetime.now(UTC)
        self.raise_(
            PaymentAttached(
                order_id=str(self.id),
                payment_id=str(payment_id),
                payment_method=self.payment_method,
            )
        )

    def record_payment_success(self, payment_id=None):
        if self.payment_status != PaymentStatus.PENDING.value:
            raise InvalidTransition(f"Cannot mark a {self.payment_status} payment as paid")

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                user_id=str(self.user_id),
                payment_id=payment_id,
                amount=self.pricing.grand_total,
                payment_method=self.payment_method,
                paid_at=now,
            )
        )

    def record_payment_failure(self, reason, payment_id=None):
        """Mark the payment failed, cancelling the order if it is still open."""
        if self.payment_status != PaymentStatus.PENDING.value:
            raise InvalidTransition(f"Cannot mark a {self.payment_status} payment as failed")

        now = datetime.now(UTC)
        with atomic_change(self):
            if self.order_status in (OrderStatus.PLACED.value, OrderStatus.CONFIRMED.value):
                self.cancel(reason=f"Payment failed: {reason}", cancelled_by=CancellationActor.SYSTEM.value)
            self.payment_status = PaymentStatus.FAILED.value
            self.payment_failure_reason = reason
            self.updated_at = now

        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                user_id=str(self.user_id),
                payment_id=payment_id,
                reason=reason,
                failed_at=now,
            )
        )
