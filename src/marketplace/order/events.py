"""Domain events for the Order aggregate."""

from protean.fields import Date, DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A checkout produced a priced, stock-reserved order."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of line dicts
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    discount_total = Float(required=True)
    grand_total = Float(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    coupon_code = String()
    reservation_id = Identifier()
    delivery_date = Date()
    delivery_time_slot = String()
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    confirmed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    reservation_id = Identifier()
    coupon_id = Identifier()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentAttached:
    """A gateway payment was opened for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    payment_method = String(required=True)


@marketplace.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    payment_id = Identifier()
    amount = Float(required=True)
    payment_method = String(required=True)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    payment_id = Identifier()
    reason = String(required=True)
    failed_at = DateTime(required=True)
