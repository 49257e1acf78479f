"""Order notifications — tell the customer when their order moves."""

import structlog
from protean import handle

from marketplace.domain import marketplace
from marketplace.notifications import notify
from marketplace.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    OrderShipped,
)
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)

_STATUS_MESSAGES = {
    "confirmed": "has been confirmed and is being processed",
    "shipped": "has been shipped and is on the way",
    "delivered": "has been delivered. Enjoy your purchase!",
    "cancelled": "has been cancelled",
}

_KINDS = {
    "shipped": "order_shipped",
    "delivered": "order_delivered",
}


def short_order_id(order_id) -> str:
    return str(order_id)[-8:]


def _status_changed(order_id, user_id, status):
    notify(
        user_id,
        f"Order {status.capitalize()}",
        f"Your order #{short_order_id(order_id)} {_STATUS_MESSAGES[status]}",
        _KINDS.get(status, "order_status"),
        reference=str(order_id),
    )


@marketplace.event_handler(part_of=Order)
class OrderNotificationHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        notify(
            event.user_id,
            "Order Placed",
            f"Your order #{short_order_id(event.order_id)} for {event.currency} {event.grand_total:.2f} "
            "has been placed",
            "order_placed",
            reference=str(event.order_id),
        )

    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        _status_changed(event.order_id, event.user_id, "confirmed")

    @handle(OrderShipped)
    def on_order_shipped(self, event: OrderShipped) -> None:
        _status_changed(event.order_id, event.user_id, "shipped")

    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        _status_changed(event.order_id, event.user_id, "delivered")

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        _status_changed(event.order_id, event.user_id, "cancelled")

    @handle(OrderPaymentFailed)
    def on_payment_failed(self, event: OrderPaymentFailed) -> None:
        logger.info("payment_failure_notified", order_id=str(event.order_id))
        notify(
            event.user_id,
            "Payment Failed",
            f"Payment for your order #{short_order_id(event.order_id)} failed: {event.reason}",
            "payment_failed",
            reference=str(event.order_id),
        )

    @handle(OrderPaid)
    def on_order_paid(self, event: OrderPaid) -> None:
        notify(
            event.user_id,
            "Payment Received",
            f"We received {event.amount:.2f} for your order #{short_order_id(event.order_id)}",
            "payment_received",
            reference=str(event.order_id),
        )
