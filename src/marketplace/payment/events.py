"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    method = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    initiated_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class GatewayChargeOpened:
    """The gateway accepted the charge and assigned it a transaction id."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    gateway_transaction_id = String(required=True)


@marketplace.event(part_of="Payment")
class PaymentSucceeded:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_transaction_id = String()
    resolved_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    resolved_at = DateTime(required=True)
