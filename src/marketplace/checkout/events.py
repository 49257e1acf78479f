"""Domain events for the CheckoutAttempt aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="CheckoutAttempt")
class CheckoutStarted:
    __version__ = 1

    attempt_id = Identifier(required=True)
    idempotency_key = String(required=True)
    user_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    started_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutAttempt")
class CheckoutCompleted:
    __version__ = 1

    attempt_id = Identifier(required=True)
    idempotency_key = String(required=True)
    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutAttempt")
class CheckoutFailed:
    __version__ = 1

    attempt_id = Identifier(required=True)
    idempotency_key = String(required=True)
    reason = String(required=True)
    order_id = Identifier()
    failed_at = DateTime(required=True)
