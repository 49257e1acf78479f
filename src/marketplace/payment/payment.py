"""Payment aggregate (CQRS) — one gateway charge for one order.

Cash on delivery orders have no Payment. A Payment is resolved exactly once:

    pending → paid | failed

Resolving it again with the same verdict changes nothing; resolving it with
the opposite verdict is refused. A failed Payment is kept for audit.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace
from marketplace.errors import InvalidTransition
from marketplace.payment.events import (
    GatewayChargeOpened,
    PaymentFailed,
    PaymentInitiated,
    PaymentSucceeded,
)


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentProvider(Enum):
    ESEWA = "esewa"
    KHALTI = "khalti"
    CARD = "card"


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    method = String(required=True, choices=PaymentProvider)
    provider = String(max_length=50)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="NPR")
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    gateway_transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    resolved_at = DateTime()

    @classmethod
    def create(cls, order_id, user_id, method, amount, currency, provider=None):
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            user_id=user_id,
            method=method,
            provider=provider or method,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            created_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                user_id=str(user_id),
                method=method,
                amount=amount,
                currency=currency,
                initiated_at=now,
            )
        )
        return payment

    @property
    def is_resolved(self) -> bool:
        return self.status != PaymentStatus.PENDING.value

    def record_charge(self, gateway_transaction_id):
        self.gateway_transaction_id = gateway_transaction_id
        self.raise_(
            GatewayChargeOpened(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                gateway_transaction_id=gateway_transaction_id,
            )
        )

    def resolve(self, verdict, gateway_transaction_id=None, reason=None) -> bool:
        """Apply the gateway's verdict. Returns False when it was already applied."""
        if verdict not in (PaymentStatus.PAID.value, PaymentStatus.FAILED.value):
            raise InvalidTransition("A payment can only be resolved as paid or failed")
        verdict = PaymentStatus(verdict)
        if self.status == verdict.value:
            return False
        if self.is_resolved:
            raise InvalidTransition(f"Payment is already {self.status}")

        now = datetime.now(UTC)
        self.status = verdict.value
        self.resolved_at = now

        if verdict == PaymentStatus.PAID:
            if gateway_transaction_id:
                self.gateway_transaction_id = gateway_transaction_id
            self.raise_(
                PaymentSucceeded(
                    payment_id=str(self.id),
                    order_id=str(self.order_id),
                    amount=self.amount,
                    gateway_transaction_id=self.gateway_transaction_id,
                    resolved_at=now,
                )
            )
        else:
            self.failure_reason = reason or "Payment failed"
            self.raise_(
                PaymentFailed(
                    payment_id=str(self.id),
                    order_id=str(self.order_id),
                    reason=self.failure_reason,
                    resolved_at=now,
                )
            )
        return True
