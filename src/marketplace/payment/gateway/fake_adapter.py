"""Configurable fake payment gateway for development and testing.

No external calls are made. The outcome of every charge is set through
``configure``; ``available=False`` or a ``latency`` longer than the caller's
timeout makes the charge raise ``GatewayUnavailable`` instead. Webhook
payloads are signed with HMAC-SHA256 over a shared test secret.
"""

import hashlib
import hmac
from uuid import uuid4

from marketplace.errors import GatewayUnavailable
from marketplace.payment.gateway.port import ChargeResult, ChargeStatus, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    provider = "fake"

    def __init__(self, webhook_secret: str = "test-webhook-secret") -> None:
        self.webhook_secret = webhook_secret
        self.outcome: str = ChargeStatus.PENDING.value
        self.failure_reason: str = "Payment declined"
        self.available: bool = True
        self.latency: float = 0.0
        self.calls: list[dict] = []

    def configure(
        self,
        outcome: str = ChargeStatus.PENDING.value,
        failure_reason: str = "Payment declined",
        available: bool = True,
        latency: float = 0.0,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.outcome = ChargeStatus(outcome).value
        self.failure_reason = failure_reason
        self.available = available
        self.latency = latency

    def create_charge(
        self,
        amount: float,
        currency: str,
        method: str,
        idempotency_key: str,
        timeout: float | None = None,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "create_charge",
                "amount": amount,
                "currency": currency,
                "payment_method": method,
                "idempotency_key": idempotency_key,
                "timeout": timeout,
            }
        )

        if not self.available:
            raise GatewayUnavailable(method, "Payment gateway unavailable")
        if timeout is not None and self.latency > timeout:
            raise GatewayUnavailable(method, f"Payment gateway did not answer within {timeout:.2f}s")

        if self.outcome == ChargeStatus.FAILED.value:
            return ChargeResult(status=ChargeStatus.FAILED.value, failure_reason=self.failure_reason)
        return ChargeResult(status=self.outcome, gateway_transaction_id=f"fake_txn_{uuid4().hex[:12]}")

    def sign(self, payload: str) -> str:
        return hmac.new(self.webhook_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        return hmac.compare_digest(self.sign(payload), signature or "")
