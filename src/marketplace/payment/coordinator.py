"""Payment coordinator — open gateway charges and apply their verdicts.

``initiate`` runs inside checkout, after the order is written. ``confirm``
runs whenever a verdict arrives, synchronously from the charge or later
from the gateway webhook. A failed verdict hands the order to the
``on_failure`` callback, which the checkout orchestrator uses to cancel the
order and release what checkout reserved.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from marketplace.errors import GatewayUnavailable, InvalidCheckoutRequest, InvalidWebhookSignature, PaymentDeclined
from marketplace.order.order import Order
from marketplace.order.payment import AttachPayment, RecordPaymentSuccess
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.port import ChargeStatus, PaymentGateway
from marketplace.payment.payment import Payment, PaymentStatus
from marketplace.payment.recording import InitiatePayment, RecordGatewayCharge, ResolvePayment

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentHandle:
    order_id: str
    method: str
    status: str
    payment_id: str | None = None
    gateway_transaction_id: str | None = None


class PaymentCoordinator:
    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        on_failure: Callable[[str, str], None] | None = None,
    ) -> None:
        self._gateway = gateway
        self.on_failure = on_failure

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway or get_gateway()

    def initiate(self, order: Order, timeout: float | None = None) -> PaymentHandle:
        """Open the charge for ``order``.

        Raises:
            GatewayUnavailable: The gateway could not be reached in time. The
                Payment is marked failed before the error propagates.
            PaymentDeclined: The gateway refused the charge outright.
        """
        if not order.pays_through_gateway:
            return PaymentHandle(
                order_id=str(order.id),
                method=order.payment_method,
                status=PaymentStatus.PENDING.value,
            )

        payment_id = current_domain.process(
            InitiatePayment(
                order_id=str(order.id),
                user_id=str(order.user_id),
                method=order.payment_method,
                amount=order.pricing.grand_total,
                currency=order.pricing.currency,
                provider=self.gateway.provider,
            ),
            asynchronous=False,
        )
        current_domain.process(AttachPayment(order_id=str(order.id), payment_id=payment_id), asynchronous=False)

        try:
            result = self.gateway.create_charge(
                amount=order.pricing.grand_total,
                currency=order.pricing.currency,
                method=order.payment_method,
                idempotency_key=payment_id,
                timeout=timeout,
            )
        except GatewayUnavailable as exc:
            self._resolve(payment_id, PaymentStatus.FAILED.value, reason=str(exc))
            raise

        if result.status == ChargeStatus.FAILED.value:
            self._resolve(payment_id, PaymentStatus.FAILED.value, reason=result.failure_reason)
            raise PaymentDeclined(payment_id, result.failure_reason or "declined")

        current_domain.process(
            RecordGatewayCharge(payment_id=payment_id, gateway_transaction_id=result.gateway_transaction_id),
            asynchronous=False,
        )
        logger.info(
            "payment_initiated",
            order_id=str(order.id),
            payment_id=payment_id,
            method=order.payment_method,
            charge_status=result.status,
        )

        if result.status == ChargeStatus.PAID.value:
            self.confirm(payment_id, PaymentStatus.PAID.value, gateway_transaction_id=result.gateway_transaction_id)

        return PaymentHandle(
            order_id=str(order.id),
            method=order.payment_method,
            status=result.status,
            payment_id=payment_id,
            gateway_transaction_id=result.gateway_transaction_id,
        )

    def confirm(self, payment_id, verdict, gateway_transaction_id=None, reason=None) -> Payment:
        """Apply a verdict to the payment and its order.

        A verdict that was already applied changes nothing, except that a
        replayed failure runs ``on_failure`` again so an interrupted
        compensation is finished. The opposite verdict for a resolved
        payment raises ``InvalidTransition``. A payment arriving for an order
        that was cancelled meanwhile is recorded on the Payment only and
        flagged for refund.
        """
        changed = self._resolve(payment_id, verdict, gateway_transaction_id=gateway_transaction_id, reason=reason)
        payment = current_domain.repository_for(Payment).get(payment_id)
        if not changed:
            logger.info("payment_verdict_replayed", payment_id=str(payment_id), verdict=verdict)
            if verdict == PaymentStatus.FAILED.value and self.on_failure is not None:
                self.on_failure(str(payment.order_id), payment.failure_reason)
            return payment

        if verdict == PaymentStatus.PAID.value:
            order = current_domain.repository_for(Order).get(payment.order_id)
            if order.is_cancelled:
                logger.warning(
                    "cancelled_order_needs_refund",
                    order_id=str(order.id),
                    payment_id=str(payment.id),
                    amount=payment.amount,
                )
                return payment

            current_domain.process(
                RecordPaymentSuccess(order_id=str(payment.order_id), payment_id=str(payment.id)),
                asynchronous=False,
            )
            logger.info("payment_confirmed", payment_id=str(payment.id), order_id=str(payment.order_id))
        else:
            logger.warning(
                "payment_failed",
                payment_id=str(payment.id),
                order_id=str(payment.order_id),
                reason=payment.failure_reason,
            )
            if self.on_failure is not None:
                self.on_failure(str(payment.order_id), payment.failure_reason)
        return payment

    def void(self, payment_id, reason) -> bool:
        """Mark a still-pending payment failed without touching its order."""
        payment = current_domain.repository_for(Payment).get(payment_id)
        if payment.is_resolved:
            return False
        return self._resolve(payment_id, PaymentStatus.FAILED.value, reason=reason)

    def handle_webhook(self, payload: str, signature: str) -> Payment:
        """Verify and apply a gateway webhook.

        The payload is JSON with ``payment_id``, ``status`` (paid or failed)
        and optionally ``gateway_transaction_id`` and ``reason``.
        """
        if not self.gateway.verify_webhook_signature(payload, signature):
            logger.warning("webhook_signature_rejected")
            raise InvalidWebhookSignature()

        try:
            data = json.loads(payload)
            payment_id = data["payment_id"]
            verdict = data["status"]
        except (ValueError, KeyError, TypeError):
            raise InvalidCheckoutRequest("payload", "Malformed webhook payload") from None

        return self.confirm(
            payment_id,
            verdict,
            gateway_transaction_id=data.get("gateway_transaction_id"),
            reason=data.get("reason"),
        )

    def _resolve(self, payment_id, verdict, gateway_transaction_id=None, reason=None) -> bool:
        return bool(
            current_domain.process(
                ResolvePayment(
                    payment_id=str(payment_id),
                    verdict=verdict,
                    gateway_transaction_id=gateway_transaction_id,
                    reason=reason,
                ),
                asynchronous=False,
            )
        )
