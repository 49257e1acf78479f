"""Payment recording — commands and handler."""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.payment.payment import Payment


@marketplace.command(part_of="Payment")
class InitiatePayment:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    method = String(required=True, max_length=50)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="NPR")
    provider = String(max_length=50)


@marketplace.command(part_of="Payment")
class RecordGatewayCharge:
    payment_id = Identifier(required=True)
    gateway_transaction_id = String(required=True, max_length=255)


@marketplace.command(part_of="Payment")
class ResolvePayment:
    payment_id = Identifier(required=True)
    verdict = String(required=True, max_length=20)  # paid, failed
    gateway_transaction_id = String(max_length=255)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=Payment)
class PaymentRecordingHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        payment = Payment.create(
            order_id=command.order_id,
            user_id=command.user_id,
            method=command.method,
            amount=command.amount,
            currency=command.currency or "NPR",
            provider=command.provider,
        )
        current_domain.repository_for(Payment).add(payment)
        return str(payment.id)

    @handle(RecordGatewayCharge)
    def record_gateway_charge(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        payment.record_charge(command.gateway_transaction_id)
        repo.add(payment)

    @handle(ResolvePayment)
    def resolve_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        changed = payment.resolve(
            command.verdict,
            gateway_transaction_id=command.gateway_transaction_id,
            reason=command.reason,
        )
        if changed:
            repo.add(payment)
        return changed
