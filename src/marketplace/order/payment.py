"""Order payment status — commands and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class AttachPayment:
    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class RecordPaymentSuccess:
    order_id = Identifier(required=True)
    payment_id = Identifier()


@marketplace.command(part_of="Order")
class RecordPaymentFailure:
    order_id = Identifier(required=True)
    payment_id = Identifier()
    reason = String(required=True, max_length=500)


@marketplace.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(AttachPayment)
    def attach_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.attach_payment(command.payment_id)
        repo.add(order)

    @handle(RecordPaymentSuccess)
    def record_payment_success(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_success(payment_id=command.payment_id)
        repo.add(order)

    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_failure(reason=command.reason, payment_id=command.payment_id)
        repo.add(order)
