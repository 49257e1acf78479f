"""Administrative order status transitions — commands and handler."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class ConfirmOrder:
    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class ShipOrder:
    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class DeliverOrder:
    order_id = Identifier(required=True)


@marketplace.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(ConfirmOrder)
    def confirm_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.confirm()
        repo.add(order)

    @handle(ShipOrder)
    def ship_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.ship()
        repo.add(order)

    @handle(DeliverOrder)
    def deliver_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.deliver()
        repo.add(order)
