"""Order placement — command and handler.

Only the checkout orchestrator issues ``PlaceOrder``, after stock has been
reserved, so the reservation id is always known when the order is written.
"""

import json

from protean import handle
from protean.fields import Date, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of priced line dicts
    shipping_address = Text(required=True)  # JSON: address snapshot
    subtotal = Float(required=True, min_value=0.0)
    discount_total = Float(default=0.0, min_value=0.0)
    grand_total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="NPR")
    payment_method = String(required=True, max_length=50)
    coupon = Text()  # JSON: {coupon_id, code, discount_amount}
    notes = String(max_length=1000)
    delivery_date = Date()
    delivery_time_slot = String(max_length=20)
    reservation_id = Identifier(required=True)
    idempotency_key = String(max_length=255)


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            user_id=command.user_id,
            items_data=json.loads(command.items),
            shipping_address=json.loads(command.shipping_address),
            pricing={
                "subtotal": command.subtotal,
                "discount_total": command.discount_total or 0.0,
                "grand_total": command.grand_total,
                "currency": command.currency or "NPR",
            },
            payment_method=command.payment_method,
            coupon=json.loads(command.coupon) if command.coupon else None,
            notes=command.notes,
            delivery_date=command.delivery_date,
            delivery_time_slot=command.delivery_time_slot,
            reservation_id=command.reservation_id,
            idempotency_key=command.idempotency_key,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
