"""Stock commands and handlers.

``DecrementStock`` and ``RestoreStock`` touch exactly one product each and
persist it under the aggregate version check. Reservation records are kept
separately by ``CreateReservation`` / ``ReleaseReservation``; releasing one
restores the stock of all its lines in the same unit of work, which makes a
repeated release harmless.
"""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product
from marketplace.domain import marketplace
from marketplace.inventory.reservation import StockReservation


@marketplace.command(part_of="Product")
class DecrementStock:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reference = String(max_length=255)


@marketplace.command(part_of="Product")
class RestoreStock:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reference = String(max_length=255)


@marketplace.command(part_of="StockReservation")
class CreateReservation:
    reference = String(required=True, max_length=255)
    lines = Text(required=True)  # JSON list of {"product_id": ..., "quantity": ...}


@marketplace.command(part_of="StockReservation")
class ReleaseReservation:
    reservation_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=Product)
class StockHandler:
    @handle(DecrementStock)
    def decrement_stock(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.decrement_stock(command.quantity, reference=command.reference)
        repo.add(product)
        return product.stock

    @handle(RestoreStock)
    def restore_stock(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.restore_stock(command.quantity, reference=command.reference)
        repo.add(product)
        return product.stock


@marketplace.command_handler(part_of=StockReservation)
class ReservationHandler:
    @handle(CreateReservation)
    def create_reservation(self, command):
        reservation = StockReservation.record(
            reference=command.reference,
            lines=[(line["product_id"], line["quantity"]) for line in json.loads(command.lines)],
        )
        current_domain.repository_for(StockReservation).add(reservation)
        return str(reservation.id)

    @handle(ReleaseReservation)
    def release_reservation(self, command):
        repo = current_domain.repository_for(StockReservation)
        reservation = repo.get(command.reservation_id)
        if not reservation.release(command.reason):
            return False

        products = current_domain.repository_for(Product)
        for line in reservation.lines:
            product = products.get(line.product_id)
            product.restore_stock(line.quantity, reference=reservation.reference)
            products.add(product)
        repo.add(reservation)
        return True
