"""Domain events for the StockReservation aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="StockReservation")
class StockReserved:
    """Every line of a checkout was taken out of stock."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    reference = String(required=True)
    lines = Text(required=True)  # JSON list of {product_id, quantity}
    total_quantity = Integer(required=True)
    reserved_at = DateTime(required=True)


@marketplace.event(part_of="StockReservation")
class ReservationReleased:
    """The reserved quantities were put back into stock."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    reference = String(required=True)
    reason = String()
    released_at = DateTime(required=True)
