"""StockReservation aggregate — the record of one checkout's stock hold.

A reservation is written only after every one of its lines has been taken
out of product stock, and it can be released at most once. Releasing it is
what puts the quantities back.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, HasMany, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.inventory.events import ReservationReleased, StockReserved


class ReservationStatus(Enum):
    ACTIVE = "Active"
    RELEASED = "Released"


@marketplace.entity(part_of="StockReservation")
class ReservedLine:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.aggregate
class StockReservation:
    reference = String(required=True, max_length=255)
    lines = HasMany(ReservedLine)
    status = String(choices=ReservationStatus, default=ReservationStatus.ACTIVE.value)
    release_reason = String(max_length=500)
    reserved_at = DateTime()
    released_at = DateTime()

    @classmethod
    def record(cls, reference, lines):
        """Record stock already decremented for ``lines`` (product_id, quantity pairs)."""
        now = datetime.now(UTC)
        reservation = cls(
            reference=reference,
            lines=[ReservedLine(product_id=pid, quantity=qty) for pid, qty in lines],
            status=ReservationStatus.ACTIVE.value,
            reserved_at=now,
        )
        reservation.raise_(
            StockReserved(
                reservation_id=str(reservation.id),
                reference=reference,
                lines=json.dumps([{"product_id": str(pid), "quantity": qty} for pid, qty in lines]),
                total_quantity=sum(qty for _, qty in lines),
                reserved_at=now,
            )
        )
        return reservation

    @property
    def is_released(self) -> bool:
        return self.status == ReservationStatus.RELEASED.value

    def quantity_for(self, product_id) -> int:
        return sum(line.quantity for line in self.lines if str(line.product_id) == str(product_id))

    def release(self, reason):
        """Mark released. Returns False when it already was, leaving it unchanged."""
        if self.is_released:
            return False

        now = datetime.now(UTC)
        self.status = ReservationStatus.RELEASED.value
        self.release_reason = reason
        self.released_at = now

        self.raise_(
            ReservationReleased(
                reservation_id=str(self.id),
                reference=self.reference,
                reason=reason,
                released_at=now,
            )
        )
        return True
