"""Inventory ledger — all-or-nothing stock reservation for a checkout.

Each product is decremented by its own conditional update. When one line
cannot be satisfied, the lines already taken are restored before the error
reaches the caller, so a failed reservation leaves stock exactly as it was.
"""

import json

import structlog
from protean.utils.globals import current_domain

from marketplace.errors import StockContention
from marketplace.inventory.reservation import StockReservation
from marketplace.inventory.stock import (
    CreateReservation,
    DecrementStock,
    ReleaseReservation,
    RestoreStock,
)
from marketplace.utils.concurrency import process_with_retry

logger = structlog.get_logger(__name__)


def coalesce(lines) -> list[tuple[str, int]]:
    """Sum quantities per product, keeping first-seen order."""
    totals: dict[str, int] = {}
    for product_id, quantity in lines:
        totals[str(product_id)] = totals.get(str(product_id), 0) + quantity
    return list(totals.items())


class InventoryLedger:
    def reserve(self, lines, reference) -> StockReservation:
        """Take every line out of stock or none of them.

        Args:
            lines: Iterable of (product_id, quantity) pairs. Repeated products
                are summed before any stock is touched.
            reference: Idempotency key of the checkout attempt.

        Raises:
            InsufficientStock: Some product cannot cover its quantity.
            StockContention: A product stayed contended past the retry bound.
        """
        wanted = coalesce(lines)
        taken: list[tuple[str, int]] = []
        try:
            for product_id, quantity in wanted:
                process_with_retry(
                    DecrementStock(product_id=product_id, quantity=quantity, reference=reference),
                    on_exhausted=lambda pid=product_id: StockContention(pid),
                )
                taken.append((product_id, quantity))

            reservation_id = current_domain.process(
                CreateReservation(
                    reference=reference,
                    lines=json.dumps([{"product_id": pid, "quantity": qty} for pid, qty in wanted]),
                ),
                asynchronous=False,
            )
        except Exception:
            self._restore(taken, reference)
            raise

        logger.info(
            "stock_reserved",
            reservation_id=reservation_id,
            reference=reference,
            products=len(wanted),
        )
        return current_domain.repository_for(StockReservation).get(reservation_id)

    def release(self, reservation_id, reason) -> bool:
        """Put a reservation's stock back. Returns False if it was already released."""
        released = process_with_retry(
            ReleaseReservation(reservation_id=str(reservation_id), reason=reason),
            on_exhausted=lambda: StockContention(str(reservation_id)),
        )
        if released:
            logger.info("reservation_released", reservation_id=str(reservation_id), reason=reason)
        else:
            logger.info("reservation_already_released", reservation_id=str(reservation_id))
        return bool(released)

    def _restore(self, taken, reference):
        for product_id, quantity in reversed(taken):
            process_with_retry(
                RestoreStock(product_id=product_id, quantity=quantity, reference=reference),
                on_exhausted=lambda pid=product_id: StockContention(pid),
            )
            logger.warning(
                "partial_reservation_restored",
                product_id=product_id,
                quantity=quantity,
                reference=reference,
            )
