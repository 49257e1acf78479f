"""Cart gate — hands checkout a frozen view of the cart.

The cart is not locked while checkout runs. Checkout works from the snapshot
taken in ``begin_checkout``; ``commit`` then removes only the lines that were
captured, so anything the user adds meanwhile stays in the cart. A failure
before the order exists calls ``abort``, which leaves the cart as it was.
"""

import json
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.errors import CartNotFound, EmptyCart

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    attributes: str  # canonical JSON
    price_at_time: float

    def selections(self) -> dict:
        return json.loads(self.attributes) if self.attributes else {}


@dataclass(frozen=True)
class CartSnapshot:
    cart_id: str
    user_id: str
    revision: int
    lines: tuple[CartLine, ...]

    @property
    def product_ids(self) -> list[str]:
        return list(dict.fromkeys(line.product_id for line in self.lines))


class CartGate:
    def begin_checkout(self, user_id) -> CartSnapshot:
        cart = current_domain.repository_for(ShoppingCart).find_for_user(user_id)
        if cart is None:
            raise CartNotFound(str(user_id))
        if not cart.items:
            raise EmptyCart(str(user_id))

        return CartSnapshot(
            cart_id=str(cart.id),
            user_id=str(cart.user_id),
            revision=cart.revision or 0,
            lines=tuple(
                CartLine(
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                    attributes=item.attributes or "{}",
                    price_at_time=item.price_at_time,
                )
                for item in cart.items
            ),
        )

    def commit(self, snapshot: CartSnapshot, order_id) -> None:
        """Remove the snapshotted lines once the order exists."""
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(snapshot.cart_id)
        if (cart.revision or 0) != snapshot.revision:
            logger.warning(
                "cart_changed_during_checkout",
                cart_id=snapshot.cart_id,
                order_id=str(order_id),
                snapshot_revision=snapshot.revision,
                current_revision=cart.revision,
            )
        cart.check_out(order_id, snapshot.lines, snapshot_revision=snapshot.revision)
        repo.add(cart)

    def last_checkout(self, user_id) -> CartSnapshot | None:
        """Identity of the snapshot the last checkout consumed, while the cart is untouched since."""
        cart = current_domain.repository_for(ShoppingCart).find_for_user(user_id)
        if cart is None or not cart.untouched_since_checkout:
            return None
        return CartSnapshot(
            cart_id=str(cart.id),
            user_id=str(cart.user_id),
            revision=cart.consumed_revision,
            lines=(),
        )

    def abort(self, snapshot: CartSnapshot, reason: str) -> None:
        logger.info("cart_checkout_aborted", cart_id=snapshot.cart_id, reason=reason)
