"""Shopping Cart aggregate (CQRS) — one persistent cart per user.

Each line stores ``price_at_time``, the unit price captured when the line was
added or last updated. It is only an indicative display value: checkout
re-prices every line from the current catalogue and never reads it. Catalogue
price changes never rewrite a cart.

Lines are keyed by product plus the selected attribute options, so the same
product in two colors occupies two lines.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, Text

from marketplace.cart.events import (
    CartCheckedOut,
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartItemUpdated,
)
from marketplace.domain import marketplace


def canonical_attributes(attributes) -> str:
    """Serialize attribute selections so equal selections compare equal."""
    if isinstance(attributes, str):
        attributes = json.loads(attributes) if attributes else {}
    return json.dumps(attributes or {}, sort_keys=True)


@marketplace.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    price_at_time = Float(required=True, min_value=0.0)
    attributes = Text(default="{}")  # JSON object: attribute -> selected value
    added_at = DateTime()

    def selections(self) -> dict:
        return json.loads(self.attributes) if self.attributes else {}


@marketplace.aggregate
class ShoppingCart:
    user_id = Identifier(required=True, unique=True)
    items = HasMany(CartItem)
    revision = Integer(default=0)
    consumed_revision = Integer()  # snapshot revision the last checkout was built from
    settled_revision = Integer()  # revision right after that checkout
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(user_id=user_id, revision=0, created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _touch(self):
        self.revision = (self.revision or 0) + 1
        self.updated_at = datetime.now(UTC)

    def find_line(self, product_id, attributes=None):
        key = canonical_attributes(attributes)
        return next(
            (
                i
                for i in self.items
                if str(i.product_id) == str(product_id) and canonical_attributes(i.attributes) == key
            ),
            None,
        )

    def indicative_total(self) -> float:
        """Display-only value of the cart, from captured prices."""
        return round(sum(i.price_at_time * i.quantity for i in self.items), 2)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity, price_at_time, attributes=None):
        """Add a line, or grow the quantity of an identical existing line."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

        existing = self.find_line(product_id, attributes)
        if existing:
            existing.quantity += quantity
            existing.price_at_time = price_at_time
        else:
            self.add_items(
                CartItem(
                    product_id=product_id,
                    quantity=quantity,
                    price_at_time=price_at_time,
                    attributes=canonical_attributes(attributes),
                    added_at=datetime.now(UTC),
                )
            )
        self._touch()

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                user_id=str(self.user_id),
                product_id=str(product_id),
                quantity=quantity,
                price_at_time=price_at_time,
                attributes=canonical_attributes(attributes),
            )
        )

    def update_item(self, product_id, quantity, price_at_time, attributes=None):
        """Set a line's quantity. Zero or less removes the line."""
        line = self.find_line(product_id, attributes)
        if line is None:
            raise ValidationError({"product_id": ["Item not in cart"]})

        if quantity <= 0:
            self.remove_item(product_id, attributes)
            return

        previous = line.quantity
        line.quantity = quantity
        line.price_at_time = price_at_time
        self._touch()

        self.raise_(
            CartItemUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                previous_quantity=previous,
                new_quantity=quantity,
                price_at_time=price_at_time,
            )
        )

    def remove_item(self, product_id, attributes=None):
        """Remove one line, or every line of the product when no selection is given."""
        if attributes is None:
            lines = [i for i in self.items if str(i.product_id) == str(product_id)]
        else:
            line = self.find_line(product_id, attributes)
            lines = [line] if line else []

        if not lines:
            raise ValidationError({"product_id": ["Item not in cart"]})

        for line in lines:
            self.remove_items(line)
        self._touch()

        self.raise_(CartItemRemoved(cart_id=str(self.id), product_id=str(product_id)))

    def clear(self, reason="cleared"):
        for line in list(self.items):
            self.remove_items(line)
        self._touch()
        self.raise_(CartCleared(cart_id=str(self.id), reason=reason))

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def check_out(self, order_id, lines, snapshot_revision=None):
        """Remove what a checkout captured, keeping anything added since.

        Args:
            lines: Snapshot lines (product_id, quantity, attributes) the order was built from.
            snapshot_revision: Revision of the cart when the snapshot was taken.
        """
        removed = 0
        for snapshot_line in lines:
            line = self.find_line(snapshot_line.product_id, snapshot_line.attributes)
            if line is None:
                continue
            if line.quantity > snapshot_line.quantity:
                line.quantity -= snapshot_line.quantity
            else:
                self.remove_items(line)
            removed += 1
        self._touch()
        if snapshot_revision is not None:
            self.consumed_revision = snapshot_revision
            self.settled_revision = self.revision

        self.raise_(
            CartCheckedOut(
                cart_id=str(self.id),
                order_id=str(order_id),
                lines_removed=removed,
                lines_remaining=len(self.items),
            )
        )

    @property
    def untouched_since_checkout(self) -> bool:
        return self.settled_revision is not None and (self.revision or 0) == self.settled_revision


@marketplace.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def find_for_user(self, user_id) -> ShoppingCart | None:
        return self._dao.query.filter(user_id=str(user_id)).all().first

    def get_or_create(self, user_id) -> ShoppingCart:
        return self.find_for_user(user_id) or ShoppingCart.create(user_id=str(user_id))
