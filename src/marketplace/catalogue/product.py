"""Product aggregate — the catalogue record checkout prices and reserves against.

Only the fields the checkout engine reads are modelled: prices, stock and
the attribute options (color / size / weight) whose price modifiers add to
the unit price. Stock is owned here but only the inventory ledger's command
handlers change it, through ``decrement_stock`` and ``restore_stock``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Integer, String

from marketplace.catalogue.events import ProductListed, StockDecremented, StockRestored
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStock


class ProductAttribute(Enum):
    COLOR = "color"
    SIZE = "size"
    WEIGHT = "weight"


@marketplace.entity(part_of="Product")
class AttributeOption:
    """One selectable variant value with its additive price modifier."""

    attribute = String(required=True, choices=ProductAttribute)
    value = String(required=True, max_length=100)
    price_modifier = Float(default=0.0)


@marketplace.aggregate
class Product:
    title = String(required=True, max_length=200)
    price = Float(required=True, min_value=0.0)
    discount_price = Float(min_value=0.0)
    stock = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    attribute_options = HasMany(AttributeOption)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_must_not_be_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, title, price, stock=0, discount_price=None, is_active=True, attribute_options=None):
        """Create a catalogue product.

        Args:
            attribute_options: List of dicts with attribute, value, price_modifier.
        """
        now = datetime.now(UTC)
        product = cls(
            title=title,
            price=price,
            discount_price=discount_price,
            stock=stock,
            is_active=is_active,
            attribute_options=[AttributeOption(**option) for option in (attribute_options or [])],
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductListed(
                product_id=str(product.id),
                title=title,
                initial_stock=stock,
                listed_at=now,
            )
        )
        return product

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    @property
    def effective_price(self) -> float:
        """Discount price when set and lower than list price, else list price."""
        if self.discount_price is not None and self.discount_price < self.price:
            return self.discount_price
        return self.price

    def find_option(self, attribute, value):
        return next(
            (
                option
                for option in (self.attribute_options or [])
                if option.attribute == attribute and option.value == value
            ),
            None,
        )

    # -------------------------------------------------------------------
    # Stock (inventory ledger only)
    # -------------------------------------------------------------------
    def decrement_stock(self, quantity, reference=None):
        """Take ``quantity`` units out of stock, refusing to go below zero."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if self.stock < quantity:
            raise InsufficientStock(str(self.id), requested=quantity, available=self.stock)

        previous = self.stock
        self.stock = previous - quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockDecremented(
                product_id=str(self.id),
                quantity=quantity,
                previous_stock=previous,
                new_stock=self.stock,
                reference=reference,
            )
        )

    def restore_stock(self, quantity, reference=None):
        """Put ``quantity`` units back into stock."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        previous = self.stock
        self.stock = previous + quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockRestored(
                product_id=str(self.id),
                quantity=quantity,
                previous_stock=previous,
                new_stock=self.stock,
                reference=reference,
            )
        )


@marketplace.repository(part_of=Product)
class ProductRepository:
    def get_many(self, product_ids) -> dict:
        """Load products by id. Missing (deleted) products are left out of the result."""
        products = {}
        for product_id in dict.fromkeys(str(pid) for pid in product_ids):
            try:
                products[product_id] = self.get(product_id)
            except ObjectNotFoundError:
                continue
        return products
