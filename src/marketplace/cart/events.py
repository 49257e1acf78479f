"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product was added to the shopping cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    price_at_time = Float(required=True)
    attributes = Text()


@marketplace.event(part_of="ShoppingCart")
class CartItemUpdated:
    """The quantity of a cart line was changed and its price recaptured."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    price_at_time = Float(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartItemRemoved:
    """A line was removed from the shopping cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)


@marketplace.event(part_of="ShoppingCart")
class CartCleared:
    """All lines were removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    reason = String()


@marketplace.event(part_of="ShoppingCart")
class CartCheckedOut:
    """The lines captured by a checkout were removed after the order was placed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    order_id = Identifier(required=True)
    lines_removed = Integer(required=True)
    lines_remaining = Integer(required=True)
