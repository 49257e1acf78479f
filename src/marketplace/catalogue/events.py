"""Domain events for the Product aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Product")
class ProductListed:
    """A product was added to the catalogue."""

    __version__ = 1

    product_id = Identifier(required=True)
    title = String(required=True)
    initial_stock = Integer(required=True)
    listed_at = DateTime(required=True)


@marketplace.event(part_of="Product")
class StockDecremented:
    """Stock was taken out of a product for a checkout."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_stock = Integer(required=True)
    new_stock = Integer(required=True)
    reference = String()


@marketplace.event(part_of="Product")
class StockRestored:
    """Stock was returned to a product (compensation or cancellation)."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_stock = Integer(required=True)
    new_stock = Integer(required=True)
    reference = String()
