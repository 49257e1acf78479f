"""Pricing snapshot — recompute every line from the current catalogue.

The cart's ``price_at_time`` is display-only. The price an order is placed at
is derived here, at checkout, from the product's current price, discount
price and the price modifiers of the selected attribute options.
"""

from dataclasses import dataclass

from marketplace.catalogue.product import Product
from marketplace.errors import InsufficientStock, ProductUnavailable


def money(amount: float) -> float:
    return round(float(amount), 2)


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    title: str
    unit_price: float
    quantity: int
    attributes: str
    line_total: float


@dataclass(frozen=True)
class PricedOrder:
    lines: tuple[PricedLine, ...]
    subtotal: float


def unit_price(product: Product, selections: dict) -> float:
    """Effective price plus the modifiers of each selected attribute option."""
    price = product.effective_price
    for attribute, value in (selections or {}).items():
        option = product.find_option(attribute, value)
        if option is None:
            raise ProductUnavailable(
                str(product.id),
                f"Option {attribute}={value} is not available for {product.title}",
            )
        price += option.price_modifier or 0.0
    return money(price)


def price_snapshot(snapshot, products: dict) -> PricedOrder:
    """Price a cart snapshot against current products.

    Args:
        snapshot: A ``CartSnapshot`` taken by the cart gate.
        products: Mapping of product id to the current ``Product``.

    Raises:
        ProductUnavailable: A product is gone, inactive, or an option vanished.
        InsufficientStock: Requested quantity exceeds current stock. The
            inventory ledger still has the final word on stock.
    """
    requested: dict[str, int] = {}
    priced = []
    for line in snapshot.lines:
        product = products.get(str(line.product_id))
        if product is None:
            raise ProductUnavailable(str(line.product_id), "Product no longer exists")
        if not product.is_active:
            raise ProductUnavailable(str(line.product_id), f"{product.title} is not available")

        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        if requested[line.product_id] > product.stock:
            raise InsufficientStock(
                str(line.product_id),
                requested=requested[line.product_id],
                available=product.stock,
            )

        price = unit_price(product, line.selections())
        priced.append(
            PricedLine(
                product_id=str(line.product_id),
                title=product.title,
                unit_price=price,
                quantity=line.quantity,
                attributes=line.attributes,
                line_total=money(price * line.quantity),
            )
        )

    return PricedOrder(lines=tuple(priced), subtotal=money(sum(p.line_total for p in priced)))
