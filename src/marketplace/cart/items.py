"""Cart item management — commands and handler.

Every add or update checks the product against the current catalogue: it
must exist, be active, carry the selected options and have enough stock for
the line's new quantity. The line's ``price_at_time`` is recaptured from the
product on each change.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Dict, Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.catalogue.product import Product
from marketplace.domain import marketplace
from marketplace.errors import CartNotFound, InsufficientStock, ProductUnavailable
from marketplace.pricing.snapshot import unit_price


@marketplace.command(part_of="ShoppingCart")
class AddToCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    attributes = Dict()


@marketplace.command(part_of="ShoppingCart")
class UpdateCartItem:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    attributes = Dict()


@marketplace.command(part_of="ShoppingCart")
class RemoveFromCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    attributes = Dict()


@marketplace.command(part_of="ShoppingCart")
class ClearCart:
    user_id = Identifier(required=True)


def _available_product(product_id) -> Product:
    try:
        product = current_domain.repository_for(Product).get(product_id)
    except ObjectNotFoundError:
        raise ProductUnavailable(str(product_id), "Product not found") from None
    if not product.is_active:
        raise ProductUnavailable(str(product_id), f"{product.title} is not available")
    return product


def _existing_cart(user_id) -> ShoppingCart:
    cart = current_domain.repository_for(ShoppingCart).find_for_user(user_id)
    if cart is None:
        raise CartNotFound(str(user_id))
    return cart


@marketplace.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = _available_product(command.product_id)
        price = unit_price(product, command.attributes or {})

        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get_or_create(command.user_id)

        existing = cart.find_line(command.product_id, command.attributes)
        wanted = command.quantity + (existing.quantity if existing else 0)
        if wanted > product.stock:
            raise InsufficientStock(str(product.id), requested=wanted, available=product.stock)

        cart.add_item(
            product_id=command.product_id,
            quantity=command.quantity,
            price_at_time=price,
            attributes=command.attributes,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        cart = _existing_cart(command.user_id)

        if command.quantity <= 0:
            cart.remove_item(command.product_id, command.attributes or {})
        else:
            product = _available_product(command.product_id)
            if command.quantity > product.stock:
                raise InsufficientStock(str(product.id), requested=command.quantity, available=product.stock)
            cart.update_item(
                product_id=command.product_id,
                quantity=command.quantity,
                price_at_time=unit_price(product, command.attributes or {}),
                attributes=command.attributes,
            )

        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        cart = _existing_cart(command.user_id)
        # No selection given removes every line of the product
        cart.remove_item(command.product_id, command.attributes if command.attributes else None)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        cart = _existing_cart(command.user_id)
        cart.clear(reason="cleared by user")
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)
