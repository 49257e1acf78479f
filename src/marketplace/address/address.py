"""Address aggregate — shipping addresses kept in a user's address book.

Orders never reference an Address directly once placed: checkout copies the
fields needed for fulfilment into the order's ``ShippingAddress`` value
object, so deleting or editing an address never alters a placed order.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, String

from marketplace.domain import marketplace
from marketplace.errors import AddressNotFound


@marketplace.aggregate
class Address:
    user_id = Identifier(required=True)
    full_name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    city = String(required=True, max_length=100)
    street = String(required=True, max_length=255)
    postal_code = String(max_length=20, default="")
    is_default = Boolean(default=False)
    created_at = DateTime()

    @classmethod
    def create(cls, user_id, full_name, phone, country, state, city, street, postal_code="", is_default=False):
        return cls(
            user_id=user_id,
            full_name=full_name,
            phone=phone,
            country=country,
            state=state,
            city=city,
            street=street,
            postal_code=postal_code or "",
            is_default=is_default,
            created_at=datetime.now(UTC),
        )

    def to_snapshot(self) -> dict:
        """Fields an order needs to be fulfilled without this address."""
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "country": self.country,
            "state": self.state,
            "city": self.city,
            "street": self.street,
            "postal_code": self.postal_code or "",
        }


@marketplace.repository(part_of=Address)
class AddressRepository:
    def get_owned(self, address_id, user_id) -> Address:
        """Fetch an address only if it belongs to ``user_id``.

        Someone else's address is reported exactly like a missing one.
        """
        try:
            address = self.get(address_id)
        except ObjectNotFoundError:
            raise AddressNotFound(str(address_id)) from None

        if str(address.user_id) != str(user_id):
            raise AddressNotFound(str(address_id))
        return address
