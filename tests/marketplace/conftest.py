import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from marketplace.address.address import Address
from marketplace.cart.items import AddToCart
from marketplace.catalogue.product import Product
from marketplace.coupon.coupon import Coupon
from marketplace.notifications import get_sink, reset_sink
from marketplace.payment.gateway import get_gateway, reset_gateway


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset(_ctx):
    """Clear stored data and swap-in adapters after every test."""
    reset_gateway()
    reset_sink()
    yield

    for _, provider in current_domain.providers.items():
        provider._data_reset()
    current_domain.event_store.store._data_reset()
    reset_gateway()
    reset_sink()


@pytest.fixture
def gateway():
    """The FakeGateway checkout will use."""
    return get_gateway()


@pytest.fixture
def sink():
    """The FakeNotificationSink notifications are recorded in."""
    return get_sink()


@pytest.fixture
def make_product():
    def _make(title="Trail Backpack", price=80.0, stock=6, discount_price=None, is_active=True, attribute_options=None):
        product = Product.create(
            title=title,
            price=price,
            stock=stock,
            discount_price=discount_price,
            is_active=is_active,
            attribute_options=attribute_options,
        )
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture
def make_address():
    def _make(user_id="user-001", city="Kathmandu"):
        address = Address.create(
            user_id=user_id,
            full_name="Asha Gurung",
            phone="9800000000",
            country="Nepal",
            state="Bagmati",
            city=city,
            street="Durbar Marg 12",
            postal_code="44600",
            is_default=True,
        )
        current_domain.repository_for(Address).add(address)
        return address

    return _make


@pytest.fixture
def make_coupon():
    def _make(code="SAVE10", discount_type="percentage", discount_value=10.0, usage_count=0, **kwargs):
        coupon = Coupon.create(code=code, discount_type=discount_type, discount_value=discount_value, **kwargs)
        coupon.usage_count = usage_count
        current_domain.repository_for(Coupon).add(coupon)
        return coupon

    return _make


@pytest.fixture
def fill_cart():
    def _fill(user_id, *lines):
        """Add (product, quantity) or (product, quantity, attributes) lines to the user's cart."""
        for line in lines:
            product, quantity = line[0], line[1]
            attributes = line[2] if len(line) > 2 else {}
            current_domain.process(
                AddToCart(user_id=user_id, product_id=str(product.id), quantity=quantity, attributes=attributes),
                asynchronous=False,
            )

    return _fill
