import threading

import pytest
from protean import current_domain

from marketplace.checkout.orchestrator import CheckoutOrchestrator
from marketplace.domain import marketplace
from marketplace.order.order import Order


@pytest.fixture
def orchestrator():
    return CheckoutOrchestrator()


@pytest.fixture
def stored_orders():
    def _orders():
        return current_domain.repository_for(Order)._dao.query.all().items

    return _orders


@pytest.fixture
def reload():
    """Fetch the stored state of an aggregate."""

    def _reload(aggregate):
        return current_domain.repository_for(type(aggregate)).get(aggregate.id)

    return _reload


@pytest.fixture
def placed_order(orchestrator, make_product, make_address, make_coupon, fill_cart):
    """Check out 3 x 80.00 with SAVE10 (usage 5 of 10) and return the parts involved."""

    def _place(payment_method="cash_on_delivery", user_id="user-001", stock=6):
        product = make_product(price=80.0, stock=stock)
        address = make_address(user_id=user_id)
        coupon = make_coupon(code="SAVE10", usage_limit=10, usage_count=5)
        fill_cart(user_id, (product, 3))
        order = orchestrator.create_order(
            user_id=user_id,
            shipping_address_id=str(address.id),
            payment_method=payment_method,
            coupon_code="SAVE10",
        )
        return order, product, coupon

    return _place


@pytest.fixture
def run_concurrently():
    """Start every call on its own thread at the same moment.

    Returns what each call returned, or the exception it raised, in call order.
    """

    def _run(*calls):
        start = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def _worker(index, call):
            with marketplace.domain_context():
                start.wait(timeout=5)
                try:
                    outcomes[index] = call()
                except Exception as exc:
                    outcomes[index] = exc

        threads = [threading.Thread(target=_worker, args=(i, call)) for i, call in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return outcomes

    return _run


@pytest.fixture
def hold_until_all_loaded(monkeypatch):
    """Make the first call of ``cls.method`` on each thread wait for the other threads.

    Every thread has loaded its copy of the aggregate by then, so all of them
    decide on the same state and their saves collide.
    """

    def _hold(cls, method, parties=2):
        original = getattr(cls, method)
        barrier = threading.Barrier(parties)
        waited = set()
        guard = threading.Lock()

        def held(self, *args, **kwargs):
            with guard:
                first = threading.get_ident() not in waited
                waited.add(threading.get_ident())
            if first:
                barrier.wait(timeout=5)
            return original(self, *args, **kwargs)

        monkeypatch.setattr(cls, method, held)

    return _hold
