"""Marketplace bounded context — cart, checkout, orders and payments.

Handles the checkout saga that turns a shopping cart into a priced,
stock-reserved order, the order and payment state machines, coupon
redemption and the inventory ledger backing stock reservations.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
