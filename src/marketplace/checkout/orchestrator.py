"""Checkout orchestrator — turns a cart into a priced, stock-reserved order.

There is no transaction spanning the cart, coupons, products, orders and
payments, so checkout runs as a saga: a fixed sequence of steps, each its
own unit of work, where every step with a side effect registers how to undo
it. If a later step fails, the registered compensations run newest first and
then the original error is raised.

    cart snapshot → address → pricing → coupon redemption → stock reservation
        → order write → payment initiation → attempt completion → cart commit

Once the order is written it owns the coupon slot and the reservation:
from then on the only compensation is ``compensate_order``, which cancels the
order and releases both. Clearing the cart is the last step and is allowed
to fail; the order stands and the failure is logged.
"""

import hashlib
import json
import threading
import time
from collections.abc import Callable
from dataclasses import asdict
from datetime import date

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.utils.globals import current_domain

from marketplace import settings
from marketplace.address.address import Address
from marketplace.cart.gate import CartGate, CartSnapshot
from marketplace.catalogue.product import Product
from marketplace.checkout.attempt import (
    AttemptStatus,
    CheckoutAttempt,
    CompleteCheckoutAttempt,
    FailCheckoutAttempt,
    StartCheckoutAttempt,
)
from marketplace.coupon.evaluator import CouponEvaluator, DiscountResult
from marketplace.errors import (
    CheckoutInProgress,
    CheckoutInterrupted,
    CheckoutTimeout,
    EmptyCart,
    InvalidCheckoutRequest,
    MarketplaceError,
)
from marketplace.inventory.ledger import InventoryLedger
from marketplace.order.cancellation import CancelOrder
from marketplace.order.order import (
    CancellationActor,
    DeliveryTimeSlot,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.order.payment import RecordPaymentFailure
from marketplace.order.placement import PlaceOrder
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.payment.gateway.port import PaymentGateway
from marketplace.pricing.snapshot import money, price_snapshot
from marketplace.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)

# Held from reading an idempotency key to committing its claim
_claim_lock = threading.Lock()


def derive_idempotency_key(user_id, snapshot: CartSnapshot) -> str:
    """Key for clients that send none: the same cart state yields the same key."""
    raw = f"{user_id}:{snapshot.cart_id}:{snapshot.revision}"
    return hashlib.sha256(raw.encode()).hexdigest()


class _Saga:
    """Compensations registered by completed steps of one checkout."""

    def __init__(self) -> None:
        self.compensations: list[tuple[str, Callable[[str], object]]] = []

    def register(self, step: str, undo: Callable[[str], object]) -> None:
        self.compensations.append((step, undo))

    def hand_over(self, step: str, undo: Callable[[str], object]) -> None:
        """Replace every registered compensation with one that covers them all."""
        self.compensations = [(step, undo)]

    def compensate(self, reason: str) -> None:
        for step, undo in reversed(self.compensations):
            try:
                undo(reason)
                logger.warning("checkout_step_compensated", step=step, reason=reason)
            except Exception:
                # The original failure is what the caller must see
                logger.exception("checkout_compensation_failed", step=step, reason=reason)
        self.compensations = []


class CheckoutOrchestrator:
    def __init__(self, gateway: PaymentGateway | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.cart_gate = CartGate()
        self.coupons = CouponEvaluator()
        self.inventory = InventoryLedger()
        self.payments = PaymentCoordinator(gateway=gateway, on_failure=self.compensate_order)
        self._clock = clock

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def create_order(
        self,
        user_id,
        shipping_address_id,
        payment_method,
        coupon_code=None,
        notes=None,
        delivery_date=None,
        delivery_time_slot=None,
        idempotency_key=None,
    ) -> Order:
        """Place an order from the user's cart.

        Repeating a call with the key of a completed checkout returns the
        order it produced and changes nothing.

        Raises:
            InvalidCheckoutRequest: Malformed input, before any side effect.
            CheckoutInProgress: Another checkout holds the same key.
            MarketplaceError: Any business, external or internal failure,
                raised after every completed step has been compensated.
        """
        delivery_date = self._validate_request(shipping_address_id, payment_method, delivery_date, delivery_time_slot)
        add_context(user_id=str(user_id))
        try:
            if idempotency_key:
                add_context(idempotency_key=idempotency_key)
                replayed = self._claim(idempotency_key, user_id)
                if replayed is not None:
                    return replayed

            try:
                snapshot = self._run_step("cart_snapshot", lambda: self.cart_gate.begin_checkout(user_id))
            except Exception as exc:
                if idempotency_key:
                    self._fail_attempt(idempotency_key, str(exc))
                elif isinstance(exc, EmptyCart):
                    replayed = self._replay_last_checkout(user_id)
                    if replayed is not None:
                        return replayed
                raise

            if not idempotency_key:
                idempotency_key = derive_idempotency_key(user_id, snapshot)
                add_context(idempotency_key=idempotency_key)
                replayed = self._claim(idempotency_key, user_id)
                if replayed is not None:
                    return replayed

            return self._place(
                snapshot,
                idempotency_key,
                shipping_address_id=shipping_address_id,
                payment_method=payment_method,
                coupon_code=coupon_code,
                notes=notes,
                delivery_date=delivery_date,
                delivery_time_slot=delivery_time_slot,
            )
        finally:
            clear_context()

    def _place(
        self,
        snapshot: CartSnapshot,
        key: str,
        shipping_address_id,
        payment_method,
        coupon_code,
        notes,
        delivery_date,
        delivery_time_slot,
    ) -> Order:
        saga = _Saga()
        order_id = None
        user_id = snapshot.user_id
        logger.info("checkout_started", cart_id=snapshot.cart_id, cart_revision=snapshot.revision)

        try:
            address = self._run_step(
                "address",
                lambda: current_domain.repository_for(Address).get_owned(shipping_address_id, user_id),
            )
            products = self._run_step(
                "load_products",
                lambda: current_domain.repository_for(Product).get_many(snapshot.product_ids),
            )
            priced = self._run_step("pricing", lambda: price_snapshot(snapshot, products))

            discount = None
            if coupon_code:
                discount = self._run_step(
                    "coupon",
                    lambda: self.coupons.apply(coupon_code, priced.subtotal, user_id, reference=key),
                    saga=saga,
                    undo=lambda result: lambda reason: self.coupons.release(result),
                )

            reservation = self._run_step(
                "reserve_stock",
                lambda: self.inventory.reserve(
                    [(line.product_id, line.quantity) for line in priced.lines],
                    reference=key,
                ),
                saga=saga,
                undo=lambda result: lambda reason: self.inventory.release(result.id, reason),
            )

            discount_total = discount.discount_amount if discount else 0.0
            order_id = self._run_step(
                "place_order",
                lambda: current_domain.process(
                    PlaceOrder(
                        user_id=user_id,
                        items=json.dumps([asdict(line) for line in priced.lines]),
                        shipping_address=json.dumps(address.to_snapshot()),
                        subtotal=priced.subtotal,
                        discount_total=discount_total,
                        grand_total=money(priced.subtotal - discount_total),
                        currency=settings.currency(),
                        payment_method=payment_method,
                        coupon=json.dumps(self._coupon_record(discount)) if discount else None,
                        notes=notes,
                        delivery_date=delivery_date,
                        delivery_time_slot=delivery_time_slot,
                        reservation_id=str(reservation.id),
                        idempotency_key=key,
                    ),
                    asynchronous=False,
                ),
                saga=saga,
                undo=lambda result: lambda reason: self.compensate_order(result, reason),
                hand_over=True,
            )
            add_context(order_id=order_id)

            order = current_domain.repository_for(Order).get(order_id)
            self._run_step(
                "payment",
                lambda: self.payments.initiate(order, timeout=settings.step_timeout()),
            )
            self._run_step("complete_attempt", lambda: self._complete_attempt(key, order_id))
        except Exception as exc:
            reason = str(exc)
            saga.compensate(reason)
            self.cart_gate.abort(snapshot, reason)
            if not isinstance(exc, CheckoutInProgress):
                self._fail_attempt(key, reason, order_id=order_id)
            logger.warning("checkout_failed", reason=reason, error=type(exc).__name__)
            raise

        self._commit_cart(snapshot, order_id)

        order = current_domain.repository_for(Order).get(order_id)
        logger.info(
            "checkout_completed",
            grand_total=order.pricing.grand_total,
            items=len(order.items),
            coupon=order.coupon.code if order.coupon else None,
        )
        return order

    # -------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------
    def compensate_order(self, order_id, reason) -> None:
        """Cancel an order that will not be paid and release what it holds.

        Used when checkout fails after the order was written and when the
        gateway reports a failed payment. Safe to call more than once.
        """
        order = current_domain.repository_for(Order).get(order_id)

        if order.pays_through_gateway and order.payment_status == PaymentStatus.PENDING.value:
            if order.payment_id:
                self.payments.void(order.payment_id, reason)
            current_domain.process(
                RecordPaymentFailure(order_id=str(order.id), payment_id=order.payment_id, reason=reason),
                asynchronous=False,
            )
        elif order.order_status in (OrderStatus.PLACED.value, OrderStatus.CONFIRMED.value):
            current_domain.process(
                CancelOrder(order_id=str(order.id), reason=reason, cancelled_by=CancellationActor.SYSTEM.value),
                asynchronous=False,
            )
            if order.payment_status == PaymentStatus.PAID.value:
                logger.warning("cancelled_order_needs_refund", order_id=str(order.id), amount=order.pricing.grand_total)

        self._release_holds(order, reason)

    def cancel_order(self, order_id, reason, cancelled_by=CancellationActor.ADMIN.value) -> Order:
        """Cancel a placed or confirmed order and release its stock and coupon slot."""
        current_domain.process(
            CancelOrder(order_id=str(order_id), reason=reason, cancelled_by=cancelled_by),
            asynchronous=False,
        )
        order = current_domain.repository_for(Order).get(order_id)
        self._release_holds(order, reason)

        if order.payment_status == PaymentStatus.PAID.value:
            logger.warning("cancelled_order_needs_refund", order_id=str(order.id), amount=order.pricing.grand_total)
        return order

    def _release_holds(self, order: Order, reason) -> None:
        # The coupon slot goes back only with the reservation, so it is returned once
        released = bool(order.reservation_id) and self.inventory.release(order.reservation_id, reason)
        if released and order.coupon:
            self.coupons.release(
                DiscountResult(
                    coupon_id=str(order.coupon.coupon_id),
                    code=order.coupon.code,
                    discount_amount=order.coupon.discount_amount,
                    reference=order.idempotency_key,
                )
            )

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _run_step(self, step, action, saga: _Saga | None = None, undo=None, hand_over=False):
        """Run one step against the step timeout.

        ``undo`` maps the step's result to its compensation. It is registered
        as soon as the step returns, so a step that finishes late is still
        undone when the timeout aborts the checkout.
        """
        limit = settings.step_timeout()
        started = self._clock()
        try:
            result = action()
        except ValidationError:
            raise
        except Exception as exc:
            logger.exception("checkout_step_crashed", step=step)
            raise CheckoutInterrupted(step, exc) from exc

        if saga is not None and undo is not None:
            if hand_over:
                saga.hand_over(step, undo(result))
            else:
                saga.register(step, undo(result))

        elapsed = self._clock() - started
        if elapsed > limit:
            raise CheckoutTimeout(step, elapsed, limit)
        return result

    def _commit_cart(self, snapshot: CartSnapshot, order_id) -> None:
        try:
            self.cart_gate.commit(snapshot, order_id)
        except Exception:
            # The order is placed; leftover cart lines are not worth failing it
            logger.exception("cart_commit_failed", cart_id=snapshot.cart_id, order_id=str(order_id))

    # -------------------------------------------------------------------
    # Idempotency
    # -------------------------------------------------------------------
    def _claim(self, key, user_id) -> Order | None:
        """Start the attempt for ``key``, or return the order it already produced."""
        try:
            with _claim_lock:
                order_id = current_domain.process(
                    StartCheckoutAttempt(idempotency_key=key, user_id=str(user_id)),
                    asynchronous=False,
                )
        except ExpectedVersionError:
            raise CheckoutInProgress(key) from None
        except ValidationError as exc:
            if not isinstance(exc, MarketplaceError) and "idempotency_key" in exc.messages:
                raise CheckoutInProgress(key) from None
            raise

        if order_id is None:
            return None
        logger.info("checkout_replayed", order_id=order_id)
        return current_domain.repository_for(Order).get(order_id)

    def _complete_attempt(self, key, order_id) -> None:
        try:
            current_domain.process(
                CompleteCheckoutAttempt(idempotency_key=key, order_id=order_id),
                asynchronous=False,
            )
        except (ValidationError, ExpectedVersionError):
            # Another request holds the key now; this order must not stand
            raise CheckoutInProgress(key) from None

    def _replay_last_checkout(self, user_id) -> Order | None:
        """Order of the last keyless checkout, when it emptied the cart and nothing changed since."""
        consumed = self.cart_gate.last_checkout(user_id)
        if consumed is None:
            return None

        attempt = current_domain.repository_for(CheckoutAttempt).find_by_key(
            derive_idempotency_key(user_id, consumed)
        )
        if attempt is None or attempt.status != AttemptStatus.COMPLETED.value:
            return None
        logger.info("checkout_replayed", order_id=str(attempt.order_id))
        return current_domain.repository_for(Order).get(attempt.order_id)

    def _fail_attempt(self, key, reason, order_id=None) -> None:
        try:
            current_domain.process(
                FailCheckoutAttempt(idempotency_key=key, reason=reason[:1000], order_id=order_id),
                asynchronous=False,
            )
        except Exception:
            logger.exception("checkout_attempt_not_recorded", reason=reason)

    @staticmethod
    def _coupon_record(discount: DiscountResult) -> dict:
        return {
            "coupon_id": discount.coupon_id,
            "code": discount.code,
            "discount_amount": discount.discount_amount,
        }

    @staticmethod
    def _validate_request(shipping_address_id, payment_method, delivery_date, delivery_time_slot):
        if not shipping_address_id:
            raise InvalidCheckoutRequest("shipping_address_id", "Shipping address is required")
        if payment_method not in {m.value for m in PaymentMethod}:
            raise InvalidCheckoutRequest("payment_method", f"Unsupported payment method: {payment_method}")
        if delivery_time_slot is not None and delivery_time_slot not in {s.value for s in DeliveryTimeSlot}:
            raise InvalidCheckoutRequest("delivery_time_slot", f"Unknown delivery time slot: {delivery_time_slot}")

        if isinstance(delivery_date, str):
            try:
                delivery_date = date.fromisoformat(delivery_date)
            except ValueError:
                raise InvalidCheckoutRequest("delivery_date", "Delivery date must be YYYY-MM-DD") from None
        return delivery_date
