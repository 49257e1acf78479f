"""Coupon evaluator — validate a code against a subtotal and consume a slot.

Validation happens twice. The evaluator runs the full ordered check against
the coupon it loaded, so the caller gets a precise reason. The redemption
handler then re-checks the active flag, the validity window and the usage
cap on fresh state under the version check, which is what actually protects
the cap when checkouts race.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from marketplace.coupon.coupon import Coupon
from marketplace.coupon.redemption import RedeemCoupon, ReleaseCouponUsage
from marketplace.errors import CouponContention, CouponInvalid
from marketplace.utils.concurrency import process_with_retry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DiscountResult:
    coupon_id: str
    code: str
    discount_amount: float
    reference: str | None = None


class CouponEvaluator:
    def _load(self, code) -> Coupon:
        coupon = current_domain.repository_for(Coupon).find_by_code(code)
        if coupon is None:
            raise CouponInvalid(str(code).strip().upper() if code else "", "Invalid coupon code")
        return coupon

    def quote(self, code, subtotal: float, now: datetime | None = None) -> DiscountResult:
        """Validate and compute the discount without consuming a usage slot."""
        coupon = self._load(code)
        coupon.check_applicable(subtotal, now or datetime.now(UTC))
        return DiscountResult(
            coupon_id=str(coupon.id),
            code=coupon.code,
            discount_amount=coupon.compute_discount(subtotal),
        )

    def apply(self, code, subtotal: float, user_id, reference=None) -> DiscountResult:
        """Validate ``code`` for ``subtotal`` and consume one usage slot.

        Raises:
            CouponInvalid, CouponExpired, MinimumNotMet, CouponExhausted:
                In that order of precedence. Nothing is consumed on failure.
            CouponContention: Every redemption attempt lost a race.
        """
        quoted = self.quote(code, subtotal)

        process_with_retry(
            RedeemCoupon(coupon_id=quoted.coupon_id, reference=reference),
            on_exhausted=lambda: CouponContention(quoted.code),
        )
        logger.info(
            "coupon_redeemed",
            code=quoted.code,
            user_id=str(user_id),
            discount=quoted.discount_amount,
            reference=reference,
        )
        return DiscountResult(
            coupon_id=quoted.coupon_id,
            code=quoted.code,
            discount_amount=quoted.discount_amount,
            reference=reference,
        )

    def release(self, discount: DiscountResult) -> None:
        """Return the usage slot consumed by ``apply``."""
        process_with_retry(
            ReleaseCouponUsage(coupon_id=discount.coupon_id, reference=discount.reference),
            on_exhausted=lambda: CouponContention(discount.code),
        )
        logger.info("coupon_usage_released", code=discount.code, reference=discount.reference)
