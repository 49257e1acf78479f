"""Coupon aggregate — discount codes with a validity window and a usage cap.

Checks run in a fixed order so callers always see the same reason for the
same coupon: active flag, validity window, minimum order amount, usage cap.
``usage_count`` only moves through ``redeem`` and ``release_usage``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String

from marketplace.coupon.events import (
    CouponCreated,
    CouponDeactivated,
    CouponRedeemed,
    CouponUsageReleased,
)
from marketplace.domain import marketplace
from marketplace.errors import CouponExhausted, CouponExpired, CouponInvalid, MinimumNotMet
from marketplace.pricing.snapshot import money


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def _aware(moment):
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


@marketplace.aggregate
class Coupon:
    code = String(required=True, max_length=50, unique=True)
    discount_type = String(required=True, choices=DiscountType)
    discount_value = Float(required=True, min_value=0.0)
    min_order_amount = Float(default=0.0, min_value=0.0)
    max_discount_amount = Float(min_value=0.0)
    starts_at = DateTime()
    expires_at = DateTime()
    is_active = Boolean(default=True)
    usage_limit = Integer(min_value=0)
    usage_count = Integer(default=0, min_value=0)
    created_at = DateTime()

    @invariant.post
    def usage_must_stay_within_limit(self):
        if self.usage_limit is not None and (self.usage_count or 0) > self.usage_limit:
            raise ValidationError({"usage_count": ["Coupon usage cannot exceed its limit"]})

    @classmethod
    def create(
        cls,
        code,
        discount_type,
        discount_value,
        min_order_amount=0.0,
        max_discount_amount=None,
        starts_at=None,
        expires_at=None,
        usage_limit=None,
        is_active=True,
    ):
        if discount_type == DiscountType.PERCENTAGE.value and discount_value > 100:
            raise ValidationError({"discount_value": ["Percentage discount cannot exceed 100"]})

        coupon = cls(
            code=code.strip().upper(),
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_amount=min_order_amount or 0.0,
            max_discount_amount=max_discount_amount,
            starts_at=starts_at,
            expires_at=expires_at,
            usage_limit=usage_limit,
            usage_count=0,
            is_active=is_active,
            created_at=datetime.now(UTC),
        )
        coupon.raise_(
            CouponCreated(
                coupon_id=str(coupon.id),
                code=coupon.code,
                discount_type=discount_type,
                discount_value=discount_value,
                usage_limit=usage_limit,
                expires_at=expires_at,
            )
        )
        return coupon

    # -------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------
    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and (self.usage_count or 0) >= self.usage_limit

    def check_applicable(self, subtotal: float, now: datetime | None = None):
        """Raise the first reason this coupon cannot apply to ``subtotal``."""
        self._check_live(now)
        if subtotal < (self.min_order_amount or 0.0):
            raise MinimumNotMet(self.code, self.min_order_amount)
        if self.is_exhausted:
            raise CouponExhausted(self.code)

    def _check_live(self, now: datetime | None = None):
        now = _aware(now or datetime.now(UTC))

        if not self.is_active:
            raise CouponInvalid(self.code, "Coupon is no longer active")
        if self.starts_at is not None and now < _aware(self.starts_at):
            raise CouponExpired(self.code, "Coupon is not valid yet")
        if self.expires_at is not None and now > _aware(self.expires_at):
            raise CouponExpired(self.code)

    def compute_discount(self, subtotal: float) -> float:
        if self.discount_type == DiscountType.PERCENTAGE.value:
            discount = subtotal * self.discount_value / 100
            if self.max_discount_amount is not None:
                discount = min(discount, self.max_discount_amount)
        else:
            discount = self.discount_value
        return money(min(discount, subtotal))

    # -------------------------------------------------------------------
    # Usage
    # -------------------------------------------------------------------
    def redeem(self, reference=None, now: datetime | None = None):
        """Consume one usage slot. The minimum order amount was checked when quoting."""
        self._check_live(now)
        if self.is_exhausted:
            raise CouponExhausted(self.code)

        self.usage_count = (self.usage_count or 0) + 1
        self.raise_(
            CouponRedeemed(
                coupon_id=str(self.id),
                code=self.code,
                usage_count=self.usage_count,
                reference=reference,
            )
        )

    def release_usage(self, reference=None):
        self.usage_count = max((self.usage_count or 0) - 1, 0)
        self.raise_(
            CouponUsageReleased(
                coupon_id=str(self.id),
                code=self.code,
                usage_count=self.usage_count,
                reference=reference,
            )
        )

    def deactivate(self):
        self.is_active = False
        self.raise_(CouponDeactivated(coupon_id=str(self.id), code=self.code))


@marketplace.repository(part_of=Coupon)
class CouponRepository:
    def find_by_code(self, code) -> Coupon | None:
        """Case-insensitive lookup; codes are stored upper-case."""
        if not code:
            return None
        return self._dao.query.filter(code=code.strip().upper()).all().first
