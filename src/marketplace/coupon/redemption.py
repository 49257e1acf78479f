"""Coupon usage — redeem and release commands and handler.

Both handlers load the coupon fresh and persist it under the aggregate's
version check, so a concurrent redemption makes one of the two saves fail
rather than letting both pass a stale cap check.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.coupon.coupon import Coupon
from marketplace.domain import marketplace


@marketplace.command(part_of="Coupon")
class RedeemCoupon:
    coupon_id = Identifier(required=True)
    reference = String(max_length=255)


@marketplace.command(part_of="Coupon")
class ReleaseCouponUsage:
    coupon_id = Identifier(required=True)
    reference = String(max_length=255)


@marketplace.command_handler(part_of=Coupon)
class CouponUsageHandler:
    @handle(RedeemCoupon)
    def redeem_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.redeem(reference=command.reference)
        repo.add(coupon)
        return coupon.usage_count

    @handle(ReleaseCouponUsage)
    def release_coupon_usage(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.release_usage(reference=command.reference)
        repo.add(coupon)
        return coupon.usage_count
