"""Domain events for the Coupon aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Coupon")
class CouponCreated:
    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    discount_value = Float(required=True)
    usage_limit = Integer()
    expires_at = DateTime()


@marketplace.event(part_of="Coupon")
class CouponRedeemed:
    """One usage slot of the coupon was consumed by a checkout."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    usage_count = Integer(required=True)
    reference = String()


@marketplace.event(part_of="Coupon")
class CouponUsageReleased:
    """A consumed usage slot was returned by compensation."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    usage_count = Integer(required=True)
    reference = String()


@marketplace.event(part_of="Coupon")
class CouponDeactivated:
    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
