"""Coupon administration — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.coupon.coupon import Coupon
from marketplace.domain import marketplace


@marketplace.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=50)
    discount_type = String(required=True, max_length=20)
    discount_value = Float(required=True, min_value=0.0)
    min_order_amount = Float(default=0.0, min_value=0.0)
    max_discount_amount = Float(min_value=0.0)
    starts_at = DateTime()
    expires_at = DateTime()
    usage_limit = Integer(min_value=0)
    is_active = Boolean(default=True)


@marketplace.command(part_of="Coupon")
class DeactivateCoupon:
    coupon_id = Identifier(required=True)


@marketplace.command_handler(part_of=Coupon)
class ManageCouponHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": ["Coupon code already exists"]})

        coupon = Coupon.create(
            code=command.code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            min_order_amount=command.min_order_amount,
            max_discount_amount=command.max_discount_amount,
            starts_at=command.starts_at,
            expires_at=command.expires_at,
            usage_limit=command.usage_limit,
            is_active=command.is_active,
        )
        repo.add(coupon)
        return str(coupon.id)

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.deactivate()
        repo.add(coupon)
