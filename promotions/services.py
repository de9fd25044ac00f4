from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db.models import F
from django.utils import timezone

from api.errors import BusinessRuleError, ConflictError

from .models import Coupon, normalize_code

logger = logging.getLogger(__name__)

INVALID_COUPON_MESSAGE = "Invalid or expired coupon."


@dataclass(frozen=True)
class AppliedCoupon:
    coupon_id: int
    code: str
    discount: Decimal


def validate_coupon(*, code: str, subtotal: Decimal, now=None) -> AppliedCoupon:
    """Resolve ``code`` against ``subtotal`` or raise BusinessRuleError.

    Read-only: redemption happens in :func:`redeem_coupon`.
    """

    normalized = normalize_code(code)
    if not normalized:
        raise BusinessRuleError(INVALID_COUPON_MESSAGE)

    coupon = Coupon.objects.filter(code=normalized).first()
    if coupon is None or not coupon.is_valid_now(now=now or timezone.now()):
        raise BusinessRuleError(INVALID_COUPON_MESSAGE, details={"code": normalized})

    if coupon.is_exhausted():
        raise BusinessRuleError("Coupon usage limit reached.", details={"code": normalized})

    subtotal = Decimal(subtotal or 0)
    if subtotal < Decimal(coupon.min_order_value):
        raise BusinessRuleError(
            f"Coupon requires a minimum order of ₹{coupon.min_order_value}.",
            details={"code": normalized, "min_order_value": str(coupon.min_order_value)},
        )

    return AppliedCoupon(
        coupon_id=int(coupon.id),
        code=coupon.code,
        discount=coupon.get_discount_for(subtotal=subtotal),
    )


def redeem_coupon(*, coupon_id: int) -> None:
    """Increment used_count unless the usage limit is already reached.

    Must run inside the caller's transaction so a lost race rolls back the order.
    """

    coupon = Coupon.objects.filter(id=int(coupon_id)).first()
    if coupon is None:
        raise BusinessRuleError(INVALID_COUPON_MESSAGE)

    qs = Coupon.objects.filter(id=coupon.id)
    if coupon.usage_limit is not None:
        qs = qs.filter(used_count__lt=int(coupon.usage_limit))

    updated = qs.update(used_count=F("used_count") + 1)
    if updated != 1:
        logger.warning("Coupon redemption lost race", extra={"coupon": coupon.code})
        raise ConflictError("Coupon usage limit reached.", details={"code": coupon.code})
