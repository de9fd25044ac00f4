from __future__ import annotations

from ninja import Router

from .schemas import CouponValidateIn, CouponValidateOut
from .services import validate_coupon

router = Router(tags=["promotions"])


@router.post("/coupons/validate", response=CouponValidateOut)
def coupon_validate(request, payload: CouponValidateIn):
    applied = validate_coupon(code=payload.code, subtotal=payload.subtotal)
    return CouponValidateOut(code=applied.code, discount=applied.discount)
