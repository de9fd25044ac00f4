from __future__ import annotations

from decimal import Decimal

from ninja import Schema


class CouponValidateIn(Schema):
    code: str
    subtotal: Decimal


class CouponValidateOut(Schema):
    success: bool = True
    code: str
    discount: Decimal
