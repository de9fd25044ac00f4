from __future__ import annotations

from ninja import Schema


class RazorpayVerifyIn(Schema):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class RazorpayVerifyOut(Schema):
    success: bool = True
    message: str
    orderId: int
    status: str
