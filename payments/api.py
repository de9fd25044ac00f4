from __future__ import annotations

import json
import logging

from ninja import Router

from api.errors import NotFoundError, RequestValidationError, Unauthorized
from checkout.services import confirm_payment

from .schemas import RazorpayVerifyIn, RazorpayVerifyOut
from .services.razorpay import verify_payment_signature, verify_webhook_signature


router = Router(tags=["payments"])

logger = logging.getLogger(__name__)

CAPTURED_EVENTS = {"payment.captured"}


@router.post("/razorpay/verify", response=RazorpayVerifyOut)
def razorpay_verify(request, payload: RazorpayVerifyIn):
    ok = verify_payment_signature(
        order_ref=payload.razorpay_order_id,
        payment_ref=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
    )
    if not ok:
        logger.warning("Razorpay signature mismatch", extra={"gateway_order_id": payload.razorpay_order_id})
        raise RequestValidationError("Invalid Signature")

    result = confirm_payment(
        gateway_order_id=payload.razorpay_order_id,
        gateway_payment_id=payload.razorpay_payment_id,
        source="razorpay-verify",
    )
    message = "Order already verified" if result.already_confirmed else "Payment verified"
    return RazorpayVerifyOut(message=message, orderId=result.order.id, status=result.order.status)


@router.post("/razorpay/webhook")
def razorpay_webhook(request):
    signature = (request.headers.get("X-Razorpay-Signature") or "").strip()
    if not verify_webhook_signature(body=request.body or b"", signature=signature):
        logger.warning("Razorpay webhook signature mismatch")
        raise Unauthorized("Invalid webhook signature")

    try:
        event = json.loads(request.body or b"{}")
    except json.JSONDecodeError as exc:
        raise RequestValidationError("Invalid JSON body") from exc
    if not isinstance(event, dict):
        raise RequestValidationError("Invalid JSON body")

    name = str(event.get("event") or "")
    if name not in CAPTURED_EVENTS:
        return {"status": "ok", "message": "Event ignored"}

    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    gateway_order_id = str(entity.get("order_id") or "")
    try:
        amount = int(entity.get("amount"))
    except (TypeError, ValueError) as exc:
        raise RequestValidationError("Missing payment amount") from exc

    try:
        # The browser callback may never arrive, so an expired session is still honoured here.
        result = confirm_payment(
            gateway_order_id=gateway_order_id,
            gateway_payment_id=str(entity.get("id") or ""),
            source="razorpay-webhook",
            paid_amount_minor=amount,
            enforce_expiry=False,
        )
    except NotFoundError:
        logger.warning("Razorpay webhook for unknown order", extra={"gateway_order_id": gateway_order_id})
        return {"status": "ok", "message": "Order not found"}

    if result.already_confirmed:
        return {"status": "ok", "message": "Order already verified"}
    return {"status": "ok", "message": "Payment captured"}
