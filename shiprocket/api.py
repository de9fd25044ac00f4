from __future__ import annotations

import hmac
import json
import logging

from django.conf import settings
from ninja import Router

from accounts.auth import StaffJWTAuth
from api.errors import PipelineError, RequestValidationError, Unauthorized
from api.ratelimit import client_ip, hit

from .labels import LabelError, generate_label_for_order
from .schemas import FailureOut, GenerateLabelIn, GenerateLabelOut, PincodeCheckIn, PincodeCheckOut
from .serviceability import ServiceabilityError, check_pincode
from .tracking import handle_tracking_update

router = Router(tags=["shiprocket"])  # mounted under /shiprocket

logger = logging.getLogger(__name__)


@router.post("/check-pincode", response={200: PincodeCheckOut, 400: FailureOut, 429: FailureOut, 504: FailureOut})
def pincode_check(request, payload: PincodeCheckIn):
    # Unknown clients are not rate limited.
    ip = client_ip(request)
    if ip and not hit(scope="pincode", key=ip):
        return 429, FailureOut(message="Too many requests. Please try again after a minute.")

    try:
        result = check_pincode(pincode=payload.pincode)
    except ServiceabilityError as exc:
        return exc.status_code, FailureOut(message=exc.message)

    return 200, PincodeCheckOut(
        city=result.city,
        state=result.state,
        date=result.date,
        cod=result.cod,
        isExpress=result.is_express,
    )


@router.post(
    "/generate-label",
    auth=StaffJWTAuth(),
    response={200: GenerateLabelOut, 400: FailureOut, 404: FailureOut, 409: FailureOut, 502: FailureOut, 504: FailureOut},
)
def generate_label(request, payload: GenerateLabelIn):
    actor = getattr(request.auth, "email", "") or f"user:{request.auth.id}"
    try:
        result = generate_label_for_order(order_id=payload.orderId, actor=actor)
    except LabelError as exc:
        return exc.status_code, FailureOut(message=exc.message)
    except PipelineError as exc:
        return exc.status_code, FailureOut(message=exc.message)

    return 200, GenerateLabelOut(awb=result.awb, courier=result.courier, label_url=result.label_url)


@router.post("/webhook")
def tracking_webhook(request):
    expected = str(getattr(settings, "SHIPROCKET_WEBHOOK_TOKEN", "") or "")
    supplied = (request.headers.get("x-api-key") or "").strip()
    if not expected or not hmac.compare_digest(expected, supplied):
        raise Unauthorized("Invalid webhook token")

    try:
        payload = json.loads(request.body or b"{}")
    except json.JSONDecodeError as exc:
        raise RequestValidationError("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise RequestValidationError("Invalid JSON body")

    result = handle_tracking_update(payload)
    return {"status": result}
