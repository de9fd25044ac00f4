from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from api.errors import ConflictError, NotFoundError, ProviderError, ProviderTimeout
from checkout.models import Order
from checkout.state import SHIPPABLE_STATUSES, Trigger, transition_order

from .client import ShiprocketApiError, ShiprocketClient, ShiprocketTimeout

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"\b\d{6}\b")
DEFAULT_PINCODE = "302001"

# Flat, lightweight parcel (stickers).
PACKAGE_DIMENSIONS = {"length": 10, "breadth": 10, "height": 2, "weight": 0.1}
DEFAULT_HSN = 49119100


class LabelError(RuntimeError):
    """Label workflow failure with a user-facing message."""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class ParsedAddress:
    line1: str
    city: str
    state: str
    pincode: str


@dataclass(frozen=True)
class LabelResult:
    awb: str
    courier: str
    label_url: str
    shipment_id: str


def parse_address(text: str) -> ParsedAddress:
    """Best-effort split of "street, city, state - 123456"."""

    raw = (text or "").strip()
    parts = [p.strip() for p in raw.split(",") if p.strip()]

    m = PINCODE_RE.search(raw)
    pincode = m.group(0) if m else DEFAULT_PINCODE

    city = parts[-2] if len(parts) >= 2 else "Other"
    state = "Other"
    if parts:
        state = re.sub(r"-?\s*\d{6}", "", parts[-1]).strip(" -") or "Other"

    return ParsedAddress(line1=raw, city=city, state=state, pincode=pincode)


def address_for(order: Order) -> ParsedAddress:
    if order.shipping_city and order.shipping_state and order.shipping_pincode:
        return ParsedAddress(
            line1=order.shipping_line1,
            city=order.shipping_city,
            state=order.shipping_state,
            pincode=order.shipping_pincode,
        )
    return parse_address(order.shipping_address_text or order.shipping_address)


def _split_name(full_name: str) -> tuple[str, str]:
    parts = (full_name or "").split()
    first = parts[0] if parts else "Customer"
    last = " ".join(parts[1:]) if len(parts) > 1 else "Name"
    return first, last


def _sku_for(product_ref: str) -> str:
    return f"SKU-{str(product_ref)[-6:].upper()}"


def build_order_payload(order: Order) -> dict[str, Any]:
    address = address_for(order)
    first, last = _split_name(order.customer_name)
    pickup_location = str(getattr(settings, "SHIPROCKET_PICKUP_LOCATION", "Primary") or "Primary")

    return {
        "order_id": str(order.id),
        "order_date": timezone.localdate(order.created_at).strftime("%Y-%m-%d"),
        "pickup_location": pickup_location,
        "billing_customer_name": first,
        "billing_last_name": last,
        "billing_address": (address.line1 or order.shipping_address)[:80],
        "billing_city": address.city,
        "billing_pincode": address.pincode,
        "billing_state": address.state,
        "billing_country": "India",
        "billing_email": order.email,
        "billing_phone": order.phone,
        "shipping_is_billing": True,
        "order_items": [
            {
                "name": item.title[:50],
                "sku": _sku_for(item.product_ref),
                "units": int(item.quantity),
                "selling_price": str(item.price),
                "discount": 0,
                "tax": "",
                "hsn": DEFAULT_HSN,
            }
            for item in order.items.all()
        ],
        "payment_method": "COD" if order.payment_method == Order.PaymentMethod.COD else "Prepaid",
        "sub_total": str(order.amount),
        **PACKAGE_DIMENSIONS,
    }


def _guard(order: Order) -> None:
    if order.status in {Order.Status.SHIPPED, Order.Status.DELIVERED} or (order.tracking_number or "").strip():
        raise LabelError("Order is already shipped or has an AWB.", status_code=409)
    if order.status not in SHIPPABLE_STATUSES:
        raise LabelError(f"Cannot ship order with status: {order.status}")


def _lock_key(order_id: int) -> str:
    return f"shiprocket:label-lock:v1:{int(order_id)}"


def generate_label_for_order(*, order_id: int, actor: str = "", client: ShiprocketClient | None = None) -> LabelResult:
    order = Order.objects.prefetch_related("items").filter(id=int(order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})

    _guard(order)

    lock_seconds = int(getattr(settings, "SHIPROCKET_LABEL_LOCK_SECONDS", 120))
    if not cache.add(_lock_key(order.id), actor or "1", timeout=lock_seconds):
        raise LabelError("Label generation is already in progress for this order.", status_code=409)

    try:
        return _push_and_ship(order, actor=actor, client=client or ShiprocketClient())
    finally:
        cache.delete(_lock_key(order.id))


def _push_and_ship(order: Order, *, actor: str, client: ShiprocketClient) -> LabelResult:
    try:
        created = client.create_adhoc_order(payload=build_order_payload(order))
    except ShiprocketTimeout as exc:
        logger.warning("Shiprocket order push timed out", extra={"order_id": order.id})
        raise ProviderTimeout("Courier service took too long to respond") from exc
    except ShiprocketApiError as exc:
        logger.exception("Shiprocket order push failed", extra={"order_id": order.id})
        raise ProviderError("Could not create the shipment. Please try again.") from exc

    shipment_id = created.get("shipment_id")
    if not shipment_id:
        logger.error("Shiprocket order push rejected", extra={"order_id": order.id, "response": str(created)[:500]})
        raise LabelError(str(created.get("message") or "Shiprocket rejected the order."))

    try:
        awb_data = client.assign_awb(shipment_id=shipment_id)
    except ShiprocketApiError as exc:
        logger.exception("Shiprocket AWB assignment failed", extra={"order_id": order.id, "shipment_id": shipment_id})
        raise LabelError("Order created, but courier assignment failed. Pincode issue?") from exc

    awb_payload = (awb_data.get("response") or {}).get("data") or {}
    awb = str(awb_payload.get("awb_code") or "").strip()
    courier = str(awb_payload.get("courier_name") or "").strip()
    if str(awb_data.get("awb_assign_status")) != "1" or not awb:
        logger.error("Shiprocket AWB not assigned", extra={"order_id": order.id, "shipment_id": shipment_id})
        raise LabelError("Order created, but courier assignment failed. Pincode issue?")

    try:
        label_data = client.generate_label(shipment_id=shipment_id)
    except ShiprocketApiError as exc:
        logger.exception("Shiprocket label generation failed", extra={"order_id": order.id, "awb": awb})
        raise ProviderError("AWB assigned, but the label could not be generated. Please try again.") from exc
    label_url = str(label_data.get("label_url") or "").strip()

    try:
        transition_order(
            order_id=order.id,
            to_status=Order.Status.SHIPPED,
            trigger=Trigger.SHIPPING,
            actor=actor,
            expected_from=order.status,
            fields={
                "tracking_number": awb,
                "courier_name": courier,
                "label_url": label_url,
                "shipment_id": str(shipment_id),
                "shipped_at": timezone.now(),
            },
            extra_filters={"tracking_number": ""},
        )
    except ConflictError:
        # Shipment exists upstream but the local write lost; needs manual reconciliation.
        logger.error(
            "Shipment created upstream but order was not marked shipped",
            extra={"order_id": order.id, "awb": awb, "shipment_id": shipment_id},
        )
        raise

    return LabelResult(awb=awb, courier=courier, label_url=label_url, shipment_id=str(shipment_id))
