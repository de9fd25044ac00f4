from __future__ import annotations

import logging
from typing import Any

from api.errors import NotFoundError
from checkout.models import Order
from checkout.state import Trigger, transition_order

logger = logging.getLogger(__name__)

DELIVERED_STATUSES = {"DELIVERED"}


def handle_tracking_update(payload: dict[str, Any]) -> str:
    """Apply a tracking push. Returns "delivered", "ignored" or "duplicate"."""

    awb = str(payload.get("awb") or "").strip()
    current = str(payload.get("current_status") or payload.get("shipment_status") or "").strip().upper()

    order = Order.objects.filter(tracking_number=awb).first() if awb else None
    if order is None:
        raise NotFoundError("Unknown AWB", details={"awb": awb})

    if current not in DELIVERED_STATUSES:
        logger.info("Tracking update acknowledged", extra={"order_id": order.id, "awb": awb, "tracking_status": current})
        return "ignored"

    if order.status == Order.Status.DELIVERED:
        return "duplicate"

    transition_order(
        order_id=order.id,
        to_status=Order.Status.DELIVERED,
        trigger=Trigger.SHIPPING,
        actor="shiprocket",
        expected_from=order.status,
    )
    return "delivered"
