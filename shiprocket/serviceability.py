from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.utils import timezone

from .client import ShiprocketApiError, ShiprocketClient, ShiprocketTimeout

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"^[1-9]\d{5}$")
EXPRESS_MAX_DAYS = 3


class ServiceabilityError(RuntimeError):
    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class Serviceability:
    city: str
    state: str
    date: str
    cod: bool
    is_express: bool
    courier: str
    days: int


def _days(courier: dict[str, Any]) -> int:
    try:
        return int(courier.get("estimated_delivery_days"))
    except (TypeError, ValueError):
        return 10**6


def _format_etd(courier: dict[str, Any], days: int) -> str:
    etd = str(courier.get("etd") or "").strip()
    for fmt in ("%b %d, %Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(etd, fmt).strftime("%a, %d %b")
        except ValueError:
            continue
    if days < 10**6:
        return (timezone.localdate() + timedelta(days=days)).strftime("%a, %d %b")
    return etd


def check_pincode(*, pincode: str, client: ShiprocketClient | None = None) -> Serviceability:
    pincode = (pincode or "").strip()
    if not PINCODE_RE.match(pincode):
        raise ServiceabilityError("Invalid Pincode format")

    client = client or ShiprocketClient()
    timeout = int(getattr(settings, "SHIPROCKET_SERVICEABILITY_TIMEOUT_SECONDS", 8))

    try:
        data = client.serviceability(delivery_postcode=pincode, timeout=timeout)
    except ShiprocketTimeout as exc:
        logger.warning("Shiprocket serviceability timed out", extra={"pincode": pincode})
        raise ServiceabilityError("Courier service took too long to respond", status_code=504) from exc
    except ShiprocketApiError as exc:
        logger.exception("Shiprocket serviceability failed", extra={"pincode": pincode})
        raise ServiceabilityError("Delivery not available to this pincode.") from exc

    payload = data.get("data") or {}
    couriers = [c for c in (payload.get("available_courier_companies") or []) if isinstance(c, dict)]
    if not couriers:
        raise ServiceabilityError("Delivery not available to this pincode.")

    best = min(couriers, key=_days)
    days = _days(best)

    return Serviceability(
        city=str(payload.get("city") or best.get("city") or ""),
        state=str(payload.get("state") or best.get("state") or ""),
        date=_format_etd(best, days),
        cod=str(best.get("cod")) == "1",
        is_express=days <= EXPRESS_MAX_DAYS,
        courier=str(best.get("courier_name") or ""),
        days=days,
    )
