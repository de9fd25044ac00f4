from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings


class RazorpayApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class RazorpayConfig:
    base_url: str
    key_id: str
    key_secret: str
    webhook_secret: str
    timeout: int


def get_razorpay_config() -> RazorpayConfig:
    return RazorpayConfig(
        base_url=str(getattr(settings, "RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")).strip().rstrip("/"),
        key_id=str(getattr(settings, "RAZORPAY_KEY_ID", "") or "").strip(),
        key_secret=str(getattr(settings, "RAZORPAY_KEY_SECRET", "") or "").strip(),
        webhook_secret=str(getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "") or "").strip(),
        timeout=int(getattr(settings, "RAZORPAY_TIMEOUT_SECONDS", 20)),
    )


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    *,
    order_ref: str,
    payment_ref: str,
    signature: str,
    cfg: RazorpayConfig | None = None,
) -> bool:
    """HMAC-SHA256(key_secret, "order_ref|payment_ref") must equal ``signature``.

    Anything missing counts as a failed verification.
    """

    cfg = cfg or get_razorpay_config()
    order_ref = (order_ref or "").strip()
    payment_ref = (payment_ref or "").strip()
    signature = (signature or "").strip()
    if not (order_ref and payment_ref and signature and cfg.key_secret):
        return False

    expected = _hmac_hex(cfg.key_secret, f"{order_ref}|{payment_ref}".encode("utf-8"))
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(*, body: bytes, signature: str, cfg: RazorpayConfig | None = None) -> bool:
    cfg = cfg or get_razorpay_config()
    signature = (signature or "").strip()
    if not (body and signature and cfg.webhook_secret):
        return False
    return hmac.compare_digest(_hmac_hex(cfg.webhook_secret, body), signature)


class RazorpayClient:
    def __init__(self, cfg: RazorpayConfig | None = None) -> None:
        self.cfg = cfg or get_razorpay_config()

    def _auth(self) -> tuple[str, str]:
        if not self.cfg.key_id or not self.cfg.key_secret:
            raise RazorpayApiError("Razorpay keys are not configured")
        return (self.cfg.key_id, self.cfg.key_secret)

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> dict[str, Any]:
        url = f"{self.cfg.base_url}/orders"
        payload: dict[str, Any] = {
            "amount": int(amount_minor),
            "currency": currency,
            "receipt": str(receipt)[:40],
        }
        if notes:
            payload["notes"] = {str(k): str(v) for k, v in notes.items()}

        try:
            r = requests.post(url, json=payload, auth=self._auth(), timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            raise RazorpayApiError(f"Razorpay create order failed: {exc}") from exc
        if r.status_code >= 400:
            raise RazorpayApiError(f"Razorpay create order failed: {r.status_code} {r.text[:300]}")
        data = r.json()
        if not isinstance(data, dict) or not data.get("id"):
            raise RazorpayApiError("Razorpay create order: unexpected response")
        return data

    def fetch_order(self, *, gateway_order_id: str) -> dict[str, Any]:
        url = f"{self.cfg.base_url}/orders/{gateway_order_id}"
        try:
            r = requests.get(url, auth=self._auth(), timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            raise RazorpayApiError(f"Razorpay fetch order failed: {exc}") from exc
        if r.status_code >= 400:
            raise RazorpayApiError(f"Razorpay fetch order failed: {r.status_code} {r.text[:300]}")
        data = r.json()
        if not isinstance(data, dict):
            raise RazorpayApiError("Razorpay fetch order: unexpected response")
        return data
