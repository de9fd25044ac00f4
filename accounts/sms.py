from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings


class Fast2SmsApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class Fast2SmsConfig:
    base_url: str
    api_key: str


def _get_cfg() -> Fast2SmsConfig:
    return Fast2SmsConfig(
        base_url=str(getattr(settings, "FAST2SMS_BASE_URL", "https://www.fast2sms.com/dev/bulkV2")).strip(),
        api_key=str(getattr(settings, "FAST2SMS_API_KEY", "") or "").strip(),
    )


def send_otp_sms(*, phone: str, code: str) -> dict[str, Any]:
    cfg = _get_cfg()
    if not cfg.api_key:
        raise Fast2SmsApiError("FAST2SMS_API_KEY is not set")

    payload = {
        "route": "otp",
        "variables_values": code,
        "numbers": phone,
    }
    headers = {"authorization": cfg.api_key, "Content-Type": "application/json"}
    try:
        r = requests.post(cfg.base_url, json=payload, headers=headers, timeout=15)
    except requests.RequestException as exc:
        raise Fast2SmsApiError(f"Fast2SMS request failed: {exc}") from exc
    if r.status_code >= 400:
        raise Fast2SmsApiError(f"Fast2SMS failed: {r.status_code} {r.text[:300]}")

    data = r.json()
    if not isinstance(data, dict) or data.get("return") is False:
        raise Fast2SmsApiError(f"Fast2SMS rejected the message: {str(data)[:300]}")
    return data
