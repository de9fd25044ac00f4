from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings

from .tokens import TokenCache, get_token_cache


class ShiprocketApiError(RuntimeError):
    pass


class ShiprocketAuthError(ShiprocketApiError):
    pass


class ShiprocketTimeout(ShiprocketApiError):
    pass


@dataclass(frozen=True)
class ShiprocketConfig:
    base_url: str
    email: str
    password: str
    pickup_location: str
    pickup_pincode: str
    timeout: int = 30


def _get_cfg() -> ShiprocketConfig:
    return ShiprocketConfig(
        base_url=str(getattr(settings, "SHIPROCKET_BASE_URL", "https://apiv2.shiprocket.in/v1/external")).strip().rstrip("/"),
        email=str(getattr(settings, "SHIPROCKET_EMAIL", "") or "").strip(),
        password=str(getattr(settings, "SHIPROCKET_PASSWORD", "") or ""),
        pickup_location=str(getattr(settings, "SHIPROCKET_PICKUP_LOCATION", "Primary") or "Primary").strip(),
        pickup_pincode=str(getattr(settings, "SHIPROCKET_PICKUP_PINCODE", "332001") or "332001").strip(),
    )


class ShiprocketClient:
    def __init__(self, *, cfg: ShiprocketConfig | None = None, token_cache: TokenCache | None = None) -> None:
        self.cfg = cfg or _get_cfg()
        self.token_cache = token_cache or get_token_cache()

    def login(self) -> str:
        if not self.cfg.email or not self.cfg.password:
            raise ShiprocketAuthError("Shiprocket credentials are not set")

        url = f"{self.cfg.base_url}/auth/login"
        try:
            r = requests.post(
                url,
                json={"email": self.cfg.email, "password": self.cfg.password},
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as exc:
            raise ShiprocketAuthError(f"Shiprocket Auth Failed: {exc}") from exc
        if r.status_code >= 400:
            raise ShiprocketAuthError(f"Shiprocket Auth Failed: {r.status_code} {r.text[:300]}")

        data = r.json()
        token = str((data or {}).get("token") or "").strip() if isinstance(data, dict) else ""
        if not token:
            raise ShiprocketAuthError("Shiprocket Auth Failed: no token in response")
        return token

    def _ensure_token(self) -> str:
        return self.token_cache.get_or_refresh(self.login)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._ensure_token()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, *, what: str, timeout: int | None = None, **kwargs) -> Any:
        url = f"{self.cfg.base_url}/{path.lstrip('/')}"
        headers = self._headers()
        try:
            r = requests.request(method, url, headers=headers, timeout=timeout or self.cfg.timeout, **kwargs)
        except requests.Timeout as exc:
            raise ShiprocketTimeout(f"Shiprocket {what} timed out") from exc
        except requests.RequestException as exc:
            raise ShiprocketApiError(f"Shiprocket {what} failed: {exc}") from exc
        if r.status_code >= 400:
            raise ShiprocketApiError(f"Shiprocket {what} failed: {r.status_code} {r.text[:300]}")
        return r.json()

    def create_adhoc_order(self, *, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._request("POST", "orders/create/adhoc", what="create order", json=payload)
        if not isinstance(data, dict):
            raise ShiprocketApiError("Shiprocket create order: unexpected response")
        return data

    def assign_awb(self, *, shipment_id: int | str) -> dict[str, Any]:
        data = self._request("POST", "courier/assign/awb", what="assign AWB", json={"shipment_id": shipment_id})
        if not isinstance(data, dict):
            raise ShiprocketApiError("Shiprocket assign AWB: unexpected response")
        return data

    def generate_label(self, *, shipment_id: int | str) -> dict[str, Any]:
        data = self._request("POST", "courier/generate/label", what="generate label", json={"shipment_id": [shipment_id]})
        if not isinstance(data, dict):
            raise ShiprocketApiError("Shiprocket generate label: unexpected response")
        return data

    def serviceability(
        self,
        *,
        delivery_postcode: str,
        weight: str = "0.5",
        cod: bool = True,
        declared_value: int = 250,
        timeout: int | None = None,
    ) -> dict[str, Any]:
        params = {
            "pickup_postcode": self.cfg.pickup_pincode,
            "delivery_postcode": delivery_postcode,
            "weight": weight,
            "cod": 1 if cod else 0,
            "declared_value": int(declared_value),
        }
        data = self._request(
            "GET",
            "courier/serviceability/",
            what="serviceability",
            timeout=timeout,
            params=params,
        )
        if not isinstance(data, dict):
            raise ShiprocketApiError("Shiprocket serviceability: unexpected response")
        return data
