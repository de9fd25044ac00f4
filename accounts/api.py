from __future__ import annotations

from django.conf import settings
from django.contrib.auth import authenticate
from django.http import JsonResponse
from ninja import Router

from api.errors import Unauthorized

from .auth import JWTAuth
from .jwt_utils import issue_access_token
from .otp import send_phone_otp
from .schemas import LoginIn, MeOut, PhoneOTPSendIn, StatusOut

router = Router(tags=["auth"])
auth = JWTAuth()


def _cookie_samesite() -> str:
    v = (getattr(settings, "AUTH_COOKIE_SAMESITE", "lax") or "lax").lower()
    if v == "strict":
        return "Strict"
    if v == "none":
        return "None"
    return "Lax"


def _cookie_secure(request) -> bool:
    explicit = getattr(settings, "AUTH_COOKIE_SECURE", None)
    if explicit is True or explicit is False:
        return bool(explicit)
    return bool(request.is_secure())


def _set_auth_cookie(request, response: JsonResponse, *, access: str) -> None:
    response.set_cookie(
        getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "access_token"),
        access,
        httponly=True,
        secure=_cookie_secure(request),
        samesite=_cookie_samesite(),
        domain=getattr(settings, "AUTH_COOKIE_DOMAIN", None) or None,
        path="/",
    )


@router.post("/login", response=StatusOut)
def login(request, payload: LoginIn):
    user = authenticate(request, username=payload.email.strip(), password=payload.password)
    if user is None:
        raise Unauthorized("Invalid credentials")

    resp = JsonResponse({"status": "ok"})
    _set_auth_cookie(request, resp, access=issue_access_token(user_id=user.id))
    return resp


@router.post("/logout", response=StatusOut)
def logout(request):
    resp = JsonResponse({"status": "ok"})
    resp.delete_cookie(
        getattr(settings, "AUTH_COOKIE_ACCESS_NAME", "access_token"),
        path="/",
        domain=getattr(settings, "AUTH_COOKIE_DOMAIN", None) or None,
    )
    return resp


@router.get("/me", response=MeOut, auth=auth)
def me(request):
    user = request.auth
    return MeOut(
        id=user.id,
        email=user.email or "",
        first_name=user.first_name or "",
        last_name=user.last_name or "",
        is_staff=bool(user.is_staff),
    )


@router.post("/otp/send", response=StatusOut)
def otp_send(request, payload: PhoneOTPSendIn):
    send_phone_otp(phone=payload.phone)
    return {"status": "ok"}
