from __future__ import annotations

from ninja import Schema


class LoginIn(Schema):
    email: str
    password: str


class PhoneOTPSendIn(Schema):
    phone: str


class StatusOut(Schema):
    status: str


class MeOut(Schema):
    id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    is_staff: bool = False
