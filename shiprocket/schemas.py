from __future__ import annotations

from ninja import Schema


class PincodeCheckIn(Schema):
    pincode: str


class PincodeCheckOut(Schema):
    success: bool = True
    city: str
    state: str
    date: str
    cod: bool
    isExpress: bool


class GenerateLabelIn(Schema):
    orderId: int


class GenerateLabelOut(Schema):
    success: bool = True
    awb: str
    courier: str
    label_url: str
    message: str = "Label generated"


class FailureOut(Schema):
    success: bool = False
    message: str
