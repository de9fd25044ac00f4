from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ninja import Field, Schema


class CartItemIn(Schema):
    productId: str | int | None = None
    quantity: int = Field(..., gt=0)
    isCustom: bool = False
    customPrice: Decimal | None = None
    customTitle: str | None = None
    customImage: str | None = None


class CustomerDetailsIn(Schema):
    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str


class OrderCreateIn(Schema):
    items: list[CartItemIn]
    couponCode: str | None = None
    customerDetails: CustomerDetailsIn
    paymentMethod: str


class OrderCreateOut(Schema):
    success: bool = True
    dbOrderId: int
    amount: int | None = None
    currency: str | None = None
    gatewayOrderId: str | None = None
    razorpayKeyId: str | None = None


class QuoteIn(Schema):
    items: list[CartItemIn]
    couponCode: str | None = None
    paymentMethod: str = "prepaid"


class QuoteOut(Schema):
    subtotal: Decimal
    couponCode: str | None = None
    couponDiscount: Decimal
    prepaidDiscount: Decimal
    discount: Decimal
    shippingCost: Decimal
    paymentFee: Decimal
    total: Decimal


class OrderItemOut(Schema):
    productRef: str
    title: str
    price: Decimal
    quantity: int
    image: str = ""
    isCustom: bool = False


class OrderOut(Schema):
    id: int
    status: str
    paymentMethod: str
    customerName: str
    email: str
    phone: str
    shippingAddress: str
    subtotal: Decimal
    discountAmount: Decimal
    shippingCost: Decimal
    paymentFee: Decimal
    amount: Decimal
    couponCode: str = ""
    trackingNumber: str = ""
    courierName: str = ""
    labelUrl: str = ""
    createdAt: datetime
    expiresAt: datetime | None = None
    items: list[OrderItemOut]


class VerifyCodIn(Schema):
    otp: str


class AdminStatusIn(Schema):
    status: str


class AdminStatusOut(Schema):
    success: bool = True
    id: int
    status: str
