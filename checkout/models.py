from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models


class Order(models.Model):
    class Status(models.TextChoices):
        UNVERIFIED = "UNVERIFIED", "Awaiting verification"
        PENDING = "PENDING", "Awaiting payment"
        PAID = "PAID", "Paid"
        PROCESSING = "PROCESSING", "Processing"
        PRINTING = "PRINTING", "Printing"
        SHIPPED = "SHIPPED", "Shipped"
        DELIVERED = "DELIVERED", "Delivered"
        CANCELLED = "CANCELLED", "Cancelled"
        REFUNDED = "REFUNDED", "Refunded"

    class PaymentMethod(models.TextChoices):
        PREPAID = "prepaid", "Prepaid"
        COD = "cod", "Cash on delivery"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(
        max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.PREPAID)

    currency = models.CharField(max_length=3, default="INR")

    # Customer snapshot
    customer_name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=20, db_index=True)

    # Shipping address snapshot
    shipping_line1 = models.CharField(max_length=255, blank=True, default="")
    shipping_city = models.CharField(max_length=120, blank=True, default="")
    shipping_state = models.CharField(max_length=120, blank=True, default="")
    shipping_pincode = models.CharField(max_length=6, blank=True, default="")
    # Legacy free-text address; only read when the structured fields are empty.
    shipping_address_text = models.TextField(blank=True, default="")

    # Totals; amount == subtotal - discount_amount + shipping_cost + payment_fee
    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_cost = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"))
    payment_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"))
    amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"))

    coupon_code = models.CharField(max_length=40, blank=True, default="")

    # Payment gateway
    gateway_order_id = models.CharField(max_length=80, blank=True, default="")
    gateway_payment_id = models.CharField(max_length=80, blank=True, default="")

    # Logistics (empty until shipped)
    shipment_id = models.CharField(max_length=80, blank=True, default="")
    tracking_number = models.CharField(max_length=64, blank=True, default="")
    courier_name = models.CharField(max_length=120, blank=True, default="")
    label_url = models.URLField(max_length=500, blank=True, default="")
    shipped_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "-created_at"], name="checkout_or_user_id_5b1c2e_idx"),
            models.Index(fields=["status", "-created_at"], name="checkout_or_status_8d4f1a_idx"),
            models.Index(fields=["phone", "status"], name="checkout_or_phone_3e7a9c_idx"),
            models.Index(fields=["gateway_order_id"], name="checkout_or_gateway_6c2d0b_idx"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"order:{self.id} user:{self.user_id} {self.status}"

    @property
    def shipping_address(self) -> str:
        parts = [self.shipping_line1, self.shipping_city, self.shipping_state]
        composed = ", ".join(p for p in parts if p)
        if composed and self.shipping_pincode:
            return f"{composed} - {self.shipping_pincode}"
        return composed or self.shipping_address_text

    @property
    def amount_minor(self) -> int:
        return int(Decimal(self.amount) * 100)


class OrderItem(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "catalog.Product",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="order_items",
    )

    # Stable reference even when the product row goes away; synthetic for custom packs.
    product_ref = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    image = models.URLField(max_length=500, blank=True, default="")
    is_custom = models.BooleanField(default=False)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.title} x{self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return (Decimal(self.price) * int(self.quantity)).quantize(Decimal("0.01"))
