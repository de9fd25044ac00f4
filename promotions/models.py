from __future__ import annotations

from decimal import Decimal

from django.db import models

from pricing.services import quantize_money


class Coupon(models.Model):
    class DiscountType(models.TextChoices):
        PERCENTAGE = "PERCENTAGE", "Percentage"
        FLAT = "FLAT", "Flat amount"

    # Stored uppercase; lookups normalise the same way.
    code = models.CharField(max_length=40, unique=True)

    discount_type = models.CharField(
        max_length=16, choices=DiscountType.choices, default=DiscountType.FLAT)
    value = models.DecimalField(max_digits=10, decimal_places=2)
    min_order_value = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00"))

    # null = unlimited
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    start_at = models.DateTimeField(null=True, blank=True)
    end_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]

    def __str__(self) -> str:
        return self.code

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)

    def is_valid_now(self, *, now=None) -> bool:
        from django.utils import timezone

        now = now or timezone.now()
        if not self.is_active:
            return False
        if self.start_at and now < self.start_at:
            return False
        if self.end_at and now > self.end_at:
            return False
        return True

    def is_exhausted(self) -> bool:
        if self.usage_limit is None:
            return False
        return int(self.used_count) >= int(self.usage_limit)

    def get_discount_for(self, *, subtotal: Decimal) -> Decimal:
        subtotal = Decimal(subtotal or 0)
        if subtotal <= 0:
            return Decimal("0.00")

        value = Decimal(self.value or 0)
        if value <= 0:
            return Decimal("0.00")

        if self.discount_type == self.DiscountType.PERCENTAGE:
            pct = max(Decimal(0), min(Decimal(100), value))
            discount = subtotal * pct / Decimal(100)
        else:
            discount = value

        return quantize_money(min(subtotal, discount))


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()
