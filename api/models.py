from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models


class StoreSettings(models.Model):
    """Storefront-wide knobs managed in admin.

    Singleton: 0 or 1 row. Without a row the env defaults apply.
    """

    free_shipping_threshold = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("499.00"))
    shipping_charge = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("49.00"))
    hero_image = models.URLField(blank=True, default="")

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Store settings"
        verbose_name_plural = "Store settings"

    def __str__(self) -> str:
        return "Store settings"

    @classmethod
    def get_solo(cls) -> "StoreSettings":
        obj = cls.objects.order_by("id").first()
        if obj:
            return obj
        return cls.objects.create()

    @classmethod
    def shipping_config(cls) -> tuple[Decimal, Decimal]:
        obj = cls.objects.order_by("id").first()
        if obj is not None:
            return Decimal(obj.free_shipping_threshold), Decimal(obj.shipping_charge)
        return (
            Decimal(str(getattr(settings, "FREE_SHIPPING_THRESHOLD", "499"))),
            Decimal(str(getattr(settings, "SHIPPING_CHARGE", "49"))),
        )
