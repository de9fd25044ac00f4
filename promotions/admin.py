from __future__ import annotations

from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_type",
        "value",
        "min_order_value",
        "is_active",
        "usage_limit",
        "used_count",
        "start_at",
        "end_at",
    )

    search_fields = ("code",)
    list_filter = ("is_active", "discount_type")
    readonly_fields = ("used_count", "created_at", "updated_at")
    fieldsets = (
        (None, {"fields": ("code", "is_active", "start_at", "end_at")}),
        ("Discount", {"fields": ("discount_type", "value", "min_order_value")}),
        ("Usage limits", {"fields": ("usage_limit", "used_count")}),
        ("Meta", {"fields": ("created_at", "updated_at")}),
    )
