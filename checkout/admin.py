from __future__ import annotations

from django.contrib import admin
from django.contrib import messages
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404, redirect
from django.urls import path, reverse

from api.errors import PipelineError

from .models import Order, OrderItem
from .services import set_order_status_by_admin


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "product_ref", "title", "price", "quantity", "image", "is_custom")

    def has_add_permission(self, request, obj=None):
        return False


def _actor(request: HttpRequest) -> str:
    user = request.user
    return getattr(user, "email", "") or getattr(user, "username", "") or f"user:{user.pk}"


def _bulk_status(modeladmin, request: HttpRequest, queryset, status: str) -> None:
    ok = 0
    for order in queryset.only("id"):
        try:
            set_order_status_by_admin(order_id=order.id, status=status, actor=_actor(request))
            ok += 1
        except PipelineError as e:
            modeladmin.message_user(request, f"Order #{order.id}: {e.message}", level=messages.ERROR)
    if ok:
        modeladmin.message_user(request, f"{ok} order(s) moved to {status}.", level=messages.SUCCESS)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "customer_name",
        "phone",
        "payment_method",
        "status",
        "amount",
        "tracking_number",
        "created_at",
    )
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("id", "customer_name", "email", "phone", "gateway_order_id", "tracking_number")
    date_hierarchy = "created_at"
    inlines = (OrderItemInline,)

    # Status only moves through the transition actions below.
    readonly_fields = (
        "user",
        "status",
        "payment_method",
        "currency",
        "subtotal",
        "discount_amount",
        "shipping_cost",
        "payment_fee",
        "amount",
        "coupon_code",
        "gateway_order_id",
        "gateway_payment_id",
        "shipment_id",
        "tracking_number",
        "courier_name",
        "label_url",
        "shipped_at",
        "expires_at",
        "created_at",
        "updated_at",
    )

    actions = (
        "mark_processing",
        "mark_printing",
        "mark_delivered",
        "mark_cancelled",
        "mark_refunded",
        "generate_shiprocket_label",
    )

    def has_add_permission(self, request, obj=None):
        return False

    def get_urls(self):
        urls = super().get_urls()
        custom = [
            path(
                "<path:object_id>/shiprocket-label/",
                self.admin_site.admin_view(self.generate_label_view),
                name="checkout_order_generate_label",
            ),
        ]
        return custom + urls

    def generate_label_view(self, request: HttpRequest, object_id: str) -> HttpResponse:
        from shiprocket.labels import LabelError, generate_label_for_order

        order = get_object_or_404(Order, pk=object_id)
        try:
            result = generate_label_for_order(order_id=order.id, actor=_actor(request))
            messages.success(request, f"AWB {result.awb} assigned ({result.courier}).")
            if result.label_url:
                return redirect(result.label_url)
        except (LabelError, PipelineError) as e:
            messages.error(request, f"Could not generate label: {e.message}")

        return redirect(reverse("admin:checkout_order_change", args=[order.pk]))

    @admin.action(description="Mark selected as PROCESSING")
    def mark_processing(self, request, queryset):
        _bulk_status(self, request, queryset, Order.Status.PROCESSING)

    @admin.action(description="Mark selected as PRINTING")
    def mark_printing(self, request, queryset):
        _bulk_status(self, request, queryset, Order.Status.PRINTING)

    @admin.action(description="Mark selected as DELIVERED")
    def mark_delivered(self, request, queryset):
        _bulk_status(self, request, queryset, Order.Status.DELIVERED)

    @admin.action(description="Cancel selected orders")
    def mark_cancelled(self, request, queryset):
        _bulk_status(self, request, queryset, Order.Status.CANCELLED)

    @admin.action(description="Mark selected as REFUNDED")
    def mark_refunded(self, request, queryset):
        _bulk_status(self, request, queryset, Order.Status.REFUNDED)

    @admin.action(description="Generate Shiprocket label (one order)")
    def generate_shiprocket_label(self, request: HttpRequest, queryset):
        from shiprocket.labels import LabelError, generate_label_for_order

        ids = list(queryset.values_list("id", flat=True)[:2])
        if len(ids) != 1:
            self.message_user(request, "Select exactly one order to generate a label.", level=messages.ERROR)
            return None

        try:
            result = generate_label_for_order(order_id=ids[0], actor=_actor(request))
        except (LabelError, PipelineError) as e:
            self.message_user(request, f"Order #{ids[0]}: {e.message}", level=messages.ERROR)
            return None

        self.message_user(request, f"Order #{ids[0]}: AWB {result.awb} ({result.courier}).", level=messages.SUCCESS)
        return None
