from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=[("UNVERIFIED", "Awaiting verification"), ("PENDING", "Awaiting payment"), ("PAID", "Paid"), ("PROCESSING", "Processing"), ("PRINTING", "Printing"), ("SHIPPED", "Shipped"), ("DELIVERED", "Delivered"), ("CANCELLED", "Cancelled"), ("REFUNDED", "Refunded")], default="PENDING", max_length=16)),
                ("payment_method", models.CharField(choices=[("prepaid", "Prepaid"), ("cod", "Cash on delivery")], default="prepaid", max_length=16)),
                ("currency", models.CharField(default="INR", max_length=3)),
                ("customer_name", models.CharField(max_length=200)),
                ("email", models.EmailField(max_length=254)),
                ("phone", models.CharField(db_index=True, max_length=20)),
                ("shipping_line1", models.CharField(blank=True, default="", max_length=255)),
                ("shipping_city", models.CharField(blank=True, default="", max_length=120)),
                ("shipping_state", models.CharField(blank=True, default="", max_length=120)),
                ("shipping_pincode", models.CharField(blank=True, default="", max_length=6)),
                ("shipping_address_text", models.TextField(blank=True, default="")),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("shipping_cost", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("payment_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("coupon_code", models.CharField(blank=True, default="", max_length=40)),
                ("gateway_order_id", models.CharField(blank=True, default="", max_length=80)),
                ("gateway_payment_id", models.CharField(blank=True, default="", max_length=80)),
                ("shipment_id", models.CharField(blank=True, default="", max_length=80)),
                ("tracking_number", models.CharField(blank=True, default="", max_length=64)),
                ("courier_name", models.CharField(blank=True, default="", max_length=120)),
                ("label_url", models.URLField(blank=True, default="", max_length=500)),
                ("shipped_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "-created_at"], name="checkout_or_user_id_5b1c2e_idx"),
                    models.Index(fields=["status", "-created_at"], name="checkout_or_status_8d4f1a_idx"),
                    models.Index(fields=["phone", "status"], name="checkout_or_phone_3e7a9c_idx"),
                    models.Index(fields=["gateway_order_id"], name="checkout_or_gateway_6c2d0b_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_ref", models.CharField(max_length=64)),
                ("title", models.CharField(max_length=255)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField()),
                ("image", models.URLField(blank=True, default="", max_length=500)),
                ("is_custom", models.BooleanField(default=False)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="checkout.order")),
                ("product", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="order_items", to="catalog.product")),
            ],
            options={
                "ordering": ["id"],
            },
        ),
    ]
