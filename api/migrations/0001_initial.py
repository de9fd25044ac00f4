from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StoreSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("free_shipping_threshold", models.DecimalField(decimal_places=2, default=Decimal("499.00"), max_digits=10)),
                ("shipping_charge", models.DecimalField(decimal_places=2, default=Decimal("49.00"), max_digits=10)),
                ("hero_image", models.URLField(blank=True, default="")),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Store settings",
                "verbose_name_plural": "Store settings",
            },
        ),
    ]
