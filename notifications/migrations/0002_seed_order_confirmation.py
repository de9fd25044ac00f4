from django.db import migrations


def seed_order_confirmation_template(apps, schema_editor):
    EmailTemplate = apps.get_model("notifications", "EmailTemplate")

    EmailTemplate.objects.update_or_create(
        key="order_confirmation",
        defaults={
            "name": "Order confirmation",
            "subject": "Order #{{ order_id }} confirmed",
            "body_text": (
                "Hi {{ customer_name }},\n\n"
                "Thanks for your order! We have received your payment.\n\n"
                "{% for item in items %}{{ item.title }} x{{ item.quantity }}: ₹{{ item.line_total }}\n{% endfor %}\n"
                "Subtotal: ₹{{ subtotal }}\n"
                "Discount: -₹{{ discount }}\n"
                "Shipping: ₹{{ shipping }}\n"
                "{% if payment_fee != '0.00' %}COD fee: ₹{{ payment_fee }}\n{% endif %}"
                "Total: ₹{{ amount }}\n\n"
                "Shipping to: {{ shipping_address }}\n"
            ),
            "body_html": "",
            "is_active": True,
        },
    )


class Migration(migrations.Migration):
    dependencies = [
        ("notifications", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_order_confirmation_template,
                             migrations.RunPython.noop),
    ]
