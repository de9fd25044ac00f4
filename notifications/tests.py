from decimal import Decimal
from unittest import mock

from django.contrib.auth.models import User
from django.core import mail
from django.test import TestCase

from checkout.models import Order, OrderItem

from .models import EmailTemplate, OutboundEmail
from .services import send_order_confirmation, send_templated_email


class SendTemplatedEmailTest(TestCase):
    def test_renders_and_logs(self):
        EmailTemplate.objects.create(key="hello", subject="Hi {{ name }}", body_text="Body for {{ name }}")

        result = send_templated_email(template_key="hello", to_email="a@example.com", context={"name": "Asha"})

        self.assertTrue(result.ok)
        self.assertEqual(mail.outbox[0].subject, "Hi Asha")
        self.assertEqual(OutboundEmail.objects.get(id=result.outbound_id).status, OutboundEmail.Status.SENT)

    def test_missing_template(self):
        result = send_templated_email(template_key="missing", to_email="a@example.com")
        self.assertFalse(result.ok)
        self.assertEqual(len(mail.outbox), 0)
        self.assertEqual(OutboundEmail.objects.get(id=result.outbound_id).status, OutboundEmail.Status.FAILED)

    def test_smtp_failure_is_recorded(self):
        EmailTemplate.objects.create(key="hello", subject="Hi", body_text="Body")
        with mock.patch("notifications.services.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            result = send_templated_email(template_key="hello", to_email="a@example.com")
        self.assertFalse(result.ok)
        self.assertIn("smtp down", result.error)


class OrderConfirmationTest(TestCase):
    def test_seeded_template_renders_order(self):
        user = User.objects.create_user(username="asha@example.com", email="asha@example.com", password="x")
        order = Order.objects.create(
            user=user,
            status=Order.Status.PAID,
            customer_name="Asha Verma",
            email="asha@example.com",
            phone="9876543210",
            shipping_line1="12 MG Road",
            shipping_city="Jaipur",
            shipping_state="Rajasthan",
            shipping_pincode="302001",
            subtotal=Decimal("500.00"),
            discount_amount=Decimal("50.00"),
            amount=Decimal("450.00"),
        )
        OrderItem.objects.create(order=order, product_ref="1", title="Cat Sticker", price=Decimal("100.00"), quantity=5)

        result = send_order_confirmation(order_id=order.id)

        self.assertTrue(result.ok)
        msg = mail.outbox[0]
        self.assertEqual(msg.to, ["asha@example.com"])
        self.assertIn("Cat Sticker x5", msg.body)
        self.assertIn("Total: ₹450.00", msg.body)
        self.assertIn("12 MG Road, Jaipur, Rajasthan - 302001", msg.body)
