import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth.models import User
from django.test import TestCase, override_settings
from django.utils import timezone

from checkout.models import Order, OrderItem
from catalog.models import Product

from .services.razorpay import (
    RazorpayApiError,
    RazorpayClient,
    RazorpayConfig,
    verify_payment_signature,
    verify_webhook_signature,
)


def sign(secret, message):
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class SignatureTest(TestCase):
    def test_payment_signature(self):
        sig = sign("rzp_test_secret", "order_1|pay_1")
        self.assertTrue(verify_payment_signature(order_ref="order_1", payment_ref="pay_1", signature=sig))
        self.assertFalse(verify_payment_signature(order_ref="order_1", payment_ref="pay_2", signature=sig))

    def test_missing_parts_fail(self):
        self.assertFalse(verify_payment_signature(order_ref="", payment_ref="pay_1", signature="abc"))
        self.assertFalse(verify_payment_signature(order_ref="order_1", payment_ref="pay_1", signature=""))

    @override_settings(RAZORPAY_KEY_SECRET="")
    def test_unconfigured_secret_never_verifies(self):
        self.assertFalse(verify_payment_signature(order_ref="order_1", payment_ref="pay_1", signature=sign("", "order_1|pay_1")))

    def test_webhook_signature_is_over_raw_body(self):
        body = b'{"event":"payment.captured"}'
        self.assertTrue(verify_webhook_signature(body=body, signature=sign("rzp_webhook_secret", body)))
        self.assertFalse(verify_webhook_signature(body=body + b" ", signature=sign("rzp_webhook_secret", body)))


class RazorpayClientTest(TestCase):
    def setUp(self):
        self.cfg = RazorpayConfig(
            base_url="https://rzp.test/v1",
            key_id="key",
            key_secret="secret",
            webhook_secret="wh",
            timeout=5,
        )

    @mock.patch("payments.services.razorpay.requests.post")
    def test_create_order(self, post):
        post.return_value = mock.Mock(status_code=200, json=mock.Mock(return_value={"id": "order_X", "amount": 45000}))

        data = RazorpayClient(self.cfg).create_order(amount_minor=45000, currency="INR", receipt="rcpt_1")

        self.assertEqual(data["id"], "order_X")
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://rzp.test/v1/orders")
        self.assertEqual(kwargs["json"]["amount"], 45000)
        self.assertEqual(kwargs["auth"], ("key", "secret"))
        self.assertEqual(kwargs["timeout"], 5)

    @mock.patch("payments.services.razorpay.requests.post")
    def test_error_status(self, post):
        post.return_value = mock.Mock(status_code=401, text="bad key")
        with self.assertRaises(RazorpayApiError):
            RazorpayClient(self.cfg).create_order(amount_minor=100, currency="INR", receipt="r")


class PaymentEndpointsTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="asha@example.com", email="asha@example.com", password="x")
        self.product = Product.objects.create(title="Cat Sticker", slug="cat", price=Decimal("100.00"), stock=10)
        self.order = Order.objects.create(
            user=self.user,
            status=Order.Status.PENDING,
            customer_name="Asha Verma",
            email="asha@example.com",
            phone="9876543210",
            subtotal=Decimal("500.00"),
            discount_amount=Decimal("50.00"),
            amount=Decimal("450.00"),
            gateway_order_id="order_RZP1",
            expires_at=timezone.now() + timedelta(minutes=15),
        )
        OrderItem.objects.create(
            order=self.order,
            product=self.product,
            product_ref=str(self.product.id),
            title="Cat Sticker",
            price=Decimal("100.00"),
            quantity=5,
        )

    def verify(self, signature=None, payment_id="pay_1"):
        payload = {
            "razorpay_order_id": "order_RZP1",
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature or sign("rzp_test_secret", f"order_RZP1|{payment_id}"),
        }
        return self.client.post("/api/payments/razorpay/verify", data=json.dumps(payload), content_type="application/json")

    def webhook(self, event, *, signature=None):
        body = json.dumps(event).encode("utf-8")
        return self.client.post(
            "/api/payments/razorpay/webhook",
            data=body,
            content_type="application/json",
            HTTP_X_RAZORPAY_SIGNATURE=signature or sign("rzp_webhook_secret", body),
        )

    def captured(self, amount=45000, order_id="order_RZP1"):
        return {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_wh", "order_id": order_id, "amount": amount}}},
        }

    @mock.patch("checkout.services.RazorpayClient")
    def test_verify_marks_paid(self, client_cls):
        client_cls.return_value.fetch_order.return_value = {"id": "order_RZP1", "amount": 45000}

        r = self.verify()

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "PAID")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.gateway_payment_id, "pay_1")

    @mock.patch("checkout.services.RazorpayClient")
    def test_verify_twice_is_safe(self, client_cls):
        client_cls.return_value.fetch_order.return_value = {"id": "order_RZP1", "amount": 45000}
        self.verify()

        r = self.verify()

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["message"], "Order already verified")
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 5)

    def test_verify_bad_signature(self):
        r = self.verify(signature="0" * 64)
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Invalid Signature")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_webhook_captures_payment_after_expiry(self):
        Order.objects.filter(id=self.order.id).update(expires_at=timezone.now() - timedelta(hours=1))

        r = self.webhook(self.captured())

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["message"], "Payment captured")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.gateway_payment_id, "pay_wh")

    def test_webhook_amount_mismatch(self):
        r = self.webhook(self.captured(amount=100))
        self.assertEqual(r.status_code, 400)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_webhook_bad_signature(self):
        r = self.webhook(self.captured(), signature="nope")
        self.assertEqual(r.status_code, 401)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_webhook_other_events_are_acknowledged(self):
        r = self.webhook({"event": "payment.failed", "payload": {}})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["message"], "Event ignored")

    def test_webhook_unknown_order_is_acknowledged(self):
        r = self.webhook(self.captured(order_id="order_other"))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["message"], "Order not found")
