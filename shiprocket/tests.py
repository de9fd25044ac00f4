import json
import threading
import time
from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings

from accounts.jwt_utils import issue_access_token
from checkout.models import Order, OrderItem

from .client import ShiprocketApiError, ShiprocketClient, ShiprocketConfig, ShiprocketTimeout
from .labels import LabelError, _lock_key, build_order_payload, generate_label_for_order, parse_address
from .serviceability import ServiceabilityError, check_pincode
from .tokens import DjangoCacheTokenCache, ProcessTokenCache, build_token_cache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TokenCacheTest(SimpleTestCase):
    def test_token_is_reused_until_expiry(self):
        clock = FakeClock()
        tokens = ProcessTokenCache(ttl_seconds=60, clock=clock)
        fetch = mock.Mock(side_effect=["tok-1", "tok-2"])

        self.assertEqual(tokens.get_or_refresh(fetch), "tok-1")
        clock.now += 59
        self.assertEqual(tokens.get_or_refresh(fetch), "tok-1")
        clock.now += 2
        self.assertEqual(tokens.get_or_refresh(fetch), "tok-2")
        self.assertEqual(fetch.call_count, 2)

    def test_concurrent_callers_share_one_refresh(self):
        tokens = ProcessTokenCache(ttl_seconds=3600)
        calls = []

        def slow_fetch():
            calls.append(1)
            time.sleep(0.05)
            return "tok"

        results = []
        threads = [threading.Thread(target=lambda: results.append(tokens.get_or_refresh(slow_fetch))) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results, ["tok"] * 8)
        self.assertEqual(len(calls), 1)

    def test_failed_fetch_is_not_cached(self):
        tokens = ProcessTokenCache(ttl_seconds=60)
        fetch = mock.Mock(side_effect=[ShiprocketApiError("down"), "tok"])
        with self.assertRaises(ShiprocketApiError):
            tokens.get_or_refresh(fetch)
        self.assertEqual(tokens.get_or_refresh(fetch), "tok")

    @override_settings(SHIPROCKET_TOKEN_CACHE="django")
    def test_django_mode(self):
        self.assertIsInstance(build_token_cache(), DjangoCacheTokenCache)

    def test_shared_cache_survives_new_instances(self):
        cache.clear()
        fetch = mock.Mock(return_value="shared")
        DjangoCacheTokenCache(ttl_seconds=60).get_or_refresh(fetch)
        self.assertEqual(DjangoCacheTokenCache(ttl_seconds=60).get_or_refresh(fetch), "shared")
        self.assertEqual(fetch.call_count, 1)


def response(status_code=200, payload=None, text=""):
    return mock.Mock(status_code=status_code, json=mock.Mock(return_value=payload or {}), text=text)


class ShiprocketClientTest(SimpleTestCase):
    def setUp(self):
        self.cfg = ShiprocketConfig(
            base_url="https://sr.test/v1/external",
            email="ops@example.com",
            password="pw",
            pickup_location="Primary",
            pickup_pincode="332001",
        )

    @mock.patch("shiprocket.client.requests.request")
    @mock.patch("shiprocket.client.requests.post")
    def test_logs_in_once_for_many_calls(self, post, request):
        post.return_value = response(payload={"token": "abc"})
        request.return_value = response(payload={"shipment_id": 1})
        client = ShiprocketClient(cfg=self.cfg, token_cache=ProcessTokenCache(ttl_seconds=3600))

        client.create_adhoc_order(payload={})
        client.assign_awb(shipment_id=1)

        self.assertEqual(post.call_count, 1)
        self.assertEqual(request.call_args.kwargs["headers"]["Authorization"], "Bearer abc")

    @mock.patch("shiprocket.client.requests.post")
    def test_login_failure(self, post):
        post.return_value = response(status_code=403, text="bad creds")
        client = ShiprocketClient(cfg=self.cfg, token_cache=ProcessTokenCache(ttl_seconds=3600))
        with self.assertRaisesMessage(ShiprocketApiError, "Shiprocket Auth Failed"):
            client.assign_awb(shipment_id=1)

    @mock.patch("shiprocket.client.requests.request", side_effect=requests.Timeout("slow"))
    def test_timeout_is_distinguished(self, request):
        tokens = ProcessTokenCache(ttl_seconds=3600)
        client = ShiprocketClient(cfg=self.cfg, token_cache=tokens)
        with mock.patch.object(client, "login", return_value="abc"):
            with self.assertRaises(ShiprocketTimeout):
                client.serviceability(delivery_postcode="110001", timeout=3)
        self.assertEqual(request.call_args.kwargs["timeout"], 3)


class ParseAddressTest(SimpleTestCase):
    def test_full_address(self):
        a = parse_address("12 MG Road, Jaipur, Rajasthan - 302017")
        self.assertEqual(a.pincode, "302017")
        self.assertEqual(a.city, "Jaipur")
        self.assertEqual(a.state, "Rajasthan")

    def test_fallbacks(self):
        a = parse_address("somewhere")
        self.assertEqual(a.pincode, "302001")
        self.assertEqual(a.city, "Other")


def serviceability_payload(*couriers, city="New Delhi", state="Delhi"):
    return {"data": {"city": city, "state": state, "available_courier_companies": list(couriers)}}


class CheckPincodeTest(SimpleTestCase):
    def test_fastest_courier_wins(self):
        client = mock.Mock()
        client.serviceability.return_value = serviceability_payload(
            {"courier_name": "Slow", "estimated_delivery_days": "6", "cod": 1, "etd": "Jan 10, 2026"},
            {"courier_name": "Fast", "estimated_delivery_days": "2", "cod": 0, "etd": "Jan 06, 2026"},
        )

        result = check_pincode(pincode="110001", client=client)

        self.assertEqual(result.courier, "Fast")
        self.assertTrue(result.is_express)
        self.assertFalse(result.cod)
        self.assertEqual(result.date, "Tue, 06 Jan")
        self.assertEqual(result.city, "New Delhi")

    def test_invalid_format(self):
        client = mock.Mock()
        with self.assertRaisesMessage(ServiceabilityError, "Invalid Pincode format"):
            check_pincode(pincode="12AB", client=client)
        client.serviceability.assert_not_called()

    def test_no_couriers(self):
        client = mock.Mock()
        client.serviceability.return_value = serviceability_payload()
        with self.assertRaisesMessage(ServiceabilityError, "Delivery not available to this pincode."):
            check_pincode(pincode="110001", client=client)

    def test_timeout(self):
        client = mock.Mock()
        client.serviceability.side_effect = ShiprocketTimeout("slow")
        with self.assertRaises(ServiceabilityError) as ctx:
            check_pincode(pincode="110001", client=client)
        self.assertEqual(ctx.exception.status_code, 504)


def fake_shiprocket(awb="AWB123"):
    client = mock.Mock()
    client.create_adhoc_order.return_value = {"order_id": 9, "shipment_id": 555}
    client.assign_awb.return_value = {
        "awb_assign_status": 1,
        "response": {"data": {"awb_code": awb, "courier_name": "Delhivery"}},
    }
    client.generate_label.return_value = {"label_created": 1, "label_url": "https://labels.test/555.pdf"}
    return client


class ShippingTestBase(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="asha@example.com", email="asha@example.com", password="x")
        self.order = Order.objects.create(
            user=self.user,
            status=Order.Status.PAID,
            customer_name="Asha Kumari Verma",
            email="asha@example.com",
            phone="9876543210",
            shipping_line1="12 MG Road",
            shipping_city="Jaipur",
            shipping_state="Rajasthan",
            shipping_pincode="302017",
            subtotal=Decimal("500.00"),
            amount=Decimal("450.00"),
        )
        OrderItem.objects.create(
            order=self.order,
            product_ref="custom-a1b2c3d4",
            title="Custom Sticker Pack",
            price=Decimal("249.00"),
            quantity=2,
            is_custom=True,
        )


class GenerateLabelTest(ShippingTestBase):
    def test_payload_uses_structured_address(self):
        payload = build_order_payload(self.order)
        self.assertEqual(payload["billing_customer_name"], "Asha")
        self.assertEqual(payload["billing_last_name"], "Kumari Verma")
        self.assertEqual(payload["billing_pincode"], "302017")
        self.assertEqual(payload["payment_method"], "Prepaid")
        self.assertEqual(payload["order_items"][0]["sku"], "SKU-B2C3D4")

    def test_happy_path_marks_shipped(self):
        client = fake_shiprocket()
        result = generate_label_for_order(order_id=self.order.id, actor="ops", client=client)

        self.assertEqual(result.awb, "AWB123")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)
        self.assertEqual(self.order.tracking_number, "AWB123")
        self.assertEqual(self.order.courier_name, "Delhivery")
        self.assertEqual(self.order.label_url, "https://labels.test/555.pdf")
        self.assertEqual(self.order.shipment_id, "555")
        self.assertIsNotNone(self.order.shipped_at)
        self.assertIsNone(cache.get(_lock_key(self.order.id)))

    def test_second_request_never_reaches_provider(self):
        generate_label_for_order(order_id=self.order.id, client=fake_shiprocket())
        client = fake_shiprocket("AWB999")

        with self.assertRaises(LabelError) as ctx:
            generate_label_for_order(order_id=self.order.id, client=client)

        self.assertEqual(ctx.exception.status_code, 409)
        client.create_adhoc_order.assert_not_called()
        self.order.refresh_from_db()
        self.assertEqual(self.order.tracking_number, "AWB123")

    def test_unpaid_order_is_refused(self):
        Order.objects.filter(id=self.order.id).update(status=Order.Status.PENDING)
        client = fake_shiprocket()
        with self.assertRaisesMessage(LabelError, "Cannot ship order with status: PENDING"):
            generate_label_for_order(order_id=self.order.id, client=client)
        client.create_adhoc_order.assert_not_called()

    def test_in_flight_request_blocks_another(self):
        cache.add(_lock_key(self.order.id), "other", timeout=60)
        client = fake_shiprocket()
        with self.assertRaises(LabelError) as ctx:
            generate_label_for_order(order_id=self.order.id, client=client)
        self.assertEqual(ctx.exception.status_code, 409)
        client.create_adhoc_order.assert_not_called()

    def test_awb_failure_leaves_order_untouched(self):
        client = fake_shiprocket()
        client.assign_awb.return_value = {"awb_assign_status": 0, "response": {"data": {}}}

        with self.assertRaisesMessage(LabelError, "courier assignment failed"):
            generate_label_for_order(order_id=self.order.id, client=client)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.tracking_number, "")
        self.assertIsNone(cache.get(_lock_key(self.order.id)))

    def test_push_failure(self):
        client = fake_shiprocket()
        client.create_adhoc_order.side_effect = ShiprocketApiError("500")
        from api.errors import ProviderError

        with self.assertRaises(ProviderError):
            generate_label_for_order(order_id=self.order.id, client=client)
        client.assign_awb.assert_not_called()


class ShiprocketApiTest(ShippingTestBase):
    def post(self, url, payload, **extra):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json", **extra)

    @mock.patch("shiprocket.serviceability.ShiprocketClient")
    def test_check_pincode(self, client_cls):
        client_cls.return_value.serviceability.return_value = serviceability_payload(
            {"courier_name": "Fast", "estimated_delivery_days": "4", "cod": "1", "etd": "2026-01-08"},
        )
        r = self.post("/api/shiprocket/check-pincode", {"pincode": "110001"})

        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["cod"])
        self.assertFalse(body["isExpress"])

    @override_settings(PINCODE_RATE_LIMIT=2)
    @mock.patch("shiprocket.serviceability.ShiprocketClient")
    def test_check_pincode_rate_limited(self, client_cls):
        client_cls.return_value.serviceability.return_value = serviceability_payload(
            {"courier_name": "Fast", "estimated_delivery_days": "2", "cod": "1"},
        )
        codes = [self.post("/api/shiprocket/check-pincode", {"pincode": "110001"}).status_code for _ in range(3)]
        self.assertEqual(codes, [200, 200, 429])

    @override_settings(PINCODE_RATE_LIMIT=1)
    @mock.patch("shiprocket.serviceability.ShiprocketClient")
    def test_check_pincode_without_client_address_is_not_throttled(self, client_cls):
        client_cls.return_value.serviceability.return_value = serviceability_payload(
            {"courier_name": "Fast", "estimated_delivery_days": "2", "cod": "1"},
        )
        codes = [
            self.post("/api/shiprocket/check-pincode", {"pincode": "110001"}, REMOTE_ADDR="").status_code
            for _ in range(3)
        ]
        self.assertEqual(codes, [200, 200, 200])

    def test_check_pincode_invalid(self):
        r = self.post("/api/shiprocket/check-pincode", {"pincode": "abc"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json(), {"success": False, "message": "Invalid Pincode format"})

    @mock.patch("shiprocket.labels.ShiprocketClient")
    def test_generate_label_endpoint(self, client_cls):
        client_cls.return_value = fake_shiprocket()
        staff = User.objects.create_user(username="ops@example.com", email="ops@example.com", password="x", is_staff=True)
        headers = {"HTTP_AUTHORIZATION": f"Bearer {issue_access_token(user_id=staff.id)}"}

        r = self.post("/api/shiprocket/generate-label", {"orderId": self.order.id}, **headers)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["awb"], "AWB123")

        r = self.post("/api/shiprocket/generate-label", {"orderId": self.order.id}, **headers)
        self.assertEqual(r.status_code, 409)
        self.assertFalse(r.json()["success"])

    def test_generate_label_requires_staff(self):
        headers = {"HTTP_AUTHORIZATION": f"Bearer {issue_access_token(user_id=self.user.id)}"}
        r = self.post("/api/shiprocket/generate-label", {"orderId": self.order.id}, **headers)
        self.assertEqual(r.status_code, 401)

    def test_tracking_webhook_marks_delivered(self):
        Order.objects.filter(id=self.order.id).update(status=Order.Status.SHIPPED, tracking_number="AWB123")
        headers = {"HTTP_X_API_KEY": "sr-webhook-token"}

        r = self.post("/api/shiprocket/webhook", {"awb": "AWB123", "current_status": "Delivered"}, **headers)
        self.assertEqual(r.json(), {"status": "delivered"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

        r = self.post("/api/shiprocket/webhook", {"awb": "AWB123", "current_status": "DELIVERED"}, **headers)
        self.assertEqual(r.json(), {"status": "duplicate"})

    def test_tracking_webhook_in_transit_is_ignored(self):
        Order.objects.filter(id=self.order.id).update(status=Order.Status.SHIPPED, tracking_number="AWB123")
        r = self.post(
            "/api/shiprocket/webhook",
            {"awb": "AWB123", "current_status": "IN TRANSIT"},
            HTTP_X_API_KEY="sr-webhook-token",
        )
        self.assertEqual(r.json(), {"status": "ignored"})

    def test_tracking_webhook_rejects_bad_token(self):
        r = self.post("/api/shiprocket/webhook", {"awb": "AWB123"}, HTTP_X_API_KEY="wrong")
        self.assertEqual(r.status_code, 401)

    def test_tracking_webhook_unknown_awb(self):
        r = self.post("/api/shiprocket/webhook", {"awb": "NOPE", "current_status": "DELIVERED"}, HTTP_X_API_KEY="sr-webhook-token")
        self.assertEqual(r.status_code, 404)
