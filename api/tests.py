from django.core.cache import cache
from django.test import RequestFactory, SimpleTestCase, TestCase

from .errors import BusinessRuleError, ProviderTimeout
from .ratelimit import client_ip, hit


class ErrorPayloadTest(SimpleTestCase):
    def test_payload(self):
        exc = BusinessRuleError("Nope", details={"field": "x"})
        self.assertEqual(exc.as_payload(), {"error": "Nope", "category": "business_rule", "details": {"field": "x"}})
        self.assertEqual(exc.status_code, 400)

    def test_timeout_is_a_provider_error(self):
        self.assertEqual(ProviderTimeout("slow").status_code, 504)


class RateLimitTest(SimpleTestCase):
    def setUp(self):
        cache.clear()

    def test_fixed_window(self):
        results = [hit(scope="t", key="1.2.3.4", limit=3, window=60) for _ in range(4)]
        self.assertEqual(results, [True, True, True, False])
        self.assertTrue(hit(scope="t", key="5.6.7.8", limit=3, window=60))

    def test_client_ip_prefers_forwarded_header(self):
        rf = RequestFactory()
        request = rf.get("/", HTTP_X_FORWARDED_FOR="10.0.0.1, 172.16.0.1", REMOTE_ADDR="127.0.0.1")
        self.assertEqual(client_ip(request), "10.0.0.1")
        self.assertEqual(client_ip(rf.get("/", REMOTE_ADDR="127.0.0.2")), "127.0.0.2")

    def test_client_ip_is_empty_without_address(self):
        self.assertEqual(client_ip(RequestFactory().get("/", REMOTE_ADDR="")), "")


class HealthTest(TestCase):
    def test_health(self):
        r = self.client.get("/api/health")
        self.assertEqual(r.json(), {"status": "ok"})
