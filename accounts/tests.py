import json
from datetime import timedelta
from unittest import mock

from django.contrib.auth.hashers import check_password, make_password
from django.contrib.auth.models import User
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from api.errors import BusinessRuleError, ProviderError, RateLimited, RequestValidationError

from .models import PhoneOTP
from .otp import normalize_phone, send_phone_otp, verify_phone_otp
from .sms import Fast2SmsApiError, send_otp_sms


class NormalizePhoneTest(SimpleTestCase):
    def test_prefixes_are_stripped(self):
        self.assertEqual(normalize_phone("+91 98765-43210"), "9876543210")
        self.assertEqual(normalize_phone("09876543210"), "9876543210")
        self.assertEqual(normalize_phone("9876543210"), "9876543210")


@override_settings(PHONE_OTP_MAX_SENDS=3, PHONE_OTP_MAX_ATTEMPTS=5, PHONE_OTP_TTL_MINUTES=5)
class PhoneOtpTest(TestCase):
    @mock.patch("accounts.otp.send_otp_sms")
    def test_send_stores_hashed_code(self, sms):
        otp = send_phone_otp(phone="+919876543210")

        code = sms.call_args.kwargs["code"]
        self.assertEqual(len(code), 4)
        self.assertEqual(sms.call_args.kwargs["phone"], "9876543210")
        self.assertNotEqual(otp.code_hash, code)
        self.assertTrue(check_password(code, otp.code_hash))
        self.assertEqual(otp.send_count, 1)

    @mock.patch("accounts.otp.send_otp_sms")
    def test_send_limit(self, sms):
        for _ in range(3):
            send_phone_otp(phone="9876543210")
        with self.assertRaises(RateLimited):
            send_phone_otp(phone="9876543210")
        self.assertEqual(sms.call_count, 3)

    @mock.patch("accounts.otp.send_otp_sms")
    def test_send_limit_resets_after_expiry(self, sms):
        for _ in range(3):
            send_phone_otp(phone="9876543210")
        PhoneOTP.objects.update(expires_at=timezone.now() - timedelta(seconds=1))

        otp = send_phone_otp(phone="9876543210")
        self.assertEqual(otp.send_count, 1)

    def test_invalid_number(self):
        with self.assertRaises(RequestValidationError):
            send_phone_otp(phone="12345")

    @mock.patch("accounts.otp.send_otp_sms", side_effect=Fast2SmsApiError("down"))
    def test_gateway_failure(self, sms):
        with self.assertRaises(ProviderError):
            send_phone_otp(phone="9876543210")
        self.assertFalse(PhoneOTP.objects.exists())

    def make_otp(self, code="4321", **kwargs):
        data = dict(
            phone="9876543210",
            code_hash=make_password(code),
            expires_at=timezone.now() + timedelta(minutes=5),
            send_count=1,
        )
        data.update(kwargs)
        return PhoneOTP.objects.create(**data)

    def test_verify_consumes_code(self):
        self.make_otp()
        verify_phone_otp(phone="9876543210", code="4321")
        self.assertFalse(PhoneOTP.objects.exists())

    def test_wrong_code_counts_attempt(self):
        otp = self.make_otp()
        with self.assertRaisesMessage(BusinessRuleError, "Invalid OTP"):
            verify_phone_otp(phone="9876543210", code="0000")
        otp.refresh_from_db()
        self.assertEqual(otp.attempts, 1)

    def test_expired(self):
        self.make_otp(expires_at=timezone.now() - timedelta(seconds=1))
        with self.assertRaisesMessage(BusinessRuleError, "OTP Expired"):
            verify_phone_otp(phone="9876543210", code="4321")

    def test_attempt_limit_blocks_even_correct_code(self):
        self.make_otp(attempts=5)
        with self.assertRaises(RateLimited):
            verify_phone_otp(phone="9876543210", code="4321")


class Fast2SmsTest(SimpleTestCase):
    @override_settings(FAST2SMS_API_KEY="k", FAST2SMS_BASE_URL="https://sms.test/bulk")
    @mock.patch("accounts.sms.requests.post")
    def test_request_shape(self, post):
        post.return_value = mock.Mock(status_code=200, json=mock.Mock(return_value={"return": True}))

        send_otp_sms(phone="9876543210", code="1234")

        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://sms.test/bulk")
        self.assertEqual(kwargs["json"], {"route": "otp", "variables_values": "1234", "numbers": "9876543210"})
        self.assertEqual(kwargs["headers"]["authorization"], "k")

    @override_settings(FAST2SMS_API_KEY="k")
    @mock.patch("accounts.sms.requests.post")
    def test_rejected(self, post):
        post.return_value = mock.Mock(status_code=200, json=mock.Mock(return_value={"return": False, "message": "bad"}))
        with self.assertRaises(Fast2SmsApiError):
            send_otp_sms(phone="9876543210", code="1234")


class AuthApiTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="asha@example.com", email="asha@example.com", password="pass12345")

    def post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def test_login_sets_cookie_and_me_reads_it(self):
        r = self.post("/api/auth/login", {"email": "asha@example.com", "password": "pass12345"})
        self.assertEqual(r.status_code, 200)
        self.assertIn("access_token", r.cookies)

        r = self.client.get("/api/auth/me")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["email"], "asha@example.com")

    def test_bad_credentials(self):
        r = self.post("/api/auth/login", {"email": "asha@example.com", "password": "nope"})
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["category"], "unauthorized")

    def test_me_requires_auth(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    @mock.patch("accounts.otp.send_otp_sms")
    def test_otp_send_endpoint(self, sms):
        r = self.post("/api/auth/otp/send", {"phone": "9876543210"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})
        sms.assert_called_once()
