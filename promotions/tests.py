import json
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from api.errors import BusinessRuleError, ConflictError

from .models import Coupon
from .services import redeem_coupon, validate_coupon


class ValidateCouponTest(TestCase):
    def setUp(self):
        self.flat = Coupon.objects.create(
            code="save50",
            discount_type=Coupon.DiscountType.FLAT,
            value=Decimal("50"),
            min_order_value=Decimal("200"),
        )

    def test_code_is_stored_uppercase_and_matched_case_insensitively(self):
        self.assertEqual(self.flat.code, "SAVE50")
        applied = validate_coupon(code=" Save50 ", subtotal=Decimal("300"))
        self.assertEqual(applied.code, "SAVE50")
        self.assertEqual(applied.discount, Decimal("50.00"))

    def test_unknown_code(self):
        with self.assertRaisesMessage(BusinessRuleError, "Invalid or expired coupon."):
            validate_coupon(code="NOPE", subtotal=Decimal("300"))

    def test_inactive_and_expired(self):
        self.flat.is_active = False
        self.flat.save()
        with self.assertRaisesMessage(BusinessRuleError, "Invalid or expired coupon."):
            validate_coupon(code="SAVE50", subtotal=Decimal("300"))

        self.flat.is_active = True
        self.flat.end_at = timezone.now() - timedelta(days=1)
        self.flat.save()
        with self.assertRaisesMessage(BusinessRuleError, "Invalid or expired coupon."):
            validate_coupon(code="SAVE50", subtotal=Decimal("300"))

    def test_not_started_yet(self):
        self.flat.start_at = timezone.now() + timedelta(hours=1)
        self.flat.save()
        with self.assertRaises(BusinessRuleError):
            validate_coupon(code="SAVE50", subtotal=Decimal("300"))

    def test_minimum_order_value(self):
        with self.assertRaisesMessage(BusinessRuleError, "minimum order"):
            validate_coupon(code="SAVE50", subtotal=Decimal("199.99"))

    def test_usage_limit_reached(self):
        self.flat.usage_limit = 3
        self.flat.used_count = 3
        self.flat.save()
        with self.assertRaisesMessage(BusinessRuleError, "Coupon usage limit reached."):
            validate_coupon(code="SAVE50", subtotal=Decimal("300"))

    def test_percentage_discount(self):
        Coupon.objects.create(code="TEN", discount_type=Coupon.DiscountType.PERCENTAGE, value=Decimal("10"))
        applied = validate_coupon(code="ten", subtotal=Decimal("455"))
        self.assertEqual(applied.discount, Decimal("45.50"))

    def test_percentage_discount_rounds_half_up(self):
        coupon = Coupon(code="HALF", discount_type=Coupon.DiscountType.PERCENTAGE, value=Decimal("50"))
        self.assertEqual(coupon.get_discount_for(subtotal=Decimal("0.05")), Decimal("0.03"))
        self.assertEqual(coupon.get_discount_for(subtotal=Decimal("0.25")), Decimal("0.13"))

    def test_flat_discount_is_capped_at_subtotal(self):
        Coupon.objects.create(code="BIG", discount_type=Coupon.DiscountType.FLAT, value=Decimal("1000"))
        applied = validate_coupon(code="BIG", subtotal=Decimal("120"))
        self.assertEqual(applied.discount, Decimal("120.00"))


class RedeemCouponTest(TestCase):
    def test_increments_used_count(self):
        c = Coupon.objects.create(code="ONCE", value=Decimal("20"), usage_limit=2)
        redeem_coupon(coupon_id=c.id)
        c.refresh_from_db()
        self.assertEqual(c.used_count, 1)

    def test_unlimited_coupon(self):
        c = Coupon.objects.create(code="FOREVER", value=Decimal("20"), used_count=500)
        redeem_coupon(coupon_id=c.id)
        c.refresh_from_db()
        self.assertEqual(c.used_count, 501)

    def test_exhausted_coupon_is_not_redeemed(self):
        c = Coupon.objects.create(code="GONE", value=Decimal("20"), usage_limit=1, used_count=1)
        with self.assertRaises(ConflictError):
            redeem_coupon(coupon_id=c.id)
        c.refresh_from_db()
        self.assertEqual(c.used_count, 1)


class CouponValidateApiTest(TestCase):
    url = "/api/promotions/coupons/validate"

    def setUp(self):
        Coupon.objects.create(code="WELCOME", value=Decimal("40"))

    def test_valid(self):
        r = self.client.post(self.url, data=json.dumps({"code": "welcome", "subtotal": "300"}), content_type="application/json")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["code"], "WELCOME")
        self.assertEqual(Decimal(str(body["discount"])), Decimal("40.00"))

    def test_invalid_uses_error_envelope(self):
        r = self.client.post(self.url, data=json.dumps({"code": "nope", "subtotal": "300"}), content_type="application/json")
        self.assertEqual(r.status_code, 400)
        body = r.json()
        self.assertEqual(body["error"], "Invalid or expired coupon.")
        self.assertEqual(body["category"], "business_rule")
