import json
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth.hashers import make_password
from django.contrib.auth.models import User
from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone

from accounts.jwt_utils import issue_access_token
from accounts.models import PhoneOTP
from api.errors import (
    BusinessRuleError,
    ConflictError,
    EligibilityBlocked,
    InvalidTransition,
    NotFoundError,
    ProviderError,
    RequestValidationError,
    TerminalStateError,
)
from catalog.models import Product
from payments.services.razorpay import RazorpayApiError
from promotions.models import Coupon
from promotions.services import AppliedCoupon

from .models import Order, OrderItem
from .services import (
    CartLine,
    CustomerDetails,
    confirm_payment,
    create_order,
    price_cart,
    set_order_status_by_admin,
    verify_cod_order,
)
from .state import Trigger, allowed_targets, check_transition, transition_order

PHONE = "9876543210"


def customer(**overrides):
    data = dict(
        name="Asha Verma",
        email="asha@example.com",
        phone=PHONE,
        address="12 MG Road",
        city="Jaipur",
        state="Rajasthan",
        pincode="302001",
    )
    data.update(overrides)
    return CustomerDetails(**data)


def razorpay_stub(order_id="order_RZP1", amount=None):
    client = mock.Mock()
    client.create_order.return_value = {"id": order_id}
    if amount is not None:
        client.fetch_order.return_value = {"id": order_id, "amount": amount}
    return client


class CheckoutTestBase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="asha@example.com", email="asha@example.com", password="pass12345")
        self.sticker = Product.objects.create(title="Cat Sticker", slug="cat-sticker", price=Decimal("100.00"), stock=10)
        self.poster = Product.objects.create(title="Moon Poster", slug="moon-poster", price=Decimal("350.00"), stock=1)

    def make_order(self, **kwargs):
        data = dict(
            user=self.user,
            customer_name="Asha Verma",
            email="asha@example.com",
            phone=PHONE,
            shipping_line1="12 MG Road",
            shipping_city="Jaipur",
            shipping_state="Rajasthan",
            shipping_pincode="302001",
            amount=Decimal("100.00"),
        )
        data.update(kwargs)
        return Order.objects.create(**data)


class PriceCartTest(CheckoutTestBase):
    def test_prices_come_from_catalog(self):
        pricing = price_cart(
            lines=[
                CartLine(product_id=self.sticker.id, quantity=2),
                CartLine(quantity=1, is_custom=True, custom_price=Decimal("249")),
            ],
            payment_method="prepaid",
        )
        q = pricing.quote
        self.assertEqual(q.subtotal, Decimal("449.00"))
        self.assertEqual(q.prepaid_discount, Decimal("44.00"))
        self.assertEqual(q.shipping, Decimal("49.00"))
        self.assertEqual(q.total, Decimal("454.00"))

        custom = pricing.lines[1]
        self.assertTrue(custom.is_custom)
        self.assertEqual(custom.title, "Custom Sticker Pack")
        self.assertTrue(custom.product_ref.startswith("custom-"))

    def test_custom_price_outside_allow_list(self):
        with self.assertRaisesMessage(BusinessRuleError, "Price tampering detected."):
            price_cart(
                lines=[CartLine(quantity=1, is_custom=True, custom_price=Decimal("1"))],
                payment_method="prepaid",
            )

    def test_missing_product(self):
        with self.assertRaises(NotFoundError):
            price_cart(lines=[CartLine(product_id=999999, quantity=1)], payment_method="prepaid")

    def test_inactive_product_counts_as_missing(self):
        self.sticker.is_active = False
        self.sticker.save()
        with self.assertRaises(NotFoundError):
            price_cart(lines=[CartLine(product_id=self.sticker.id, quantity=1)], payment_method="prepaid")

    def test_out_of_stock_sums_repeated_lines(self):
        with self.assertRaisesMessage(BusinessRuleError, "Out of stock: Moon Poster"):
            price_cart(
                lines=[
                    CartLine(product_id=self.poster.id, quantity=1),
                    CartLine(product_id=self.poster.id, quantity=1),
                ],
                payment_method="prepaid",
            )

    def test_empty_cart(self):
        with self.assertRaises(RequestValidationError):
            price_cart(lines=[], payment_method="prepaid")

    def test_unknown_payment_method(self):
        with self.assertRaises(RequestValidationError):
            price_cart(lines=[CartLine(product_id=self.sticker.id, quantity=1)], payment_method="upi")

    def test_coupon_is_applied(self):
        Coupon.objects.create(code="FLAT30", value=Decimal("30"))
        pricing = price_cart(
            lines=[CartLine(product_id=self.sticker.id, quantity=3)],
            payment_method="cod",
            coupon_code="flat30",
        )
        self.assertEqual(pricing.coupon.code, "FLAT30")
        self.assertEqual(pricing.quote.discount, Decimal("30.00"))
        self.assertEqual(pricing.quote.total, Decimal("300.00") - Decimal("30.00") + Decimal("49.00") + Decimal("50.00"))


class CreateOrderTest(CheckoutTestBase):
    def test_prepaid_order_is_pending_with_gateway_reference(self):
        rzp = razorpay_stub()
        created = create_order(
            user=self.user,
            lines=[CartLine(product_id=self.sticker.id, quantity=5)],
            customer=customer(),
            payment_method="prepaid",
            razorpay_client=rzp,
        )

        order = created.order
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.gateway_order_id, "order_RZP1")
        self.assertEqual(order.amount, Decimal("450.00"))
        self.assertIsNotNone(order.expires_at)
        self.assertEqual(created.amount_minor, 45000)
        self.assertEqual(rzp.create_order.call_args.kwargs["amount_minor"], 45000)
        self.assertEqual(order.items.count(), 1)

        # Prepaid stock is only taken once the payment is captured.
        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 10)

    def test_cod_order_is_unverified_and_takes_stock(self):
        created = create_order(
            user=self.user,
            lines=[CartLine(product_id=self.sticker.id, quantity=3)],
            customer=customer(phone="+91 98765 43210"),
            payment_method="cod",
        )

        order = created.order
        self.assertEqual(order.status, Order.Status.UNVERIFIED)
        self.assertEqual(order.phone, PHONE)
        self.assertEqual(order.gateway_order_id, "")
        self.assertEqual(order.payment_fee, Decimal("50.00"))
        self.assertEqual(order.amount, Decimal("399.00"))
        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 7)

    def test_cod_minimum_order_value(self):
        with self.assertRaisesMessage(BusinessRuleError, "COD is available only on orders above ₹299."):
            create_order(
                user=self.user,
                lines=[CartLine(product_id=self.sticker.id, quantity=2)],
                customer=customer(),
                payment_method="cod",
            )

    @override_settings(COD_RTO_BLOCK_THRESHOLD=2)
    def test_cod_blocked_after_repeated_cancellations(self):
        self.make_order(status=Order.Status.CANCELLED)
        self.make_order(status=Order.Status.CANCELLED)

        with self.assertRaises(EligibilityBlocked):
            create_order(
                user=self.user,
                lines=[CartLine(product_id=self.sticker.id, quantity=3)],
                customer=customer(),
                payment_method="cod",
            )
        self.assertFalse(Order.objects.filter(status=Order.Status.UNVERIFIED).exists())

    @override_settings(COD_RTO_BLOCK_THRESHOLD=2)
    def test_cod_allowed_after_single_cancellation(self):
        self.make_order(status=Order.Status.CANCELLED)
        created = create_order(
            user=self.user,
            lines=[CartLine(product_id=self.sticker.id, quantity=3)],
            customer=customer(),
            payment_method="cod",
        )
        self.assertEqual(created.order.status, Order.Status.UNVERIFIED)

    def test_item_prices_are_frozen_at_creation(self):
        mug = Product.objects.create(title="Mug Sticker", slug="mug", price=Decimal("80.00"), stock=5)
        created = create_order(
            user=self.user,
            lines=[
                CartLine(product_id=self.sticker.id, quantity=1),
                CartLine(product_id=mug.id, quantity=2),
                CartLine(quantity=1, is_custom=True, custom_price=Decimal("399")),
            ],
            customer=customer(),
            payment_method="prepaid",
            razorpay_client=razorpay_stub(),
        )
        Product.objects.update(price=Decimal("1.00"))

        order = Order.objects.get(id=created.order.id)
        self.assertEqual(
            [(i.title, i.price, i.quantity) for i in order.items.all()],
            [
                ("Cat Sticker", Decimal("100.00"), 1),
                ("Mug Sticker", Decimal("80.00"), 2),
                ("Custom Sticker Pack", Decimal("399.00"), 1),
            ],
        )
        self.assertEqual(order.subtotal, Decimal("659.00"))

    def test_invalid_customer_details(self):
        with self.assertRaises(RequestValidationError) as ctx:
            create_order(
                user=self.user,
                lines=[CartLine(product_id=self.sticker.id, quantity=1)],
                customer=customer(email="not-an-email", pincode="12345"),
                payment_method="prepaid",
                razorpay_client=razorpay_stub(),
            )
        self.assertIn("email", ctx.exception.details)
        self.assertIn("pincode", ctx.exception.details)

    def test_gateway_failure_creates_nothing(self):
        rzp = mock.Mock()
        rzp.create_order.side_effect = RazorpayApiError("boom")
        with self.assertRaisesMessage(ProviderError, "Payment initiation failed"):
            create_order(
                user=self.user,
                lines=[CartLine(product_id=self.sticker.id, quantity=1)],
                customer=customer(),
                payment_method="prepaid",
                razorpay_client=rzp,
            )
        self.assertEqual(Order.objects.count(), 0)

    def test_coupon_is_redeemed_with_the_order(self):
        coupon = Coupon.objects.create(code="ONCE", value=Decimal("20"), usage_limit=1)
        create_order(
            user=self.user,
            lines=[CartLine(product_id=self.sticker.id, quantity=1)],
            customer=customer(),
            payment_method="prepaid",
            coupon_code="once",
            razorpay_client=razorpay_stub(),
        )
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)
        self.assertEqual(Order.objects.get().coupon_code, "ONCE")

        with self.assertRaisesMessage(BusinessRuleError, "Coupon usage limit reached."):
            create_order(
                user=self.user,
                lines=[CartLine(product_id=self.sticker.id, quantity=1)],
                customer=customer(),
                payment_method="prepaid",
                coupon_code="ONCE",
                razorpay_client=razorpay_stub("order_RZP2"),
            )

    def test_lost_coupon_race_rolls_back_the_order(self):
        coupon = Coupon.objects.create(code="RACE", value=Decimal("20"), usage_limit=1, used_count=1)
        applied = AppliedCoupon(coupon_id=coupon.id, code="RACE", discount=Decimal("20.00"))

        with mock.patch("checkout.services.validate_coupon", return_value=applied):
            with self.assertRaises(ConflictError):
                create_order(
                    user=self.user,
                    lines=[CartLine(product_id=self.sticker.id, quantity=1)],
                    customer=customer(),
                    payment_method="prepaid",
                    coupon_code="RACE",
                    razorpay_client=razorpay_stub(),
                )
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)

    def test_cod_stock_race_rolls_back(self):
        with mock.patch("checkout.services.decrement_stock", return_value=False):
            with self.assertRaisesMessage(BusinessRuleError, "Out of stock: Cat Sticker"):
                create_order(
                    user=self.user,
                    lines=[CartLine(product_id=self.sticker.id, quantity=3)],
                    customer=customer(),
                    payment_method="cod",
                )
        self.assertEqual(Order.objects.count(), 0)


class ConfirmPaymentTest(CheckoutTestBase):
    def setUp(self):
        super().setUp()
        self.order = create_order(
            user=self.user,
            lines=[CartLine(product_id=self.sticker.id, quantity=5)],
            customer=customer(),
            payment_method="prepaid",
            razorpay_client=razorpay_stub(),
        ).order

    def confirm(self, **kwargs):
        data = dict(
            gateway_order_id="order_RZP1",
            gateway_payment_id="pay_1",
            source="test",
            paid_amount_minor=self.order.amount_minor,
        )
        data.update(kwargs)
        return confirm_payment(**data)

    def test_marks_paid_and_takes_stock(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = self.confirm()

        self.assertFalse(result.already_confirmed)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.gateway_payment_id, "pay_1")
        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 5)

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(f"Order #{self.order.id}", mail.outbox[0].subject)

    def test_second_confirmation_is_idempotent(self):
        self.confirm()
        result = self.confirm(gateway_payment_id="pay_2")

        self.assertTrue(result.already_confirmed)
        self.order.refresh_from_db()
        self.assertEqual(self.order.gateway_payment_id, "pay_1")
        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 5)

    def test_amount_mismatch(self):
        with self.assertRaisesMessage(BusinessRuleError, "Payment amount mismatch."):
            self.confirm(paid_amount_minor=100)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_amount_is_fetched_from_gateway_when_not_supplied(self):
        rzp = razorpay_stub(amount=self.order.amount_minor)
        self.confirm(paid_amount_minor=None, razorpay_client=rzp)
        rzp.fetch_order.assert_called_once_with(gateway_order_id="order_RZP1")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_expired_session(self):
        Order.objects.filter(id=self.order.id).update(expires_at=timezone.now() - timedelta(minutes=1))
        with self.assertRaisesMessage(BusinessRuleError, "Order session expired"):
            self.confirm()

        # Webhook captures still go through after expiry.
        self.confirm(enforce_expiry=False)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_unknown_gateway_order(self):
        with self.assertRaises(NotFoundError):
            self.confirm(gateway_order_id="order_missing")

    def test_cancelled_order_cannot_be_paid(self):
        Order.objects.filter(id=self.order.id).update(status=Order.Status.CANCELLED)
        with self.assertRaisesMessage(BusinessRuleError, "Invalid order state for verification."):
            self.confirm()

    def test_stock_shortfall_rolls_back_payment(self):
        Product.objects.filter(id=self.sticker.id).update(stock=2)
        with self.assertRaises(ConflictError):
            self.confirm()

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(self.order.gateway_payment_id, "")
        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 2)


class StateMachineTest(CheckoutTestBase):
    def test_allowed_moves(self):
        check_transition("PENDING", "PAID", trigger=Trigger.PAYMENT)
        check_transition("UNVERIFIED", "PROCESSING", trigger=Trigger.VERIFICATION)
        check_transition("PAID", "SHIPPED", trigger=Trigger.SHIPPING)
        check_transition("SHIPPED", "DELIVERED", trigger=Trigger.SHIPPING)
        check_transition("PRINTING", "PROCESSING", trigger=Trigger.ADMIN)

    def test_wrong_trigger_is_rejected(self):
        with self.assertRaisesMessage(InvalidTransition, "Invalid Flow: Cannot jump from PENDING to PAID"):
            check_transition("PENDING", "PAID", trigger=Trigger.ADMIN)

    def test_admin_cannot_mark_shipped(self):
        self.assertNotIn("SHIPPED", allowed_targets("PAID", trigger=Trigger.ADMIN))
        with self.assertRaises(InvalidTransition):
            check_transition("PROCESSING", "SHIPPED", trigger=Trigger.ADMIN)

    def test_terminal_states(self):
        for status in ("DELIVERED", "CANCELLED", "REFUNDED"):
            with self.assertRaises(TerminalStateError):
                check_transition(status, "PROCESSING", trigger=Trigger.ADMIN)

    def test_delivered_can_still_be_refunded(self):
        check_transition("DELIVERED", "REFUNDED", trigger=Trigger.ADMIN)

    def test_transition_writes_fields(self):
        order = self.make_order(status=Order.Status.PAID)
        order = transition_order(
            order_id=order.id,
            to_status=Order.Status.SHIPPED,
            trigger=Trigger.SHIPPING,
            fields={"tracking_number": "AWB123"},
        )
        self.assertEqual(order.status, Order.Status.SHIPPED)
        self.assertEqual(order.tracking_number, "AWB123")

    def test_stale_expected_status(self):
        order = self.make_order(status=Order.Status.PROCESSING)
        with self.assertRaises(ConflictError):
            transition_order(
                order_id=order.id,
                to_status=Order.Status.SHIPPED,
                trigger=Trigger.SHIPPING,
                expected_from=Order.Status.PAID,
            )

    def test_compare_and_swap_on_extra_filters(self):
        order = self.make_order(status=Order.Status.PAID, tracking_number="AWB-EXISTING")
        with self.assertRaises(ConflictError):
            transition_order(
                order_id=order.id,
                to_status=Order.Status.SHIPPED,
                trigger=Trigger.SHIPPING,
                fields={"tracking_number": "AWB-NEW"},
                extra_filters={"tracking_number": ""},
            )
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PAID)
        self.assertEqual(order.tracking_number, "AWB-EXISTING")


class AdminStatusTest(CheckoutTestBase):
    def test_admin_moves_order(self):
        order = self.make_order(status=Order.Status.PAID)
        order = set_order_status_by_admin(order_id=order.id, status="processing", actor="staff@example.com")
        self.assertEqual(order.status, Order.Status.PROCESSING)

    def test_unknown_status_is_rejected(self):
        order = self.make_order(status=Order.Status.PAID)
        with self.assertRaises(RequestValidationError):
            set_order_status_by_admin(order_id=order.id, status="LOST_IN_SPACE", actor="staff")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PAID)

    def test_cannot_leave_terminal_state(self):
        order = self.make_order(status=Order.Status.CANCELLED)
        with self.assertRaises(TerminalStateError):
            set_order_status_by_admin(order_id=order.id, status="PROCESSING", actor="staff")

    def test_cancelling_unverified_cod_returns_stock(self):
        created = create_order(
            user=self.user,
            lines=[CartLine(product_id=self.poster.id, quantity=1)],
            customer=customer(),
            payment_method="cod",
        )
        self.poster.refresh_from_db()
        self.assertEqual(self.poster.stock, 0)

        set_order_status_by_admin(order_id=created.order.id, status="CANCELLED", actor="staff")

        self.poster.refresh_from_db()
        self.assertEqual(self.poster.stock, 1)

    def test_cancelling_paid_order_returns_stock(self):
        order = self.make_order(status=Order.Status.PROCESSING)
        OrderItem.objects.create(order=order, product=self.sticker, product_ref=str(self.sticker.id), title="Cat Sticker", price=Decimal("100.00"), quantity=4)
        OrderItem.objects.create(order=order, product_ref="custom-1", title="Custom Pack", price=Decimal("249.00"), quantity=1, is_custom=True)

        set_order_status_by_admin(order_id=order.id, status="CANCELLED", actor="staff")

        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 14)

    def test_cancelling_unpaid_prepaid_order_leaves_stock(self):
        order = self.make_order(status=Order.Status.PENDING)
        OrderItem.objects.create(order=order, product=self.sticker, product_ref=str(self.sticker.id), title="Cat Sticker", price=Decimal("100.00"), quantity=4)

        set_order_status_by_admin(order_id=order.id, status="CANCELLED", actor="staff")

        self.sticker.refresh_from_db()
        self.assertEqual(self.sticker.stock, 10)


class VerifyCodTest(CheckoutTestBase):
    def setUp(self):
        super().setUp()
        self.order = self.make_order(status=Order.Status.UNVERIFIED, payment_method=Order.PaymentMethod.COD)
        PhoneOTP.objects.create(
            phone=PHONE,
            code_hash=make_password("1234"),
            expires_at=timezone.now() + timedelta(minutes=5),
            send_count=1,
        )

    def test_correct_code_moves_to_processing(self):
        order = verify_cod_order(user=self.user, order_id=self.order.id, otp="1234")
        self.assertEqual(order.status, Order.Status.PROCESSING)
        self.assertFalse(PhoneOTP.objects.filter(phone=PHONE).exists())

    def test_wrong_code_keeps_order_unverified(self):
        with self.assertRaisesMessage(BusinessRuleError, "Invalid OTP"):
            verify_cod_order(user=self.user, order_id=self.order.id, otp="0000")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.UNVERIFIED)

    def test_other_users_order_is_hidden(self):
        other = User.objects.create_user(username="other@example.com", email="other@example.com", password="x")
        with self.assertRaises(NotFoundError):
            verify_cod_order(user=other, order_id=self.order.id, otp="1234")


class CheckoutApiTest(CheckoutTestBase):
    def auth_headers(self, user=None):
        token = issue_access_token(user_id=(user or self.user).id)
        return {"HTTP_AUTHORIZATION": f"Bearer {token}"}

    def post(self, url, payload, **extra):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json", **extra)

    def order_payload(self, **overrides):
        payload = {
            "items": [{"productId": self.sticker.id, "quantity": 5}],
            "couponCode": None,
            "customerDetails": {
                "name": "Asha Verma",
                "email": "asha@example.com",
                "phone": PHONE,
                "address": "12 MG Road",
                "city": "Jaipur",
                "state": "Rajasthan",
                "pincode": "302001",
            },
            "paymentMethod": "prepaid",
        }
        payload.update(overrides)
        return payload

    def test_quote(self):
        r = self.post("/api/checkout/quote", {"items": [{"productId": self.sticker.id, "quantity": 3}], "paymentMethod": "cod"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(Decimal(str(r.json()["total"])), Decimal("399.00"))

    def test_create_requires_auth(self):
        r = self.post("/api/checkout/orders", self.order_payload())
        self.assertEqual(r.status_code, 401)

    def test_create_prepaid(self):
        with mock.patch("checkout.services.RazorpayClient") as client_cls:
            client_cls.return_value = razorpay_stub("order_API1")
            r = self.post("/api/checkout/orders", self.order_payload(), **self.auth_headers())

        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["gatewayOrderId"], "order_API1")
        self.assertEqual(body["amount"], 45000)
        self.assertTrue(Order.objects.filter(id=body["dbOrderId"], user=self.user).exists())

    def test_create_cod(self):
        payload = self.order_payload(paymentMethod="cod", items=[{"productId": self.sticker.id, "quantity": 3}])
        r = self.post("/api/checkout/orders", payload, **self.auth_headers())

        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertIsNone(body["gatewayOrderId"])
        self.assertEqual(Order.objects.get(id=body["dbOrderId"]).status, Order.Status.UNVERIFIED)

    def test_business_errors_use_envelope(self):
        payload = self.order_payload(items=[{"isCustom": True, "customPrice": "5", "quantity": 1}])
        r = self.post("/api/checkout/orders", payload, **self.auth_headers())
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json(), {"error": "Price tampering detected.", "category": "business_rule"})

    def test_custom_item_with_storefront_id(self):
        items = [{"productId": "custom-1712345678901", "isCustom": True, "customPrice": 399, "customTitle": "My Pack", "quantity": 1}]
        r = self.post("/api/checkout/orders", self.order_payload(paymentMethod="cod", items=items), **self.auth_headers())

        self.assertEqual(r.status_code, 200)
        item = Order.objects.get(id=r.json()["dbOrderId"]).items.get()
        self.assertTrue(item.is_custom)
        self.assertEqual(item.product_ref, "custom-1712345678901")
        self.assertEqual(item.price, Decimal("399.00"))

    def test_non_numeric_catalog_id_is_400(self):
        payload = self.order_payload(items=[{"productId": "cat-sticker", "quantity": 1}])
        r = self.post("/api/checkout/orders", payload, **self.auth_headers())
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["category"], "validation")

    def test_schema_errors_are_400(self):
        r = self.post("/api/checkout/orders", {"items": "nope"}, **self.auth_headers())
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["category"], "validation")

    def test_list_and_detail_are_scoped_to_user(self):
        mine = self.make_order(status=Order.Status.PAID)
        other = User.objects.create_user(username="other@example.com", email="other@example.com", password="x")
        theirs = self.make_order(user=other)

        r = self.client.get("/api/checkout/orders", **self.auth_headers())
        self.assertEqual([o["id"] for o in r.json()], [mine.id])

        r = self.client.get(f"/api/checkout/orders/{theirs.id}", **self.auth_headers())
        self.assertEqual(r.status_code, 404)

    def test_admin_status_requires_staff(self):
        order = self.make_order(status=Order.Status.PAID)
        r = self.post(f"/api/checkout/admin/orders/{order.id}/status", {"status": "PROCESSING"}, **self.auth_headers())
        self.assertEqual(r.status_code, 401)

        staff = User.objects.create_user(username="ops@example.com", email="ops@example.com", password="x", is_staff=True)
        r = self.post(
            f"/api/checkout/admin/orders/{order.id}/status",
            {"status": "PROCESSING"},
            **self.auth_headers(staff),
        )
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "PROCESSING")

    def test_admin_invalid_jump(self):
        staff = User.objects.create_user(username="ops@example.com", email="ops@example.com", password="x", is_staff=True)
        order = self.make_order(status=Order.Status.PENDING)
        r = self.post(
            f"/api/checkout/admin/orders/{order.id}/status",
            {"status": "DELIVERED"},
            **self.auth_headers(staff),
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["category"], "invalid_transition")


class OrderAdminLabelActionTest(CheckoutTestBase):
    def setUp(self):
        super().setUp()
        self.staff = User.objects.create_superuser(username="ops", email="ops@example.com", password="pass12345")
        self.client.force_login(self.staff)

    def run_action(self, orders):
        return self.client.post(
            "/admin/checkout/order/",
            {"action": "generate_shiprocket_label", "_selected_action": [o.id for o in orders]},
        )

    @mock.patch("shiprocket.labels.generate_label_for_order")
    def test_one_order_at_a_time(self, generate):
        first = self.make_order(status=Order.Status.PAID)
        second = self.make_order(status=Order.Status.PAID)

        r = self.run_action([first, second])

        self.assertEqual(r.status_code, 302)
        generate.assert_not_called()

    @mock.patch("shiprocket.labels.generate_label_for_order")
    def test_single_order_is_labelled(self, generate):
        generate.return_value = mock.Mock(awb="AWB1", courier="Fast")
        order = self.make_order(status=Order.Status.PAID)

        self.run_action([order])

        generate.assert_called_once_with(order_id=order.id, actor="ops@example.com")
