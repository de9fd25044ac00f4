from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from api.models import StoreSettings

from .services import (
    PAYMENT_COD,
    PAYMENT_PREPAID,
    PricedLine,
    ShippingConfig,
    compute_quote,
    default_shipping_config,
    from_minor_units,
    prepaid_discount_for,
    to_minor_units,
)

SHIPPING = ShippingConfig(free_shipping_threshold=Decimal("499"), shipping_charge=Decimal("49"))


def lines(*pairs):
    return [PricedLine(unit_price=Decimal(str(p)), quantity=q) for p, q in pairs]


@override_settings(PREPAID_DISCOUNT_PERCENT=10, COD_HANDLING_FEE="50")
class ComputeQuoteTest(SimpleTestCase):
    def test_prepaid_above_threshold_ships_free(self):
        q = compute_quote(lines=lines((250, 2)), payment_method=PAYMENT_PREPAID, shipping_config=SHIPPING)

        self.assertEqual(q.subtotal, Decimal("500.00"))
        self.assertEqual(q.prepaid_discount, Decimal("50.00"))
        self.assertEqual(q.shipping, Decimal("0.00"))
        self.assertEqual(q.payment_fee, Decimal("0.00"))
        self.assertEqual(q.total, Decimal("450.00"))
        self.assertEqual(q.amount_minor, 45000)

    def test_cod_below_threshold_pays_shipping_and_fee(self):
        q = compute_quote(lines=lines((300, 1)), payment_method=PAYMENT_COD, shipping_config=SHIPPING)

        self.assertEqual(q.discount, Decimal("0.00"))
        self.assertEqual(q.shipping, Decimal("49.00"))
        self.assertEqual(q.payment_fee, Decimal("50.00"))
        self.assertEqual(q.total, Decimal("399.00"))

    def test_threshold_is_inclusive(self):
        q = compute_quote(lines=lines((499, 1)), payment_method=PAYMENT_COD, shipping_config=SHIPPING)
        self.assertEqual(q.shipping, Decimal("0.00"))

    def test_prepaid_discount_rounds_down_to_whole_rupees(self):
        self.assertEqual(prepaid_discount_for(Decimal("255.00")), Decimal("25.00"))
        self.assertEqual(prepaid_discount_for(Decimal("449.00")), Decimal("44.00"))

    def test_coupon_and_prepaid_never_exceed_subtotal(self):
        q = compute_quote(
            lines=lines((100, 1)),
            payment_method=PAYMENT_PREPAID,
            coupon_discount=Decimal("100"),
            shipping_config=SHIPPING,
        )

        self.assertEqual(q.coupon_discount, Decimal("100.00"))
        self.assertEqual(q.prepaid_discount, Decimal("0.00"))
        self.assertEqual(q.discount, Decimal("100.00"))
        self.assertEqual(q.total, Decimal("49.00"))

    def test_negative_coupon_is_ignored(self):
        q = compute_quote(
            lines=lines((300, 1)),
            payment_method=PAYMENT_COD,
            coupon_discount=Decimal("-20"),
            shipping_config=SHIPPING,
        )
        self.assertEqual(q.coupon_discount, Decimal("0.00"))
        self.assertEqual(q.total, Decimal("399.00"))

    def test_total_matches_components(self):
        q = compute_quote(
            lines=lines(("99.50", 3), (249, 1)),
            payment_method=PAYMENT_PREPAID,
            coupon_discount=Decimal("30"),
            shipping_config=SHIPPING,
        )
        self.assertEqual(q.subtotal, Decimal("547.50"))
        self.assertEqual(q.total, q.subtotal - q.discount + q.shipping + q.payment_fee)

    def test_reference_carts(self):
        prepaid = compute_quote(lines=lines((1000, 1)), payment_method=PAYMENT_PREPAID, shipping_config=SHIPPING)
        self.assertEqual((prepaid.prepaid_discount, prepaid.shipping, prepaid.total), (Decimal("100.00"), Decimal("0.00"), Decimal("900.00")))

        cod = compute_quote(lines=lines((600, 1)), payment_method=PAYMENT_COD, shipping_config=SHIPPING)
        self.assertEqual((cod.shipping, cod.payment_fee, cod.total), (Decimal("0.00"), Decimal("50.00"), Decimal("650.00")))

    def test_unknown_payment_method(self):
        with self.assertRaises(ValueError):
            compute_quote(lines=lines((100, 1)), payment_method="upi", shipping_config=SHIPPING)

    def test_non_positive_quantity(self):
        with self.assertRaises(ValueError):
            compute_quote(lines=lines((100, 0)), payment_method=PAYMENT_COD, shipping_config=SHIPPING)


class MinorUnitsTest(SimpleTestCase):
    def test_conversion(self):
        self.assertEqual(to_minor_units(Decimal("454.00")), 45400)
        self.assertEqual(to_minor_units(Decimal("0.015")), 2)
        self.assertEqual(from_minor_units(45400), Decimal("454.00"))


class ShippingConfigTest(TestCase):
    @override_settings(FREE_SHIPPING_THRESHOLD="999", SHIPPING_CHARGE="79")
    def test_env_defaults_without_store_settings(self):
        cfg = default_shipping_config()
        self.assertEqual(cfg.free_shipping_threshold, Decimal("999"))
        self.assertEqual(cfg.shipping_charge, Decimal("79"))

    def test_store_settings_row_wins(self):
        StoreSettings.objects.create(free_shipping_threshold=Decimal("299.00"), shipping_charge=Decimal("30.00"))
        cfg = default_shipping_config()
        self.assertEqual(cfg.free_shipping_threshold, Decimal("299.00"))
        self.assertEqual(cfg.shipping_charge, Decimal("30.00"))
