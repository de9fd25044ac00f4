from decimal import Decimal

from django.test import TestCase

from .models import Product
from .services import decrement_stock, get_product_snapshots


class CatalogServicesTest(TestCase):
    def setUp(self):
        self.product = Product.objects.create(
            title="Cat Sticker",
            slug="cat-sticker",
            price=Decimal("100.00"),
            stock=3,
            images=["https://cdn.test/cat.png", "https://cdn.test/cat-2.png"],
        )

    def test_snapshots_skip_inactive(self):
        hidden = Product.objects.create(title="Hidden", slug="hidden", price=Decimal("1"), is_active=False)
        snaps = get_product_snapshots(product_ids=[self.product.id, hidden.id])
        self.assertEqual(list(snaps), [self.product.id])
        self.assertEqual(snaps[self.product.id].image, "https://cdn.test/cat.png")

    def test_decrement_is_conditional(self):
        self.assertTrue(decrement_stock(product_id=self.product.id, qty=2))
        self.assertFalse(decrement_stock(product_id=self.product.id, qty=2))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 1)
