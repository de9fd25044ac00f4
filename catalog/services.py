from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from django.db.models import F

from .models import Product


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    title: str
    price: Decimal
    stock: int
    image: str


def get_product_snapshots(*, product_ids: Iterable[int]) -> dict[int, ProductSnapshot]:
    ids = {int(pid) for pid in product_ids}
    if not ids:
        return {}

    out: dict[int, ProductSnapshot] = {}
    for p in Product.objects.filter(id__in=ids, is_active=True):
        out[int(p.id)] = ProductSnapshot(
            id=int(p.id),
            title=p.title,
            price=Decimal(p.price),
            stock=int(p.stock),
            image=p.cover_image,
        )
    return out


def decrement_stock(*, product_id: int, qty: int) -> bool:
    """Conditional decrement. False when stock is short (nothing written)."""

    qty_i = int(qty)
    if qty_i <= 0:
        raise ValueError("qty must be positive")

    updated = Product.objects.filter(id=int(product_id), stock__gte=qty_i).update(
        stock=F("stock") - qty_i
    )
    return updated == 1


def restock(*, product_id: int, qty: int) -> None:
    qty_i = int(qty)
    if qty_i <= 0:
        raise ValueError("qty must be positive")
    Product.objects.filter(id=int(product_id)).update(stock=F("stock") + qty_i)
