from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Iterable

from django.conf import settings


MONEY_PLACES = Decimal("0.01")

PAYMENT_PREPAID = "prepaid"
PAYMENT_COD = "cod"
PAYMENT_METHODS = (PAYMENT_PREPAID, PAYMENT_COD)


def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int(quantize_money(Decimal(amount)) * 100)


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(int(minor)) / 100).quantize(MONEY_PLACES)


@dataclass(frozen=True)
class PricedLine:
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class ShippingConfig:
    free_shipping_threshold: Decimal
    shipping_charge: Decimal


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    coupon_discount: Decimal
    prepaid_discount: Decimal
    discount: Decimal
    shipping: Decimal
    payment_fee: Decimal
    total: Decimal

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.total)


def default_shipping_config() -> ShippingConfig:
    from api.models import StoreSettings

    threshold, charge = StoreSettings.shipping_config()
    return ShippingConfig(free_shipping_threshold=threshold, shipping_charge=charge)


def cod_handling_fee() -> Decimal:
    return quantize_money(Decimal(str(getattr(settings, "COD_HANDLING_FEE", "50"))))


def cod_minimum_order_value() -> Decimal:
    return quantize_money(Decimal(str(getattr(settings, "COD_MIN_ORDER_VALUE", "299"))))


def subtotal_for(lines: Iterable[PricedLine]) -> Decimal:
    # Sum in paise so repeated additions never drift.
    total_minor = 0
    for line in lines:
        qty = int(line.quantity)
        if qty <= 0:
            raise ValueError("quantity must be positive")
        total_minor += to_minor_units(line.unit_price) * qty
    return from_minor_units(total_minor)


def prepaid_discount_for(subtotal: Decimal) -> Decimal:
    percent = int(getattr(settings, "PREPAID_DISCOUNT_PERCENT", 10))
    raw = Decimal(subtotal) * Decimal(percent) / Decimal(100)
    # Whole rupees, rounded down.
    return raw.to_integral_value(rounding=ROUND_FLOOR).quantize(MONEY_PLACES)


def shipping_for(subtotal: Decimal, config: ShippingConfig) -> Decimal:
    if Decimal(subtotal) >= Decimal(config.free_shipping_threshold):
        return Decimal("0.00")
    return quantize_money(config.shipping_charge)


def compute_quote(
    *,
    lines: Iterable[PricedLine],
    payment_method: str,
    coupon_discount: Decimal = Decimal("0"),
    shipping_config: ShippingConfig | None = None,
) -> PriceQuote:
    if payment_method not in PAYMENT_METHODS:
        raise ValueError("Unsupported payment_method")

    config = shipping_config or default_shipping_config()

    subtotal = subtotal_for(lines)
    coupon = min(max(quantize_money(coupon_discount), Decimal("0.00")), subtotal)

    prepaid = Decimal("0.00")
    fee = Decimal("0.00")
    if payment_method == PAYMENT_PREPAID:
        prepaid = prepaid_discount_for(subtotal)
    else:
        fee = cod_handling_fee()

    discount = min(coupon + prepaid, subtotal)
    prepaid = discount - coupon
    shipping = shipping_for(subtotal, config)

    total = quantize_money(max(Decimal("0.00"), subtotal - discount) + shipping + fee)

    return PriceQuote(
        subtotal=subtotal,
        coupon_discount=coupon,
        prepaid_discount=prepaid,
        discount=discount,
        shipping=shipping,
        payment_fee=fee,
        total=total,
    )
