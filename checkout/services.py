from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable

from django.conf import settings
from django.core.validators import validate_email
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from accounts.otp import normalize_phone, verify_phone_otp
from api.errors import (
    BusinessRuleError,
    ConflictError,
    EligibilityBlocked,
    NotFoundError,
    ProviderError,
    RequestValidationError,
)
from catalog.services import decrement_stock, get_product_snapshots, restock
from payments.services.razorpay import RazorpayApiError, RazorpayClient
from pricing.services import (
    PAYMENT_COD,
    PAYMENT_METHODS,
    PAYMENT_PREPAID,
    PricedLine,
    PriceQuote,
    cod_minimum_order_value,
    compute_quote,
    quantize_money,
)
from promotions.services import AppliedCoupon, redeem_coupon, validate_coupon

from .models import Order, OrderItem
from .state import STOCK_HELD_STATUSES, Trigger, parse_status, transition_order

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"^\d{6}$")
DEFAULT_CUSTOM_TITLE = "Custom Sticker Pack"

# Statuses that mean "payment already confirmed" for verify/webhook retries.
PAID_OR_LATER = frozenset(
    str(s)
    for s in (
        Order.Status.PAID,
        Order.Status.PROCESSING,
        Order.Status.PRINTING,
        Order.Status.SHIPPED,
        Order.Status.DELIVERED,
    )
)


@dataclass(frozen=True)
class CartLine:
    quantity: int
    product_id: int | str | None = None
    is_custom: bool = False
    custom_price: Decimal | None = None
    custom_title: str = ""
    custom_image: str = ""


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str


@dataclass(frozen=True)
class ResolvedLine:
    product_id: int | None
    product_ref: str
    title: str
    price: Decimal
    quantity: int
    image: str
    is_custom: bool


@dataclass(frozen=True)
class CartPricing:
    lines: list[ResolvedLine]
    quote: PriceQuote
    coupon: AppliedCoupon | None = None


@dataclass(frozen=True)
class CreatedOrder:
    order: Order
    gateway_order_id: str = ""
    amount_minor: int = 0


@dataclass(frozen=True)
class PaymentConfirmation:
    order: Order
    already_confirmed: bool = False


def custom_pack_prices() -> set[Decimal]:
    out: set[Decimal] = set()
    for raw in getattr(settings, "CUSTOM_PACK_PRICES", ["249", "399", "799"]):
        try:
            out.add(quantize_money(Decimal(str(raw))))
        except InvalidOperation:
            continue
    return out


def validate_customer(customer: CustomerDetails) -> CustomerDetails:
    errors: dict[str, str] = {}

    name = (customer.name or "").strip()
    if len(name) < 2:
        errors["name"] = "Name must be at least 2 characters"

    email = (customer.email or "").strip().lower()
    try:
        validate_email(email)
    except DjangoValidationError:
        errors["email"] = "Invalid email"

    phone = normalize_phone(customer.phone)
    if not (10 <= len(phone) <= 15):
        errors["phone"] = "Phone must have 10-15 digits"

    address = (customer.address or "").strip()
    if len(address) < 5:
        errors["address"] = "Address must be at least 5 characters"
    city = (customer.city or "").strip()
    if len(city) < 2:
        errors["city"] = "City must be at least 2 characters"
    state = (customer.state or "").strip()
    if len(state) < 2:
        errors["state"] = "State must be at least 2 characters"

    pincode = (customer.pincode or "").strip()
    if not PINCODE_RE.match(pincode):
        errors["pincode"] = "Pincode must be exactly 6 digits"

    if errors:
        raise RequestValidationError("Invalid customer details", details=errors)

    return CustomerDetails(
        name=name, email=email, phone=phone, address=address, city=city, state=state, pincode=pincode
    )


def _catalog_id(ln: CartLine) -> int:
    if ln.product_id is None or str(ln.product_id).strip() == "":
        raise RequestValidationError("productId is required for catalog items")
    try:
        return int(str(ln.product_id).strip())
    except ValueError:
        raise RequestValidationError("Invalid productId", details={"product_id": str(ln.product_id)}) from None


def _custom_ref(ln: CartLine) -> str:
    # Storefront ids look like "custom-<timestamp>".
    ref = str(ln.product_id or "").strip()[:64]
    return ref or f"custom-{secrets.token_hex(4)}"


def resolve_lines(lines: Iterable[CartLine]) -> list[ResolvedLine]:
    """Re-price every line from the catalog; custom packs must use an allowed price."""

    lines = list(lines)
    if not lines:
        raise RequestValidationError("Cart is empty")

    for ln in lines:
        if int(ln.quantity) <= 0:
            raise RequestValidationError("Quantity must be positive", details={"product_id": ln.product_id})

    catalog_ids = [_catalog_id(ln) for ln in lines if not ln.is_custom]

    snapshots = get_product_snapshots(product_ids=catalog_ids)
    allowed_custom = custom_pack_prices()

    # Same product on several lines counts against one stock figure.
    requested: dict[int, int] = {}
    for pid in catalog_ids:
        requested[pid] = 0
    for ln in lines:
        if not ln.is_custom:
            requested[_catalog_id(ln)] += int(ln.quantity)

    out: list[ResolvedLine] = []
    for ln in lines:
        qty = int(ln.quantity)
        if ln.is_custom:
            try:
                price = quantize_money(Decimal(str(ln.custom_price)))
            except (InvalidOperation, TypeError):
                price = None
            if price is None or price not in allowed_custom:
                logger.warning("Custom price rejected", extra={"custom_price": str(ln.custom_price)})
                raise BusinessRuleError("Price tampering detected.")
            out.append(
                ResolvedLine(
                    product_id=None,
                    product_ref=_custom_ref(ln),
                    title=(ln.custom_title or "").strip()[:255] or DEFAULT_CUSTOM_TITLE,
                    price=price,
                    quantity=qty,
                    image=(ln.custom_image or "").strip()[:500],
                    is_custom=True,
                )
            )
            continue

        pid = _catalog_id(ln)
        snap = snapshots.get(pid)
        if snap is None:
            raise NotFoundError("Product missing", details={"product_id": pid})
        if requested[pid] > snap.stock:
            raise BusinessRuleError(
                f"Out of stock: {snap.title}",
                details={"product_id": pid, "available": snap.stock},
            )
        out.append(
            ResolvedLine(
                product_id=pid,
                product_ref=str(pid),
                title=snap.title,
                price=quantize_money(snap.price),
                quantity=qty,
                image=snap.image,
                is_custom=False,
            )
        )

    return out


def check_cod_eligibility(*, phone: str, subtotal: Decimal) -> None:
    minimum = cod_minimum_order_value()
    if Decimal(subtotal) < minimum:
        raise BusinessRuleError(
            f"COD is available only on orders above ₹{minimum.normalize():f}.",
            details={"min_order_value": str(minimum)},
        )

    threshold = int(getattr(settings, "COD_RTO_BLOCK_THRESHOLD", 2))
    cancelled = Order.objects.filter(phone=phone, status=Order.Status.CANCELLED).count()
    if cancelled >= threshold:
        logger.warning("COD blocked by return history", extra={"phone": phone, "cancelled_orders": cancelled})
        raise EligibilityBlocked(
            "COD is currently blocked for your account due to previous returns. Please use Prepaid."
        )


def price_cart(
    *,
    lines: Iterable[CartLine],
    payment_method: str,
    coupon_code: str | None = None,
    phone: str | None = None,
) -> CartPricing:
    if payment_method not in PAYMENT_METHODS:
        raise RequestValidationError("Unsupported paymentMethod", details={"paymentMethod": payment_method})

    resolved = resolve_lines(lines)
    priced = [PricedLine(unit_price=ln.price, quantity=ln.quantity) for ln in resolved]
    base = compute_quote(lines=priced, payment_method=payment_method)

    if payment_method == PAYMENT_COD and phone is not None:
        check_cod_eligibility(phone=phone, subtotal=base.subtotal)

    coupon = None
    if (coupon_code or "").strip():
        coupon = validate_coupon(code=coupon_code, subtotal=base.subtotal)

    quote = compute_quote(
        lines=priced,
        payment_method=payment_method,
        coupon_discount=coupon.discount if coupon else Decimal("0"),
    )
    return CartPricing(lines=resolved, quote=quote, coupon=coupon)


def _create_gateway_order(*, quote: PriceQuote, user_id: int, client: RazorpayClient | None) -> str:
    client = client or RazorpayClient()
    receipt = f"rcpt_{secrets.token_hex(8)}"
    try:
        data = client.create_order(
            amount_minor=quote.amount_minor,
            currency=str(getattr(settings, "PAYMENT_CURRENCY", "INR")),
            receipt=receipt,
            notes={"userId": user_id},
        )
    except RazorpayApiError as exc:
        logger.exception("Razorpay order creation failed", extra={"user_id": user_id, "receipt": receipt})
        raise ProviderError("Payment initiation failed") from exc
    return str(data["id"])


def create_order(
    *,
    user,
    lines: Iterable[CartLine],
    customer: CustomerDetails,
    payment_method: str,
    coupon_code: str | None = None,
    razorpay_client: RazorpayClient | None = None,
) -> CreatedOrder:
    customer = validate_customer(customer)
    pricing = price_cart(
        lines=lines,
        payment_method=payment_method,
        coupon_code=coupon_code,
        phone=customer.phone if payment_method == PAYMENT_COD else None,
    )
    quote = pricing.quote

    gateway_order_id = ""
    if payment_method == PAYMENT_PREPAID:
        gateway_order_id = _create_gateway_order(quote=quote, user_id=user.id, client=razorpay_client)

    now = timezone.now()
    if payment_method == PAYMENT_PREPAID:
        status = Order.Status.PENDING
        ttl = int(getattr(settings, "PREPAID_ORDER_TTL_MINUTES", 15))
        expires_at = now + timedelta(minutes=ttl)
    else:
        status = Order.Status.UNVERIFIED
        expires_at = None

    with transaction.atomic():
        order = Order.objects.create(
            user=user,
            status=status,
            payment_method=payment_method,
            currency=str(getattr(settings, "PAYMENT_CURRENCY", "INR")),
            customer_name=customer.name,
            email=customer.email,
            phone=customer.phone,
            shipping_line1=customer.address,
            shipping_city=customer.city,
            shipping_state=customer.state,
            shipping_pincode=customer.pincode,
            subtotal=quote.subtotal,
            discount_amount=quote.discount,
            shipping_cost=quote.shipping,
            payment_fee=quote.payment_fee,
            amount=quote.total,
            coupon_code=pricing.coupon.code if pricing.coupon else "",
            gateway_order_id=gateway_order_id,
            expires_at=expires_at,
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=ln.product_id,
                    product_ref=ln.product_ref,
                    title=ln.title,
                    price=ln.price,
                    quantity=ln.quantity,
                    image=ln.image,
                    is_custom=ln.is_custom,
                )
                for ln in pricing.lines
            ]
        )

        if pricing.coupon is not None:
            redeem_coupon(coupon_id=pricing.coupon.coupon_id)

        if payment_method == PAYMENT_COD:
            # Cash orders never pass through payment capture, so stock is taken now.
            for ln in pricing.lines:
                if ln.is_custom:
                    continue
                if not decrement_stock(product_id=ln.product_id, qty=ln.quantity):
                    raise BusinessRuleError(f"Out of stock: {ln.title}", details={"product_id": ln.product_id})

    logger.info(
        "Order %s created (%s, %s, amount=%s)",
        order.id,
        payment_method,
        status,
        quote.total,
        extra={"order_id": order.id, "user_id": user.id},
    )

    return CreatedOrder(
        order=order,
        gateway_order_id=gateway_order_id,
        amount_minor=quote.amount_minor if payment_method == PAYMENT_PREPAID else 0,
    )


def _notify_paid(order_id: int) -> None:
    from notifications.services import send_order_confirmation

    try:
        send_order_confirmation(order_id=order_id)
    except Exception:
        logger.exception("Order confirmation email failed", extra={"order_id": order_id})


def confirm_payment(
    *,
    gateway_order_id: str,
    gateway_payment_id: str,
    source: str,
    paid_amount_minor: int | None = None,
    enforce_expiry: bool = True,
    razorpay_client: RazorpayClient | None = None,
) -> PaymentConfirmation:
    """Flip an awaiting-payment order to PAID once the gateway has confirmed it.

    Callers must have verified the gateway signature already.
    """

    gateway_order_id = (gateway_order_id or "").strip()
    order = Order.objects.filter(gateway_order_id=gateway_order_id).first() if gateway_order_id else None
    if order is None:
        raise NotFoundError("Order not found", details={"gateway_order_id": gateway_order_id})

    if order.status in PAID_OR_LATER:
        return PaymentConfirmation(order=order, already_confirmed=True)

    if order.status != Order.Status.PENDING:
        raise BusinessRuleError("Invalid order state for verification.", details={"status": order.status})

    if enforce_expiry and order.expires_at and timezone.now() > order.expires_at:
        logger.warning("Payment verification after expiry", extra={"order_id": order.id})
        raise BusinessRuleError("Order session expired. Please place the order again.")

    if paid_amount_minor is None:
        client = razorpay_client or RazorpayClient()
        try:
            gateway_order = client.fetch_order(gateway_order_id=gateway_order_id)
        except RazorpayApiError as exc:
            logger.exception("Razorpay order fetch failed", extra={"order_id": order.id})
            raise ProviderError("Could not verify the payment. Please try again.") from exc
        paid_amount_minor = int(gateway_order.get("amount") or 0)

    if int(paid_amount_minor) != order.amount_minor:
        logger.error(
            "Payment amount mismatch",
            extra={"order_id": order.id, "expected": order.amount_minor, "received": int(paid_amount_minor)},
        )
        raise BusinessRuleError("Payment amount mismatch.")

    with transaction.atomic():
        order = transition_order(
            order_id=order.id,
            to_status=Order.Status.PAID,
            trigger=Trigger.PAYMENT,
            actor=source,
            expected_from=Order.Status.PENDING,
            fields={"gateway_payment_id": (gateway_payment_id or "").strip()},
        )
        for item in order.items.filter(is_custom=False, product__isnull=False):
            if not decrement_stock(product_id=item.product_id, qty=item.quantity):
                logger.error(
                    "Stock ran out during payment",
                    extra={"order_id": order.id, "product_id": item.product_id},
                )
                raise ConflictError(
                    "One or more items went out of stock during payment. Refund will be initiated."
                )
        transaction.on_commit(lambda: _notify_paid(order.id))

    return PaymentConfirmation(order=order)


def get_user_order(*, user, order_id: int) -> Order:
    order = Order.objects.prefetch_related("items").filter(id=int(order_id), user=user).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def verify_cod_order(*, user, order_id: int, otp: str) -> Order:
    order = get_user_order(user=user, order_id=order_id)
    if order.status != Order.Status.UNVERIFIED:
        raise BusinessRuleError("Order does not need verification.", details={"status": order.status})

    verify_phone_otp(phone=order.phone, code=otp)

    return transition_order(
        order_id=order.id,
        to_status=Order.Status.PROCESSING,
        trigger=Trigger.VERIFICATION,
        actor=f"user:{user.id}",
        expected_from=Order.Status.UNVERIFIED,
    )


def set_order_status_by_admin(*, order_id: int, status: str, actor: str) -> Order:
    # Unknown strings never reach the database.
    target = parse_status(status)
    current = Order.objects.filter(id=int(order_id)).values_list("status", flat=True).first()

    with transaction.atomic():
        order = transition_order(
            order_id=order_id,
            to_status=target,
            trigger=Trigger.ADMIN,
            actor=actor,
            expected_from=current,
        )
        if target == Order.Status.CANCELLED and current in STOCK_HELD_STATUSES:
            _release_stock(order)
    return order


def _release_stock(order: Order) -> None:
    for item in order.items.filter(is_custom=False, product__isnull=False):
        restock(product_id=item.product_id, qty=item.quantity)
    logger.info("Stock released for cancelled order %s", order.id, extra={"order_id": order.id})
