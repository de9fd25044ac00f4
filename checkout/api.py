from __future__ import annotations

from django.conf import settings
from ninja import Router

from accounts.auth import JWTAuth, StaffJWTAuth

from .models import Order
from .schemas import (
    AdminStatusIn,
    AdminStatusOut,
    CartItemIn,
    OrderCreateIn,
    OrderCreateOut,
    OrderItemOut,
    OrderOut,
    QuoteIn,
    QuoteOut,
    VerifyCodIn,
)
from .services import (
    CartLine,
    CustomerDetails,
    create_order,
    get_user_order,
    price_cart,
    set_order_status_by_admin,
    verify_cod_order,
)

router = Router(tags=["checkout"])
auth = JWTAuth()
staff_auth = StaffJWTAuth()


def _cart_lines(items: list[CartItemIn]) -> list[CartLine]:
    return [
        CartLine(
            quantity=it.quantity,
            product_id=it.productId,
            is_custom=bool(it.isCustom),
            custom_price=it.customPrice,
            custom_title=it.customTitle or "",
            custom_image=it.customImage or "",
        )
        for it in items
    ]


def _payment_method(value: str) -> str:
    return (value or "").strip().lower()


def _order_out(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        status=order.status,
        paymentMethod=order.payment_method,
        customerName=order.customer_name,
        email=order.email,
        phone=order.phone,
        shippingAddress=order.shipping_address,
        subtotal=order.subtotal,
        discountAmount=order.discount_amount,
        shippingCost=order.shipping_cost,
        paymentFee=order.payment_fee,
        amount=order.amount,
        couponCode=order.coupon_code,
        trackingNumber=order.tracking_number,
        courierName=order.courier_name,
        labelUrl=order.label_url,
        createdAt=order.created_at,
        expiresAt=order.expires_at,
        items=[
            OrderItemOut(
                productRef=i.product_ref,
                title=i.title,
                price=i.price,
                quantity=i.quantity,
                image=i.image,
                isCustom=i.is_custom,
            )
            for i in order.items.all()
        ],
    )


@router.post("/quote", response=QuoteOut)
def quote(request, payload: QuoteIn):
    pricing = price_cart(
        lines=_cart_lines(payload.items),
        payment_method=_payment_method(payload.paymentMethod),
        coupon_code=payload.couponCode,
    )
    q = pricing.quote
    return QuoteOut(
        subtotal=q.subtotal,
        couponCode=pricing.coupon.code if pricing.coupon else None,
        couponDiscount=q.coupon_discount,
        prepaidDiscount=q.prepaid_discount,
        discount=q.discount,
        shippingCost=q.shipping,
        paymentFee=q.payment_fee,
        total=q.total,
    )


@router.post("/orders", response=OrderCreateOut, auth=auth)
def order_create(request, payload: OrderCreateIn):
    c = payload.customerDetails
    created = create_order(
        user=request.auth,
        lines=_cart_lines(payload.items),
        customer=CustomerDetails(
            name=c.name,
            email=c.email,
            phone=c.phone,
            address=c.address,
            city=c.city,
            state=c.state,
            pincode=c.pincode,
        ),
        payment_method=_payment_method(payload.paymentMethod),
        coupon_code=payload.couponCode,
    )

    if not created.gateway_order_id:
        return OrderCreateOut(dbOrderId=created.order.id)

    return OrderCreateOut(
        dbOrderId=created.order.id,
        amount=created.amount_minor,
        currency=created.order.currency,
        gatewayOrderId=created.gateway_order_id,
        razorpayKeyId=str(getattr(settings, "RAZORPAY_KEY_ID", "") or "") or None,
    )


@router.get("/orders", response=list[OrderOut], auth=auth)
def order_list(request):
    qs = Order.objects.filter(user=request.auth).prefetch_related("items").order_by("-created_at", "-id")[:50]
    return [_order_out(o) for o in qs]


@router.get("/orders/{order_id}", response=OrderOut, auth=auth)
def order_detail(request, order_id: int):
    return _order_out(get_user_order(user=request.auth, order_id=order_id))


@router.post("/orders/{order_id}/verify-cod", response=OrderOut, auth=auth)
def order_verify_cod(request, order_id: int, payload: VerifyCodIn):
    verify_cod_order(user=request.auth, order_id=order_id, otp=payload.otp)
    return _order_out(get_user_order(user=request.auth, order_id=order_id))


@router.post("/admin/orders/{order_id}/status", response=AdminStatusOut, auth=staff_auth)
def admin_order_status(request, order_id: int, payload: AdminStatusIn):
    actor = request.auth.email or f"user:{request.auth.id}"
    order = set_order_status_by_admin(order_id=order_id, status=payload.status, actor=actor)
    return AdminStatusOut(id=order.id, status=order.status)
