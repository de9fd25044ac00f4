from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import Context, Engine
from django.utils import timezone

from .models import EmailTemplate, OutboundEmail

logger = logging.getLogger(__name__)

ORDER_CONFIRMATION = "order_confirmation"


@dataclass(frozen=True)
class SendEmailResult:
    ok: bool
    outbound_id: int | None
    error: str | None = None


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def _render(template: EmailTemplate, context: dict[str, Any]) -> RenderedEmail:
    engine = Engine.get_default()
    ctx = Context(context)

    def render(source: str) -> str:
        return engine.from_string(source).render(ctx) if source else ""

    return RenderedEmail(subject=render(template.subject).strip(), text=render(template.body_text), html=render(template.body_html))


def _failed(outbound: OutboundEmail, error: str) -> SendEmailResult:
    outbound.status = OutboundEmail.Status.FAILED
    outbound.error_message = error
    if outbound.pk:
        outbound.save(update_fields=["status", "error_message"])
    else:
        outbound.save()
    return SendEmailResult(ok=False, outbound_id=outbound.id, error=error)


def send_templated_email(
    *,
    template_key: str,
    to_email: str,
    context: dict[str, Any] | None = None,
    from_email: str | None = None,
    order_id: int | None = None,
) -> SendEmailResult:
    """Render an ``EmailTemplate`` and send it, logging every attempt as ``OutboundEmail``.

    SMTP errors are recorded on the log row and reported in the result, not raised.
    """

    sender = from_email or (getattr(settings, "DEFAULT_FROM_EMAIL", "") or "").strip() or None
    outbound = OutboundEmail(to_email=to_email, template_key=template_key, order_id=order_id)

    template = EmailTemplate.objects.filter(key=template_key, is_active=True).first()
    if template is None:
        return _failed(outbound, "Template not found or inactive")

    rendered = _render(template, {"support_email": sender or "", **(context or {})})
    outbound.subject = rendered.subject
    outbound.body_text = rendered.text
    outbound.body_html = rendered.html
    outbound.save()

    msg = EmailMultiAlternatives(subject=rendered.subject, body=rendered.text, from_email=sender, to=[to_email])
    if rendered.html:
        msg.attach_alternative(rendered.html, "text/html")

    try:
        msg.send(fail_silently=False)
    except Exception as exc:
        logger.exception("Email send failed", extra={"order_id": order_id, "template_key": template_key})
        return _failed(outbound, str(exc))

    outbound.status = OutboundEmail.Status.SENT
    outbound.sent_at = timezone.now()
    outbound.save(update_fields=["status", "sent_at"])
    return SendEmailResult(ok=True, outbound_id=outbound.id)


def send_order_confirmation(*, order_id: int) -> SendEmailResult | None:
    from checkout.models import Order

    order = Order.objects.prefetch_related("items").filter(id=int(order_id)).first()
    if order is None:
        return None

    lines = [
        {"title": item.title, "quantity": item.quantity, "price": str(item.price), "line_total": str(item.line_total)}
        for item in order.items.all()
    ]
    return send_templated_email(
        template_key=ORDER_CONFIRMATION,
        to_email=order.email,
        order_id=order.id,
        context={
            "order_id": order.id,
            "customer_name": order.customer_name,
            "items": lines,
            "subtotal": str(order.subtotal),
            "discount": str(order.discount_amount),
            "shipping": str(order.shipping_cost),
            "payment_fee": str(order.payment_fee),
            "amount": str(order.amount),
            "shipping_address": order.shipping_address,
        },
    )
