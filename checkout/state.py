from __future__ import annotations

import logging

from django.utils import timezone

from api.errors import ConflictError, InvalidTransition, NotFoundError, RequestValidationError, TerminalStateError

from .models import Order

logger = logging.getLogger(__name__)

Status = Order.Status


class Trigger:
    PAYMENT = "payment"
    VERIFICATION = "verification"
    SHIPPING = "shipping"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset(str(s) for s in (Status.DELIVERED, Status.CANCELLED, Status.REFUNDED))

# Statuses a shipping label may be generated from.
SHIPPABLE_STATUSES = frozenset(str(s) for s in (Status.PAID, Status.PROCESSING))

# Statuses in which catalog stock has been taken (COD at creation, prepaid at capture).
STOCK_HELD_STATUSES = frozenset(str(s) for s in (Status.UNVERIFIED, Status.PAID, Status.PROCESSING, Status.PRINTING))

# current -> target -> triggers allowed to perform the move
_TABLE = {
    Status.PENDING: {
        Status.PAID: frozenset({Trigger.PAYMENT}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.UNVERIFIED: {
        Status.PAID: frozenset({Trigger.VERIFICATION}),
        Status.PROCESSING: frozenset({Trigger.VERIFICATION, Trigger.ADMIN}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.PAID: {
        Status.PROCESSING: frozenset({Trigger.ADMIN}),
        Status.PRINTING: frozenset({Trigger.ADMIN}),
        Status.SHIPPED: frozenset({Trigger.SHIPPING}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.PROCESSING: {
        Status.PRINTING: frozenset({Trigger.ADMIN}),
        Status.SHIPPED: frozenset({Trigger.SHIPPING}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.PRINTING: {
        Status.PROCESSING: frozenset({Trigger.ADMIN}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.SHIPPED: {
        Status.DELIVERED: frozenset({Trigger.SHIPPING, Trigger.ADMIN}),
        Status.REFUNDED: frozenset({Trigger.ADMIN}),
        Status.CANCELLED: frozenset({Trigger.ADMIN}),
    },
    Status.DELIVERED: {
        Status.REFUNDED: frozenset({Trigger.ADMIN}),
    },
}

# Plain-string keys so lookups with raw DB values hash the same way.
TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    str(current): {str(target): frozenset(triggers) for target, triggers in targets.items()}
    for current, targets in _TABLE.items()
}


def parse_status(value: str) -> str:
    """Map an incoming string onto Order.Status; unknown values are rejected."""

    raw = (value or "").strip().upper()
    if raw not in Status.values:
        raise RequestValidationError(
            "Invalid status",
            details={"status": value, "allowed": list(Status.values)},
        )
    return raw


def allowed_targets(current: str, *, trigger: str) -> list[str]:
    return [
        target
        for target, triggers in TRANSITIONS.get(current, {}).items()
        if trigger in triggers
    ]


def check_transition(current: str, target: str, *, trigger: str) -> None:
    triggers = TRANSITIONS.get(current, {}).get(target)
    if triggers and trigger in triggers:
        return

    if current in TERMINAL_STATUSES:
        # DELIVERED still allows a refund; everything else out of a final state is refused.
        raise TerminalStateError(
            f"Order is in terminal state {current}",
            details={"from": current, "to": target},
        )
    raise InvalidTransition(
        f"Invalid Flow: Cannot jump from {current} to {target}",
        details={"from": current, "to": target, "trigger": str(trigger)},
    )


def transition_order(
    *,
    order_id: int,
    to_status: str,
    trigger: str,
    actor: str = "",
    expected_from: str | None = None,
    fields: dict | None = None,
    extra_filters: dict | None = None,
) -> Order:
    """Move an order to ``to_status`` with a compare-and-swap on its current status.

    ``fields`` are written in the same UPDATE. ``extra_filters`` narrow the CAS
    further (e.g. ``{"tracking_number": ""}``).
    """

    to_status = str(to_status)
    order = Order.objects.filter(id=int(order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})

    current = order.status
    if expected_from is not None and current != expected_from:
        raise ConflictError(
            "Order status changed concurrently",
            details={"expected": expected_from, "actual": current},
        )

    try:
        check_transition(current, to_status, trigger=trigger)
    except InvalidTransition:
        logger.warning(
            "Rejected order transition",
            extra={"order_id": order.id, "from": current, "to": to_status, "trigger": str(trigger), "actor": actor},
        )
        raise

    updates = dict(fields or {})
    updates["status"] = to_status
    updates["updated_at"] = timezone.now()

    qs = Order.objects.filter(id=order.id, status=current)
    if extra_filters:
        qs = qs.filter(**extra_filters)
    updated = qs.update(**updates)
    if updated != 1:
        raise ConflictError(
            "Order was modified by another request",
            details={"order_id": order.id, "from": current, "to": to_status},
        )

    logger.info(
        "Order %s status %s -> %s (%s by %s)",
        order.id,
        current,
        to_status,
        trigger,
        actor or "system",
        extra={"order_id": order.id, "from": current, "to": to_status, "trigger": str(trigger), "actor": actor},
    )

    order.refresh_from_db()
    return order
