"""
Order and payment status state machines.

Statuses are closed enums with an explicit transition table; anything not
listed is rejected with InvalidTransitionError and the order is left
untouched. Every accepted transition appends exactly one history entry.
"""
from datetime import datetime
from enum import Enum

from shared.errors import InvalidError, InvalidTransitionError
from .models import Order, OrderStatusHistory, PaymentStatusHistory


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.RETURNED: set(),  # Terminal
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.PARTIALLY_REFUNDED: set(),
}


def parse_order_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidError(f"Unknown order status: {value!r}") from None


def parse_payment_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        raise InvalidError(f"Unknown payment status: {value!r}") from None


def can_transition_order(current, target) -> bool:
    return parse_order_status(target) in ORDER_TRANSITIONS[parse_order_status(current)]


def can_transition_payment(current, target) -> bool:
    return parse_payment_status(target) in PAYMENT_TRANSITIONS[parse_payment_status(current)]


def start_history(order: Order, actor: str, now: datetime, note: str = "Order placed"):
    """Initial entries for a freshly built order (pending / pending)."""
    order.order_status = OrderStatus.PENDING.value
    order.payment_status = PaymentStatus.PENDING.value
    order.status_history.append(
        OrderStatusHistory(status=OrderStatus.PENDING.value, timestamp=now, actor=actor, note=note)
    )
    order.payment_history.append(
        PaymentStatusHistory(status=PaymentStatus.PENDING.value, timestamp=now, actor=actor, note=note)
    )


def transition_order_status(order: Order, new_status, actor: str, now: datetime,
                            note: str | None = None) -> OrderStatus:
    """Move the order to `new_status`; returns the previous status."""
    current = parse_order_status(order.order_status)
    target = parse_order_status(new_status)
    if target not in ORDER_TRANSITIONS[current]:
        raise InvalidTransitionError("order_status", current.value, target.value)

    order.order_status = target.value
    order.updated_at = now
    if target is OrderStatus.DELIVERED:
        order.delivered_at = now
    elif target is OrderStatus.CANCELLED:
        order.cancelled_at = now
        order.cancellation_reason = note

    order.status_history.append(OrderStatusHistory(
        status=target.value,
        timestamp=now,
        actor=actor,
        note=note or f"Order status changed to {target.value}",
    ))
    return current


def transition_payment_status(order: Order, new_status, actor: str, now: datetime,
                              note: str | None = None, payment_id: str | None = None) -> PaymentStatus:
    """Move the payment to `new_status`; returns the previous status."""
    current = parse_payment_status(order.payment_status)
    target = parse_payment_status(new_status)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransitionError("payment_status", current.value, target.value)

    order.payment_status = target.value
    order.updated_at = now
    if payment_id:
        order.payment_id = payment_id

    order.payment_history.append(PaymentStatusHistory(
        status=target.value,
        timestamp=now,
        actor=actor,
        note=note or f"Payment status changed to {target.value}",
    ))
    return current
