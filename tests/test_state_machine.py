from datetime import datetime, timedelta, timezone

import pytest

from shared.errors import InvalidError, InvalidTransitionError
from services.order_service.models import Order
from services.order_service.state_machine import (
    ORDER_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    can_transition_order,
    can_transition_payment,
    start_history,
    transition_order_status,
    transition_payment_status,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(hours=2)


@pytest.fixture
def order():
    o = Order(user_id=1)
    start_history(o, actor="user:1", now=NOW)
    return o


def test_new_order_starts_pending_with_history(order):
    assert order.order_status == "pending"
    assert order.payment_status == "pending"
    assert [h.status for h in order.status_history] == ["pending"]
    assert [h.status for h in order.payment_history] == ["pending"]


def test_happy_path_to_delivered(order):
    for status in ("confirmed", "processing", "shipped", "delivered"):
        transition_order_status(order, status, actor="admin:9", now=LATER)

    assert order.order_status == "delivered"
    assert order.delivered_at == LATER
    assert [h.status for h in order.status_history] == [
        "pending", "confirmed", "processing", "shipped", "delivered",
    ]
    assert order.status_history[-1].actor == "admin:9"
    assert order.status_history[-1].note == "Order status changed to delivered"


def test_transition_returns_previous_status(order):
    assert transition_order_status(order, OrderStatus.CONFIRMED, "admin:9", LATER) is OrderStatus.PENDING


def test_cancel_records_time_and_reason(order):
    transition_order_status(order, "cancelled", actor="admin:9", now=LATER, note="customer asked")

    assert order.cancelled_at == LATER
    assert order.cancellation_reason == "customer asked"
    assert order.status_history[-1].note == "customer asked"


@pytest.mark.parametrize("path, target", [
    ([], "shipped"),
    (["confirmed"], "delivered"),
    (["confirmed", "processing", "shipped"], "cancelled"),
    (["cancelled"], "confirmed"),
    (["confirmed", "processing", "shipped", "delivered"], "pending"),
])
def test_rejected_transition_leaves_order_untouched(order, path, target):
    for status in path:
        transition_order_status(order, status, "admin:9", NOW)
    before_status = order.order_status
    before_history = len(order.status_history)

    with pytest.raises(InvalidTransitionError) as exc:
        transition_order_status(order, target, "admin:9", LATER)

    assert exc.value.current == before_status
    assert exc.value.requested == target
    assert order.order_status == before_status
    assert len(order.status_history) == before_history


def test_unknown_status_is_invalid(order):
    with pytest.raises(InvalidError):
        transition_order_status(order, "teleported", "admin:9", LATER)
    assert order.order_status == "pending"


def test_terminal_statuses_have_no_exits():
    assert ORDER_TRANSITIONS[OrderStatus.CANCELLED] == set()
    assert ORDER_TRANSITIONS[OrderStatus.RETURNED] == set()
    assert can_transition_order("delivered", "returned")
    assert not can_transition_order("shipped", "cancelled")


def test_payment_flow(order):
    old = transition_payment_status(order, "paid", actor="admin:9", now=LATER, payment_id="pi_123")

    assert old is PaymentStatus.PENDING
    assert order.payment_status == "paid"
    assert order.payment_id == "pi_123"
    assert [h.status for h in order.payment_history] == ["pending", "paid"]

    transition_payment_status(order, "refunded", actor="admin:9", now=LATER)
    assert order.payment_status == "refunded"


def test_payment_cannot_leave_failed(order):
    transition_payment_status(order, "failed", actor="system", now=LATER)

    with pytest.raises(InvalidTransitionError):
        transition_payment_status(order, "paid", actor="admin:9", now=LATER)
    assert order.payment_status == "failed"
    assert len(order.payment_history) == 2


def test_payment_table():
    assert can_transition_payment("paid", "partially_refunded")
    assert not can_transition_payment("pending", "refunded")
    assert not can_transition_payment("refunded", "paid")
