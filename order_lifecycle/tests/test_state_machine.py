"""Unit tests for the order state machine transition table."""

import pytest

from order_lifecycle.domain import Order, OrderStatus
from order_lifecycle.errors import StateViolation
from order_lifecycle.state_machine import OrderStateMachine


def order_in(status):
    order = Order.new("user-1")
    order.status = status
    return order


@pytest.mark.parametrize(
    "status,payment,cancel,refund",
    [
        (OrderStatus.PENDING, True, True, False),
        (OrderStatus.PAID, False, True, True),
        (OrderStatus.CANCELLED, False, False, False),
    ],
)
def test_operation_table(status, payment, cancel, refund):
    sm = OrderStateMachine()
    order = order_in(status)
    assert sm.can_process_payment(order) is payment
    assert sm.can_cancel(order) is cancel
    assert sm.can_refund(order) is refund


@pytest.mark.parametrize(
    "status,targets",
    [
        (OrderStatus.PENDING, {OrderStatus.PAID, OrderStatus.CANCELLED}),
        (OrderStatus.PAID, {OrderStatus.CANCELLED}),
        (OrderStatus.CANCELLED, set()),
    ],
)
def test_transition_table(status, targets):
    sm = OrderStateMachine()
    order = order_in(status)
    legal = {t for t in OrderStatus if sm.can_transition_to(order, t)}
    assert legal == targets


def test_cancelled_is_terminal():
    sm = OrderStateMachine()
    assert sm.can_transition_to(order_in(OrderStatus.PENDING), OrderStatus.CANCELLED)
    assert sm.can_transition_to(order_in(OrderStatus.PAID), OrderStatus.CANCELLED)
    assert not sm.can_transition_to(order_in(OrderStatus.CANCELLED), OrderStatus.CANCELLED)


def test_can_transition_accepts_status_names():
    assert OrderStateMachine().can_transition_to(order_in(OrderStatus.PENDING), "PAID")


def test_validate_operation_cancel_on_cancelled_order():
    with pytest.raises(StateViolation) as e:
        OrderStateMachine().validate_operation(order_in(OrderStatus.CANCELLED), "cancel")
    assert "already cancelled" in e.value.reason


def test_validate_operation_refund_on_pending_order():
    with pytest.raises(StateViolation) as e:
        OrderStateMachine().validate_operation(order_in(OrderStatus.PENDING), "refund")
    assert e.value.reason == "Cannot refund order - no payment has been made yet"


def test_pay_is_an_alias_for_payment():
    sm = OrderStateMachine()
    order = order_in(OrderStatus.PAID)
    assert sm.reason_operation_disallowed(order, "pay") == "Cannot process payment - order is already paid"
    sm.validate_operation(order_in(OrderStatus.PENDING), "pay")


def test_unknown_operation_is_never_allowed():
    sm = OrderStateMachine()
    order = order_in(OrderStatus.PENDING)
    assert not sm.is_operation_allowed(order, "ship")
    assert sm.reason_operation_disallowed(order, "ship") == "Operation 'ship' is not allowed for pending orders"


def test_validate_transition_raises_state_violation():
    order = order_in(OrderStatus.PAID)
    with pytest.raises(StateViolation) as e:
        OrderStateMachine().validate_transition(order, OrderStatus.PENDING)
    assert "from PAID to PENDING" in str(e.value)


def test_available_actions():
    sm = OrderStateMachine()
    assert "Process Payment" in sm.available_actions(order_in(OrderStatus.PENDING))
    assert "Process Refund" in sm.available_actions(order_in(OrderStatus.PAID))
    assert sm.available_actions(order_in(OrderStatus.CANCELLED)) == "No actions available - order is cancelled"
