"""Order lifecycle state machine.

The whole lifecycle is described by the static tables below: which
operations each status allows, which statuses it may move to, and the
message shown when an operation is refused. ``OrderStateMachine`` is a
stateless reader of those tables.
"""

import logging

from .domain import Order, OrderStatus
from .errors import StateViolation

logger = logging.getLogger(__name__)

PAYMENT = "payment"
CANCEL = "cancel"
REFUND = "refund"

_OPERATION_ALIASES = {"pay": PAYMENT}

# Status -> statuses reachable in one step. CANCELLED is terminal.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
}

# Status -> operations a caller may request. Cancelling a paid order implies a refund.
ALLOWED_OPERATIONS: dict[OrderStatus, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({PAYMENT, CANCEL}),
    OrderStatus.PAID: frozenset({CANCEL, REFUND}),
    OrderStatus.CANCELLED: frozenset(),
}

AVAILABLE_ACTIONS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Available actions: Process Payment, Cancel Order",
    OrderStatus.PAID: "Available actions: Process Refund, Cancel Order (with refund)",
    OrderStatus.CANCELLED: "No actions available - order is cancelled",
}

DISALLOWED_REASONS: dict[tuple[OrderStatus, str], str] = {
    (OrderStatus.PENDING, REFUND): "Cannot refund order - no payment has been made yet",
    (OrderStatus.PAID, PAYMENT): "Cannot process payment - order is already paid",
    (OrderStatus.CANCELLED, PAYMENT): "Cannot process payment - order is cancelled",
    (OrderStatus.CANCELLED, CANCEL): "Cannot cancel order - already cancelled",
    (OrderStatus.CANCELLED, REFUND): (
        "Cannot refund order - order is cancelled "
        "(refund may have been processed during cancellation)"
    ),
}


def normalize_operation(operation: str) -> str:
    op = operation.strip().lower()
    return _OPERATION_ALIASES.get(op, op)


class OrderStateMachine:
    """Stateless decisions about what an order may do next."""

    def can_process_payment(self, order: Order) -> bool:
        return self.is_operation_allowed(order, PAYMENT)

    def can_cancel(self, order: Order) -> bool:
        return self.is_operation_allowed(order, CANCEL)

    def can_refund(self, order: Order) -> bool:
        return self.is_operation_allowed(order, REFUND)

    def is_operation_allowed(self, order: Order, operation: str) -> bool:
        allowed = normalize_operation(operation) in ALLOWED_OPERATIONS[order.status]
        logger.debug(
            "order %s (%s): operation '%s' allowed=%s",
            order.id, order.status.value, operation, allowed,
        )
        return allowed

    def can_transition_to(self, order: Order, target: OrderStatus | str) -> bool:
        target = OrderStatus(target)
        return target in ALLOWED_TRANSITIONS[order.status]

    def available_actions(self, order: Order) -> str:
        return AVAILABLE_ACTIONS[order.status]

    def reason_operation_disallowed(self, order: Order, operation: str) -> str:
        """Return the message explaining why ``operation`` is refused.

        Unknown operations get a generic message naming the status.
        """
        op = normalize_operation(operation)
        reason = DISALLOWED_REASONS.get((order.status, op))
        if reason is None:
            reason = f"Operation '{operation}' is not allowed for {order.status.value.lower()} orders"
        return reason

    def validate_operation(self, order: Order, operation: str) -> None:
        """Raise StateViolation unless ``operation`` is legal for the order.

        Raises:
            StateViolation: Carrying the status-specific reason.
        """
        if not self.is_operation_allowed(order, operation):
            reason = self.reason_operation_disallowed(order, operation)
            logger.warning("operation '%s' rejected for order %s: %s", operation, order.id, reason)
            raise StateViolation(reason)

    def validate_transition(self, order: Order, target: OrderStatus | str) -> None:
        """Raise StateViolation unless the order may move to ``target``."""
        target = OrderStatus(target)
        if not self.can_transition_to(order, target):
            message = (
                f"Cannot transition order {order.id} from "
                f"{order.status.value} to {target.value}"
            )
            logger.warning(message)
            raise StateViolation(message)
