"""Reaction handlers subscribed to order status changes.

Each handler owns one side effect: releasing inventory, telling the
customer, writing the audit trail, or keeping loyalty points in step with
payments. They run after the status change has been committed.
"""

import logging

from .domain import (
    AuditEntry,
    AuditTrail,
    CustomerNotifier,
    LoyaltyLedger,
    Order,
    OrderStatus,
    utcnow,
)
from .inventory import InventoryLedger

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("order_lifecycle.audit")


class InventoryReleaseHandler:
    """Returns every reserved unit of an order when it gets cancelled."""

    name = "inventory-release"

    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    def should_notify(self, old_status, new_status) -> bool:
        return new_status == OrderStatus.CANCELLED and old_status != OrderStatus.CANCELLED

    def on_status_changed(self, order: Order, old_status, new_status) -> None:
        logger.info("releasing inventory for cancelled order %s", order.id)
        self.ledger.release_lines(order.lines)


class CustomerNotificationHandler:
    name = "customer-notification"

    def __init__(self, notifier: CustomerNotifier):
        self.notifier = notifier

    def should_notify(self, old_status, new_status) -> bool:
        return new_status in (OrderStatus.PAID, OrderStatus.CANCELLED)

    def on_status_changed(self, order: Order, old_status, new_status) -> None:
        if new_status == OrderStatus.PAID:
            message = "PAID - Payment Confirmed!"
        else:
            reason = (
                "due to payment failure or timeout"
                if old_status == OrderStatus.PENDING
                else "as requested"
            )
            message = f"CANCELLED - {reason}"
        logger.info("notifying user %s about order %s: %s", order.user_id, order.id, message)
        self.notifier.send_order_status_update(order.user_id, order, message)


class AuditLogHandler:
    """Writes one audit entry per actual status change.

    Entries always go to the ``order_lifecycle.audit`` logger and, when an
    ``AuditTrail`` is configured, to that sink as well.
    """

    name = "audit-log"

    def __init__(self, trail: AuditTrail | None = None):
        self.trail = trail

    def should_notify(self, old_status, new_status) -> bool:
        return old_status != new_status

    def on_status_changed(self, order: Order, old_status, new_status) -> None:
        entry = AuditEntry(order.id, old_status, new_status, utcnow())
        audit_logger.info(
            "order %s status changed from %s to %s",
            order.id, old_status.value, new_status.value,
            extra={"order_id": str(order.id), "old_status": old_status.value, "new_status": new_status.value},
        )
        if old_status == OrderStatus.PENDING and new_status == OrderStatus.CANCELLED:
            audit_logger.warning("order %s was cancelled before payment", order.id)
        if self.trail is not None:
            self.trail.record(entry)


def loyalty_points_for(total_cents: int) -> int:
    """One point per whole currency unit spent."""
    return max(total_cents, 0) // 100


class LoyaltyPointsHandler:
    """Awards points on payment and takes them back when a paid order is cancelled."""

    name = "loyalty-points"

    def __init__(self, ledger: LoyaltyLedger):
        self.ledger = ledger

    def should_notify(self, old_status, new_status) -> bool:
        return (old_status, new_status) in (
            (OrderStatus.PENDING, OrderStatus.PAID),
            (OrderStatus.PAID, OrderStatus.CANCELLED),
        )

    def on_status_changed(self, order: Order, old_status, new_status) -> None:
        points = loyalty_points_for(order.total_cents)
        if new_status == OrderStatus.PAID:
            self.ledger.award(order.user_id, points, order.id)
            logger.info("awarded %s loyalty points to user %s for order %s", points, order.user_id, order.id)
        else:
            self.ledger.revoke(order.user_id, points, order.id)
            logger.info("revoked %s loyalty points from user %s for order %s", points, order.user_id, order.id)
