"""Tests for the status change publisher and its reaction handlers."""

import logging

from order_lifecycle.adapters import (
    InMemoryAuditTrail,
    InMemoryLoyaltyLedger,
    LoggingCustomerNotifier,
)
from order_lifecycle.domain import Order, OrderLine, OrderStatus
from order_lifecycle.handlers import (
    AuditLogHandler,
    CustomerNotificationHandler,
    InventoryReleaseHandler,
    LoyaltyPointsHandler,
    loyalty_points_for,
)
from order_lifecycle.publisher import StatusChangePublisher

PENDING, PAID, CANCELLED = OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.CANCELLED


class Recorder:
    def __init__(self, name, calls, wants=True):
        self.name = name
        self.calls = calls
        self.wants = wants

    def should_notify(self, old, new):
        return self.wants

    def on_status_changed(self, order, old, new):
        self.calls.append(self.name)


class Exploding:
    name = "boom"

    def should_notify(self, old, new):
        return True

    def on_status_changed(self, order, old, new):
        raise RuntimeError("handler exploded")


def make_order(status=PENDING):
    order = Order.new("user-1")
    order.lines = [OrderLine("P1", 2, 4999), OrderLine("P3", 4, 250)]
    order.total_cents = order.computed_total_cents()
    order.status = status
    return order


def test_failing_handler_does_not_stop_the_others(caplog):
    calls = []
    publisher = StatusChangePublisher([Recorder("first", calls), Exploding(), Recorder("last", calls)])
    with caplog.at_level(logging.ERROR, logger="order_lifecycle.publisher"):
        failed = publisher.notify_status_change(make_order(), PENDING, PAID)
    assert calls == ["first", "last"]
    assert failed == ["boom"]
    assert "handler boom failed" in caplog.text


def test_uninterested_handlers_are_skipped():
    calls = []
    publisher = StatusChangePublisher([Recorder("no", calls, wants=False), Recorder("yes", calls)])
    assert publisher.notify_status_change(make_order(), PENDING, PAID) == []
    assert calls == ["yes"]


def test_register_keeps_order():
    calls = []
    publisher = StatusChangePublisher()
    publisher.register(Recorder("a", calls))
    publisher.register(Recorder("b", calls))
    publisher.notify_status_change(make_order(), PENDING, CANCELLED)
    assert calls == ["a", "b"]
    assert len(publisher.handlers) == 2


def test_inventory_release_on_cancel(ledger):
    order = make_order(PAID)
    ledger.reserve("P1", 2)
    ledger.reserve("P3", 4)
    handler = InventoryReleaseHandler(ledger)
    assert handler.should_notify(PAID, CANCELLED)
    assert not handler.should_notify(PENDING, PAID)
    assert not handler.should_notify(CANCELLED, CANCELLED)
    handler.on_status_changed(order, PAID, CANCELLED)
    assert ledger.available("P1") == 10
    assert ledger.available("P3") == 100


def test_customer_notification_messages():
    notifier = LoggingCustomerNotifier()
    handler = CustomerNotificationHandler(notifier)
    order = make_order()
    handler.on_status_changed(order, PENDING, PAID)
    handler.on_status_changed(order, PENDING, CANCELLED)
    handler.on_status_changed(order, PAID, CANCELLED)
    assert [m for _, _, m in notifier.sent] == [
        "PAID - Payment Confirmed!",
        "CANCELLED - due to payment failure or timeout",
        "CANCELLED - as requested",
    ]
    assert not handler.should_notify(PAID, PENDING)


def test_audit_handler_records_entry_and_logs(caplog):
    trail = InMemoryAuditTrail()
    handler = AuditLogHandler(trail)
    order = make_order()
    assert not handler.should_notify(PAID, PAID)
    with caplog.at_level(logging.INFO, logger="order_lifecycle.audit"):
        handler.on_status_changed(order, PENDING, CANCELLED)
    entries = trail.for_order(order.id)
    assert len(entries) == 1
    assert (entries[0].old_status, entries[0].new_status) == (PENDING, CANCELLED)
    assert "cancelled before payment" in caplog.text


def test_loyalty_points_awarded_and_revoked():
    loyalty = InMemoryLoyaltyLedger()
    handler = LoyaltyPointsHandler(loyalty)
    order = make_order()  # 9998 + 1000 cents
    assert loyalty_points_for(order.total_cents) == 109
    handler.on_status_changed(order, PENDING, PAID)
    assert loyalty.balance("user-1") == 109
    handler.on_status_changed(order, PAID, CANCELLED)
    assert loyalty.balance("user-1") == 0
    assert not handler.should_notify(PENDING, CANCELLED)
