"""Tests for the SQLAlchemy repositories on an in-memory SQLite database."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from order_lifecycle.adapters import InMemoryLoyaltyLedger, LoggingCustomerNotifier
from order_lifecycle.commands import CancelOrderCommand, CommandDependencies, CreateOrderCommand
from order_lifecycle.domain import InventoryRecord, Order, OrderLine, OrderStatus, Product, utcnow
from order_lifecycle.errors import InventoryNotFound, PersistenceFailure, ProductNotFound
from order_lifecycle.inventory import InventoryLedger
from order_lifecycle.providers import build_publisher
from order_lifecycle.repository import (
    OrderLineRow,
    OrderRow,
    SqlInventoryRepository,
    SqlOrderRepository,
    SqlProductLookup,
    SqlStore,
    make_engine,
)
from order_lifecycle.schemas import CreateOrderRequest


@pytest.fixture
def store():
    s = SqlStore(make_engine("sqlite://"))
    s.create_all()
    return s


@pytest.fixture
def sql_products(store):
    products = SqlProductLookup(store)
    products.add(Product("P1", "Widget", 4999))
    products.add(Product("P2", "Gadget", 1500))
    return products


@pytest.fixture
def sql_stock(store):
    inventory = SqlInventoryRepository(store)
    inventory.save(InventoryRecord("P1", 10))
    inventory.save(InventoryRecord("P2", 5))
    return inventory


@pytest.fixture
def sql_orders(store):
    return SqlOrderRepository(store)


@pytest.fixture
def sql_deps(store, sql_products, sql_stock, sql_orders):
    ledger = InventoryLedger(sql_stock, low_stock_threshold=0)
    return CommandDependencies(
        products=sql_products,
        orders=sql_orders,
        ledger=ledger,
        uow=store,
        publisher=build_publisher(ledger, LoggingCustomerNotifier(), InMemoryLoyaltyLedger()),
    )


def order_for(user_id="user-1", lines=None):
    order = Order.new(user_id)
    order.lines = lines or [OrderLine("P1", 2, 4999), OrderLine("P2", 1, 1500)]
    order.total_cents = order.computed_total_cents()
    return order


def test_product_lookup(sql_products):
    assert sql_products.find_by_id("P1") == Product("P1", "Widget", 4999)
    with pytest.raises(ProductNotFound):
        sql_products.find_by_id("NOPE")


def test_adjust_never_goes_below_zero(sql_stock):
    assert sql_stock.adjust("P1", -11) is None
    assert sql_stock.find("P1").available == 10
    assert sql_stock.adjust("P1", -10) == 0
    assert sql_stock.adjust("P1", 3) == 3


def test_adjust_unknown_product(sql_stock):
    with pytest.raises(InventoryNotFound):
        sql_stock.adjust("NOPE", -1)
    with pytest.raises(InventoryNotFound):
        sql_stock.find("NOPE")


def test_order_round_trip_keeps_line_order(sql_orders):
    order = order_for()
    sql_orders.save(order)
    loaded = sql_orders.find_by_id(order.id)
    assert loaded.lines == order.lines
    assert loaded.total_cents == 11498
    assert loaded.status == OrderStatus.PENDING
    assert loaded.created_at.tzinfo is not None
    assert sql_orders.find_by_id(uuid.uuid4()) is None


def test_save_updates_status_and_transaction(sql_orders):
    order = sql_orders.save(order_for())
    order.status = OrderStatus.PAID
    order.transaction_id = uuid.uuid4()
    sql_orders.save(order)
    loaded = sql_orders.find_by_id(order.id)
    assert loaded.status == OrderStatus.PAID
    assert loaded.transaction_id == order.transaction_id


def test_queries_by_user_and_age(sql_orders):
    old = order_for("user-1")
    old.created_at = utcnow() - timedelta(hours=3)
    sql_orders.save(old)
    sql_orders.save(order_for("user-1"))
    paid = order_for("user-2")
    paid.created_at = utcnow() - timedelta(hours=3)
    paid.status = OrderStatus.PAID
    sql_orders.save(paid)

    assert [o.id for o in sql_orders.find_by_user_id("user-1")][0] == old.id
    assert len(sql_orders.find_by_user_id("user-1")) == 2
    expired = sql_orders.find_pending_created_before(utcnow() - timedelta(hours=1))
    assert [o.id for o in expired] == [old.id]


def test_atomic_rolls_back_everything(store, sql_stock, sql_orders):
    with pytest.raises(RuntimeError):
        with store.atomic():
            sql_stock.adjust("P1", -2)
            sql_orders.save(order_for())
            raise RuntimeError("boom")
    assert sql_stock.find("P1").available == 10
    assert sql_orders.find_by_user_id("user-1") == []


def test_database_errors_become_persistence_failures(store, sql_orders):
    bad = order_for(lines=[OrderLine(None, 1, 100)])
    with pytest.raises(PersistenceFailure):
        with store.atomic():
            sql_orders.save(bad)
    assert sql_orders.find_by_id(bad.id) is None


def test_lines_are_deleted_with_their_order(store, sql_orders):
    order = sql_orders.save(order_for())
    with store.session() as s:
        s.delete(s.get(OrderRow, order.id))
    with store.session() as s:
        assert s.execute(select(func.count()).select_from(OrderLineRow)).scalar_one() == 0


def test_create_and_cancel_on_sql(sql_deps, sql_stock, sql_orders):
    cmd = CreateOrderCommand(sql_deps, "user-1", CreateOrderRequest(items=[{"product_id": "P1", "quantity": 2}]))
    created = cmd.execute()
    assert created.success
    assert created.data.total_cents == 9998
    assert sql_stock.find("P1").available == 8

    cancelled = CancelOrderCommand(sql_deps, created.data.id, "changed mind").execute()
    assert cancelled.success
    assert sql_orders.find_by_id(created.data.id).status == OrderStatus.CANCELLED
    assert sql_stock.find("P1").available == 10


def test_failed_save_rolls_back_reservations(sql_deps, sql_stock, store):
    class Failing(SqlOrderRepository):
        def save(self, order):
            raise PersistenceFailure("disk full")

    sql_deps.orders = Failing(store)
    request = CreateOrderRequest(items=[{"product_id": "P1", "quantity": 2}, {"product_id": "P2", "quantity": 1}])
    result = CreateOrderCommand(sql_deps, "user-1", request).execute()
    assert not result.success
    assert sql_stock.find("P1").available == 10
    assert sql_stock.find("P2").available == 5


def test_save_transition_only_writes_from_the_expected_status(sql_orders):
    order = sql_orders.save(order_for())
    order.status = OrderStatus.PAID
    order.transaction_id = uuid.uuid4()
    saved = sql_orders.save_transition(order, OrderStatus.PENDING)
    assert saved.status == OrderStatus.PAID
    assert saved.transaction_id == order.transaction_id
    assert saved.lines == order.lines

    order.status = OrderStatus.CANCELLED
    assert sql_orders.save_transition(order, OrderStatus.PENDING) is None
    assert sql_orders.find_by_id(order.id).status == OrderStatus.PAID
    assert sql_orders.save_transition(order_for(), OrderStatus.PENDING) is None


def test_cancel_from_a_stale_read_releases_nothing(sql_deps, sql_stock, store):
    class StaleFirstRead(SqlOrderRepository):
        stale = None

        def find_by_id(self, order_id):
            if self.stale is not None:
                order, self.stale = self.stale, None
                return order
            return super().find_by_id(order_id)

    sql_deps.orders = repo = StaleFirstRead(store)
    created = CreateOrderCommand(
        sql_deps, "user-1", CreateOrderRequest(items=[{"product_id": "P1", "quantity": 2}])
    ).execute()
    snapshot = repo.find_by_id(created.data.id)
    assert CancelOrderCommand(sql_deps, created.data.id, "first").execute().success
    assert sql_stock.find("P1").available == 10

    repo.stale = snapshot
    result = CancelOrderCommand(sql_deps, created.data.id, "second").execute()
    assert not result.success
    assert "already cancelled" in result.message
    assert sql_stock.find("P1").available == 10
