"""Shared fixtures: an in-process store with three products.

P1 costs 49.99 with 10 units, P2 costs 15.00 with 5 units and P3 costs 2.50
with 100 units.
"""

import pytest

from order_lifecycle.adapters import (
    InMemoryAuditTrail,
    InMemoryInventoryStore,
    InMemoryLoyaltyLedger,
    InMemoryOrderStore,
    InMemoryProductCatalog,
    InMemoryUnitOfWork,
    LoggingCustomerNotifier,
    LoggingLowStockSignal,
    PaymentsStub,
)
from order_lifecycle.commands import CommandDependencies
from order_lifecycle.domain import Product
from order_lifecycle.inventory import InventoryLedger
from order_lifecycle.providers import build_publisher
from order_lifecycle.service import OrderService


@pytest.fixture
def catalog():
    return InMemoryProductCatalog([
        Product("P1", "Widget", 4999),
        Product("P2", "Gadget", 1500),
        Product("P3", "Gizmo", 250),
    ])


@pytest.fixture
def stock():
    return InMemoryInventoryStore({"P1": 10, "P2": 5, "P3": 100})


@pytest.fixture
def signal():
    return LoggingLowStockSignal()


@pytest.fixture
def ledger(stock, signal):
    return InventoryLedger(stock, signal, low_stock_threshold=3)


@pytest.fixture
def orders():
    return InMemoryOrderStore()


@pytest.fixture
def notifier():
    return LoggingCustomerNotifier()


@pytest.fixture
def loyalty():
    return InMemoryLoyaltyLedger()


@pytest.fixture
def audit():
    return InMemoryAuditTrail()


@pytest.fixture
def payments():
    return PaymentsStub()


@pytest.fixture
def deps(catalog, orders, ledger, notifier, loyalty, audit, payments):
    return CommandDependencies(
        products=catalog,
        orders=orders,
        ledger=ledger,
        uow=InMemoryUnitOfWork(),
        publisher=build_publisher(ledger, notifier, loyalty, audit),
        payments=payments,
    )


@pytest.fixture
def service(deps):
    return OrderService(deps)
