"""Service provider helpers for wiring OrderService with its collaborators.

``get_order_service`` returns a configured ``OrderService``. Persistence is
SQLAlchemy-backed when ``settings.DATABASE_URL`` is set and in-process
otherwise. The payment gateway and low-stock signal use the HTTP clients
when ``settings.USE_HTTP_ADAPTERS`` is truthy, and in-process stubs
otherwise.
"""

from . import settings
from .adapters import (
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
from .commands import CommandDependencies
from .domain import AuditTrail, CustomerNotifier, LoyaltyLedger
from .handlers import (
    AuditLogHandler,
    CustomerNotificationHandler,
    InventoryReleaseHandler,
    LoyaltyPointsHandler,
)
from .http_adapters import HttpLowStockSignal, HttpPaymentsClient
from .inventory import InventoryLedger
from .publisher import StatusChangePublisher
from .repository import (
    SqlInventoryRepository,
    SqlOrderRepository,
    SqlProductLookup,
    SqlStore,
    make_engine,
)
from .service import OrderService


def build_publisher(
    ledger: InventoryLedger,
    notifier: CustomerNotifier,
    loyalty: LoyaltyLedger,
    audit: AuditTrail | None = None,
) -> StatusChangePublisher:
    """Register the canonical handlers in their delivery order."""
    return StatusChangePublisher([
        InventoryReleaseHandler(ledger),
        CustomerNotificationHandler(notifier),
        AuditLogHandler(audit),
        LoyaltyPointsHandler(loyalty),
    ])


def get_order_service(
    notifier: CustomerNotifier | None = None,
    loyalty: LoyaltyLedger | None = None,
    audit: AuditTrail | None = None,
) -> OrderService:
    """Return a configured OrderService instance.

    Args:
        notifier: Customer notification sink; logs only when omitted.
        loyalty: Loyalty ledger; in-memory when omitted.
        audit: Optional audit trail; the audit handler always logs.
    """
    url = getattr(settings, "DATABASE_URL", None)
    if url:
        store = SqlStore(make_engine(url))
        store.create_all()
        products, orders = SqlProductLookup(store), SqlOrderRepository(store)
        inventory, uow = SqlInventoryRepository(store), store
    else:
        products, orders = InMemoryProductCatalog(), InMemoryOrderStore()
        inventory, uow = InMemoryInventoryStore(), InMemoryUnitOfWork()

    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        signal, payments = HttpLowStockSignal(), HttpPaymentsClient()
    else:
        signal, payments = LoggingLowStockSignal(), PaymentsStub()

    ledger = InventoryLedger(inventory, signal)
    publisher = build_publisher(
        ledger,
        notifier or LoggingCustomerNotifier(),
        loyalty or InMemoryLoyaltyLedger(),
        audit or InMemoryAuditTrail(),
    )
    deps = CommandDependencies(
        products=products,
        orders=orders,
        ledger=ledger,
        uow=uow,
        publisher=publisher,
        payments=payments,
    )
    return OrderService(deps)
