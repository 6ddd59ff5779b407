"""In-process adapters for the order lifecycle ports.

These implementations keep everything in memory and make no network calls.
They back the service in tests and local development where deterministic
behavior matters more than durability.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .domain import AuditEntry, InventoryRecord, Order, OrderStatus, Product
from .errors import InventoryNotFound, ProductNotFound

logger = logging.getLogger(__name__)


class InMemoryProductCatalog:
    """Product lookup backed by a dict keyed by product id."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {p.id: p for p in products}

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    def find_by_id(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ProductNotFound(product_id) from None


class InMemoryOrderStore:
    """Order persistence holding deep copies, so callers never share state with the store."""

    def __init__(self):
        self._orders: Dict[uuid.UUID, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    def save_transition(self, order: Order, expected_status: OrderStatus) -> Optional[Order]:
        with self._lock:
            current = self._orders.get(order.id)
            if current is None or current.status != expected_status:
                return None
            current.status = order.status
            current.transaction_id = order.transaction_id
            saved = copy.deepcopy(current)
        return saved

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def find_by_user_id(self, user_id: str) -> List[Order]:
        with self._lock:
            found = [o for o in self._orders.values() if o.user_id == user_id]
        return [copy.deepcopy(o) for o in sorted(found, key=lambda o: o.created_at)]

    def find_pending_created_before(self, cutoff: datetime) -> List[Order]:
        with self._lock:
            found = [
                o for o in self._orders.values()
                if o.status == OrderStatus.PENDING and o.created_at < cutoff
            ]
        return [copy.deepcopy(o) for o in sorted(found, key=lambda o: o.created_at)]

    def __len__(self) -> int:
        return len(self._orders)


class InMemoryInventoryStore:
    """Inventory persistence with a single lock serializing every adjustment."""

    def __init__(self, levels: Dict[str, int] | None = None):
        self._levels: Dict[str, int] = dict(levels or {})
        self._lock = threading.Lock()

    def find(self, product_id: str) -> InventoryRecord:
        with self._lock:
            if product_id not in self._levels:
                raise InventoryNotFound(product_id)
            return InventoryRecord(product_id, self._levels[product_id])

    def save(self, record: InventoryRecord) -> None:
        if record.available < 0:
            raise ValueError("NEGATIVE_STOCK")
        with self._lock:
            self._levels[record.product_id] = record.available

    def adjust(self, product_id: str, delta: int) -> Optional[int]:
        with self._lock:
            if product_id not in self._levels:
                raise InventoryNotFound(product_id)
            new_level = self._levels[product_id] + delta
            if new_level < 0:
                return None
            self._levels[product_id] = new_level
            return new_level


class InMemoryUnitOfWork:
    """Unit of work for the in-process stores.

    Writes to in-memory stores are applied immediately, so ``atomic`` only
    marks the boundary; commands compensate their own partial work.
    """

    def __init__(self):
        self.depth = 0
        self.commits = 0

    @contextmanager
    def atomic(self):
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1
        if self.depth == 0:
            self.commits += 1


class LoggingLowStockSignal:
    """Low-stock signal that only logs; keeps the alerts for inspection."""

    def __init__(self):
        self.alerts: List[Tuple[str, int, int]] = []

    def publish(self, product_id: str, current_level: int, threshold: int) -> None:
        self.alerts.append((product_id, current_level, threshold))
        logger.warning(
            "LOW STOCK: product %s at %s units (threshold %s)",
            product_id, current_level, threshold,
        )


class PaymentsStub:
    """Stub payment gateway.

    Approves charges with a positive amount and returns a generated UUID as
    the transaction id. Non-positive amounts are declined. Voided
    transactions are kept in ``voided``.
    """

    def __init__(self):
        self.voided: List[uuid.UUID] = []

    def charge(self, amount_cents: int, currency: str, idempotency_key: str | None = None):
        if amount_cents <= 0:
            return (False, None)
        return (True, uuid.uuid4())

    def void(self, transaction_id: uuid.UUID, amount_cents: int, currency: str) -> None:
        self.voided.append(transaction_id)
        logger.info("voided transaction %s (%s %s)", transaction_id, amount_cents, currency)


class LoggingCustomerNotifier:
    def __init__(self):
        self.sent: List[Tuple[str, uuid.UUID, str]] = []

    def send_order_status_update(self, user_id: str, order: Order, message: str) -> None:
        self.sent.append((user_id, order.id, message))
        logger.info("notification to user %s for order %s: %s", user_id, order.id, message)


class InMemoryLoyaltyLedger:
    """Loyalty balances per user. Balances may go negative on revocation."""

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self._lock = threading.Lock()

    def award(self, user_id: str, points: int, order_id: uuid.UUID) -> None:
        with self._lock:
            self.balances[user_id] = self.balances.get(user_id, 0) + points

    def revoke(self, user_id: str, points: int, order_id: uuid.UUID) -> None:
        with self._lock:
            self.balances[user_id] = self.balances.get(user_id, 0) - points

    def balance(self, user_id: str) -> int:
        return self.balances.get(user_id, 0)


class InMemoryAuditTrail:
    def __init__(self):
        self.entries: List[AuditEntry] = []

    def record(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def for_order(self, order_id: uuid.UUID) -> List[AuditEntry]:
        return [e for e in self.entries if e.order_id == order_id]
