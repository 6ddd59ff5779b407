"""Domain models and ports for the order lifecycle.

This module contains the dataclasses that describe orders, their lines,
products and inventory records, plus the protocol definitions (ports) for
every collaborator the core depends on: product lookup, order and inventory
persistence, the unit of work, low-stock alerting, payment execution and the
side-effect sinks used by status change handlers.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ContextManager, List, Optional, Protocol, Tuple

from . import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Possible order statuses.

    PENDING is the initial status. CANCELLED is terminal; refunds are modelled
    as cancellations of paid orders.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class OrderLine:
    """A single line of an order.

    Attributes:
        product_id: Identifier of the ordered product.
        quantity: Number of units ordered.
        unit_price_cents: Product price captured when the order was placed.
            It never follows later catalog price changes.
    """

    product_id: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Order identifier, assigned on construction.
        user_id: Identifier of the owning user.
        lines: Lines owned by the order; they live and die with it.
        status: Current OrderStatus.
        total_cents: Order total in integer cents. Always equal to the sum of
            the line totals once the order has been persisted.
        currency: ISO currency code (e.g. 'EUR').
        created_at: Creation timestamp (UTC).
        transaction_id: Payment transaction id once the order is paid.
    """

    id: uuid.UUID
    user_id: str
    lines: List[OrderLine] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    total_cents: int = 0
    currency: str = "EUR"
    created_at: datetime = field(default_factory=utcnow)
    transaction_id: Optional[uuid.UUID] = None

    @classmethod
    def new(cls, user_id: str, currency: str | None = None) -> "Order":
        """Build an empty PENDING order for ``user_id`` with a fresh id."""
        return cls(
            id=uuid.uuid4(),
            user_id=user_id,
            currency=currency or getattr(settings, "DEFAULT_CURRENCY", "EUR"),
        )

    def computed_total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)


@dataclass(frozen=True)
class Product:
    """Catalog view of a product as seen by the order core."""

    id: str
    name: str
    price_cents: int


@dataclass
class InventoryRecord:
    """Available units of a product. ``available`` never drops below zero."""

    product_id: str
    available: int


@dataclass(frozen=True)
class AuditEntry:
    order_id: uuid.UUID
    old_status: OrderStatus
    new_status: OrderStatus
    at: datetime


# ---- Ports (DIP) ----
class ProductLookup(Protocol):
    """Port for resolving products from the catalog."""

    def find_by_id(self, product_id: str) -> Product:
        """Return the product with ``product_id``.

        Raises:
            ProductNotFound: If the catalog has no such product.
        """
        raise NotImplementedError()


class OrderPersistence(Protocol):
    """Port for storing and loading orders together with their lines."""

    def save(self, order: Order) -> Order:
        raise NotImplementedError()

    def save_transition(self, order: Order, expected_status: OrderStatus) -> Optional[Order]:
        """Write the status and transaction id of ``order`` if the stored
        status is still ``expected_status``.

        The check and the write happen as one step, so of two callers moving
        the same order from the same status only one succeeds.

        Returns:
            The saved order, or None when the stored status differs (or the
            order does not exist) and nothing was written.
        """
        raise NotImplementedError()

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        raise NotImplementedError()

    def find_by_user_id(self, user_id: str) -> List[Order]:
        raise NotImplementedError()

    def find_pending_created_before(self, cutoff: datetime) -> List[Order]:
        raise NotImplementedError()


class InventoryPersistence(Protocol):
    """Port for inventory records.

    ``adjust`` must apply ``delta`` atomically per product and refuse to take
    the level below zero; implementations serialize concurrent callers on the
    same product (row lock, conditional UPDATE or an in-process lock).
    """

    def find(self, product_id: str) -> InventoryRecord:
        """Raises InventoryNotFound when the product has no record."""
        raise NotImplementedError()

    def save(self, record: InventoryRecord) -> None:
        raise NotImplementedError()

    def adjust(self, product_id: str, delta: int) -> Optional[int]:
        """Add ``delta`` to the available units.

        Returns:
            The new level, or None when the change would go below zero (in
            which case nothing is written).

        Raises:
            InventoryNotFound: When the product has no record.
        """
        raise NotImplementedError()


class UnitOfWork(Protocol):
    """Groups persistence writes so they commit or roll back together."""

    def atomic(self) -> ContextManager[None]:
        raise NotImplementedError()


class LowStockSignal(Protocol):
    """Best-effort alert raised when a product runs low."""

    def publish(self, product_id: str, current_level: int, threshold: int) -> None:
        raise NotImplementedError()


class PaymentGateway(Protocol):
    """Port describing payment execution used by the payment command."""

    def charge(
        self, amount_cents: int, currency: str, idempotency_key: str | None = None
    ) -> Tuple[bool, Optional[uuid.UUID]]:
        """Charge the given amount.

        Returns:
            ``(approved, transaction_id)``; ``transaction_id`` is None for
            declined charges.

        Raises:
            PaymentFailure: When the gateway cannot be reached.
        """
        raise NotImplementedError()

    def void(self, transaction_id: uuid.UUID, amount_cents: int, currency: str) -> None:
        """Reverse an approved charge that could not be recorded on its order.

        Raises:
            PaymentFailure: When the gateway cannot be reached or refuses.
        """
        raise NotImplementedError()


class CustomerNotifier(Protocol):
    def send_order_status_update(self, user_id: str, order: Order, message: str) -> None:
        raise NotImplementedError()


class LoyaltyLedger(Protocol):
    def award(self, user_id: str, points: int, order_id: uuid.UUID) -> None:
        raise NotImplementedError()

    def revoke(self, user_id: str, points: int, order_id: uuid.UUID) -> None:
        raise NotImplementedError()


class AuditTrail(Protocol):
    def record(self, entry: AuditEntry) -> None:
        raise NotImplementedError()
