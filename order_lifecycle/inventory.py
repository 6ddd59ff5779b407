"""Inventory ledger: reservation and release of stock units.

The ledger delegates the check-then-decrement to the persistence port's
atomic ``adjust`` so concurrent reservations for the same product cannot
over-reserve. Low-stock alerts are best effort and never fail a reservation.
Inside ``deferred_alerts()`` they are held back and published only once the
block has completed, so no alert call runs while a stock row is locked.
"""

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterable

from . import settings
from .domain import InventoryPersistence, InventoryRecord, LowStockSignal, OrderLine
from .errors import InsufficientStock

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise ValueError("QUANTITY_MUST_BE_POSITIVE")


class InventoryLedger:
    """Reserves and releases stock for products.

    Args:
        store: Inventory persistence port.
        low_stock_signal: Optional alerting collaborator.
        low_stock_threshold: Level at or below which an alert is raised.
            Defaults to ``settings.LOW_STOCK_THRESHOLD``.
    """

    def __init__(
        self,
        store: InventoryPersistence,
        low_stock_signal: LowStockSignal | None = None,
        low_stock_threshold: int | None = None,
    ):
        self.store = store
        self.low_stock_signal = low_stock_signal
        if low_stock_threshold is None:
            low_stock_threshold = getattr(settings, "LOW_STOCK_THRESHOLD", 10)
        self.low_stock_threshold = low_stock_threshold
        self._pending = contextvars.ContextVar(f"ledger_pending_alerts_{id(self)}", default=None)

    def record(self, product_id: str) -> InventoryRecord:
        return self.store.find(product_id)

    def available(self, product_id: str) -> int:
        return self.store.find(product_id).available

    def reserve(self, product_id: str, quantity: int) -> int:
        """Take ``quantity`` units of ``product_id`` out of available stock.

        Returns:
            int: The remaining available units.

        Raises:
            ValueError: ``QUANTITY_MUST_BE_POSITIVE`` for ``quantity <= 0``.
            InsufficientStock: If fewer than ``quantity`` units are available.
            InventoryNotFound: If the product has no inventory record.
        """
        _check_quantity(quantity)
        remaining = self.store.adjust(product_id, -quantity)
        if remaining is None:
            available = self.store.find(product_id).available
            logger.info(
                "reservation refused for %s: requested=%s available=%s",
                product_id, quantity, available,
            )
            raise InsufficientStock(product_id, quantity, available)

        logger.debug("reserved %s units of %s, %s left", quantity, product_id, remaining)
        if remaining <= self.low_stock_threshold:
            pending = self._pending.get()
            if pending is None:
                self._signal_low_stock(product_id, remaining)
            else:
                pending[product_id] = remaining
        return remaining

    def release(self, product_id: str, quantity: int) -> int:
        """Put ``quantity`` units back. No upper bound is enforced.

        Raises:
            ValueError: ``QUANTITY_MUST_BE_POSITIVE`` for ``quantity <= 0``.
        """
        _check_quantity(quantity)
        level = self.store.adjust(product_id, quantity)
        logger.debug("released %s units of %s, now %s", quantity, product_id, level)
        return level

    def release_lines(self, lines: Iterable[OrderLine]) -> None:
        for line in lines:
            self.release(line.product_id, line.quantity)

    @contextmanager
    def deferred_alerts(self):
        """Hold low-stock alerts raised in the block until it completes.

        Only the last level seen per product is published. When the block
        raises, the held alerts are dropped along with the work they
        describe. Nested calls join the outer block.
        """
        if self._pending.get() is not None:
            yield
            return
        pending: dict[str, int] = {}
        token = self._pending.set(pending)
        try:
            yield
        finally:
            self._pending.reset(token)
        for product_id, level in pending.items():
            self._signal_low_stock(product_id, level)

    def _signal_low_stock(self, product_id: str, level: int) -> None:
        logger.warning(
            "low inventory for product %s: %s units left (threshold %s)",
            product_id, level, self.low_stock_threshold,
        )
        if self.low_stock_signal is None:
            return
        try:
            self.low_stock_signal.publish(product_id, level, self.low_stock_threshold)
        except Exception:
            logger.exception("low-stock signal failed for product %s", product_id)
