"""Fan-out of committed order status changes to reaction handlers.

Handlers are registered in order at startup. Each one is asked whether it
cares about a given transition and, if so, is invoked inside its own error
boundary: a failing handler is logged and skipped, it never reaches the
caller and never stops the handlers after it.
"""

import logging
from typing import Iterable, List, Protocol

from .domain import Order, OrderStatus

logger = logging.getLogger(__name__)


class StatusChangeHandler(Protocol):
    def should_notify(self, old_status: OrderStatus, new_status: OrderStatus) -> bool:
        raise NotImplementedError()

    def on_status_changed(self, order: Order, old_status: OrderStatus, new_status: OrderStatus) -> None:
        raise NotImplementedError()


def handler_name(handler) -> str:
    return getattr(handler, "name", None) or type(handler).__name__


class StatusChangePublisher:
    """Delivers status changes to an ordered list of handlers."""

    def __init__(self, handlers: Iterable[StatusChangeHandler] = ()):
        self._handlers: List[StatusChangeHandler] = list(handlers)

    @property
    def handlers(self) -> tuple:
        return tuple(self._handlers)

    def register(self, handler: StatusChangeHandler) -> None:
        self._handlers.append(handler)

    def notify_status_change(
        self, order: Order, old_status: OrderStatus, new_status: OrderStatus
    ) -> list[str]:
        """Notify every interested handler of ``old_status -> new_status``.

        Returns:
            list[str]: Names of the handlers that raised. Empty when all
            interested handlers succeeded.
        """
        logger.info(
            "publishing status change for order %s: %s -> %s",
            order.id, old_status.value, new_status.value,
        )
        failed = []
        for handler in self._handlers:
            name = handler_name(handler)
            try:
                if not handler.should_notify(old_status, new_status):
                    continue
                handler.on_status_changed(order, old_status, new_status)
            except Exception:
                logger.exception("handler %s failed for order %s", name, order.id)
                failed.append(name)
        return failed
