"""Order service: the surface offered to the HTTP/SOAP layer.

Every mutating operation runs as a command through the caller's own
invoker, selected by ``session_id``, so undo only ever reverses that
caller's last reversible command. Read operations go straight to
persistence and the state machine.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, List

from pydantic import ValidationError

from . import settings
from .commands import CancelOrderCommand, CommandDependencies, CommandFactory, CommandResult
from .domain import Order, OrderStatus, utcnow
from .errors import OrderNotFound, ValidationFailure
from .invoker import CommandInvoker, SessionInvokers
from .schemas import CreateOrderRequest, OrderOut

logger = logging.getLogger(__name__)

SCHEMA_STEP = "Request Schema Validation"


class OrderService:
    """Facade over the order lifecycle core.

    Args:
        deps: Collaborators shared by all commands.
        invokers: Per-session command invokers. A fresh registry is created
            when omitted.
    """

    def __init__(self, deps: CommandDependencies, invokers: SessionInvokers | None = None):
        self.deps = deps
        self.commands = CommandFactory(deps)
        self.invokers = invokers if invokers is not None else SessionInvokers()

    # ---- commands ----

    def invoker(self, session_id: str) -> CommandInvoker:
        return self.invokers.for_session(session_id)

    def create_order(self, user_id: str, request: Any, *, session_id: str) -> CommandResult:
        """Create an order for ``user_id``.

        ``request`` may be a ``CreateOrderRequest`` or a mapping in its
        shape. A mapping that does not fit the schema yields a failed result.
        """
        if not isinstance(request, CreateOrderRequest):
            try:
                request = CreateOrderRequest.model_validate(request)
            except ValidationError as exc:
                messages = [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]
                return CommandResult.fail(
                    f"Order validation failed: {', '.join(messages)}",
                    error=ValidationFailure(SCHEMA_STEP, messages),
                )
        return self.invoker(session_id).execute(self.commands.create_order(user_id, request))

    def cancel_order(self, order_id: uuid.UUID, reason: str, *, session_id: str) -> CommandResult:
        return self.invoker(session_id).execute(self.commands.cancel_order(order_id, reason))

    def refund_order(self, order_id: uuid.UUID, reason: str, *, session_id: str) -> CommandResult:
        return self.invoker(session_id).execute(self.commands.refund_order(order_id, reason))

    def process_payment(
        self, order_id: uuid.UUID, *, session_id: str, idempotency_key: str | None = None
    ) -> CommandResult:
        return self.invoker(session_id).execute(
            self.commands.process_payment(order_id, idempotency_key)
        )

    def undo_last_command(self, *, session_id: str) -> CommandResult:
        return self.invoker(session_id).undo_last()

    def command_history_summary(self, *, session_id: str) -> str:
        return self.invoker(session_id).history_summary()

    def cancel_expired_orders(self, older_than: timedelta | None = None) -> CommandResult:
        """Cancel every PENDING order created before ``now - older_than``.

        This is what the periodic sweep calls. Cancellations are not
        recorded in any undo history.

        Returns:
            CommandResult: ``data`` holds the ids of the cancelled orders.
            The result fails if any single cancellation failed; the others
            are still applied.
        """
        if older_than is None:
            older_than = timedelta(seconds=getattr(settings, "UNPAID_ORDER_TTL_SECONDS", 3600))
        cutoff = utcnow() - older_than
        expired = self.deps.orders.find_pending_created_before(cutoff)
        if not expired:
            return CommandResult.ok("No expired orders to cancel", [])

        reason = f"Automatic cancellation - order unpaid for more than {older_than}"
        cancelled, failures = [], []
        for order in expired:
            result = CancelOrderCommand(self.deps, order.id, reason).execute()
            if result.success:
                cancelled.append(order.id)
            else:
                failures.append(f"{order.id}: {result.message}")
        logger.info("expired-order sweep cancelled %d of %d orders", len(cancelled), len(expired))
        if failures:
            return CommandResult.fail(
                f"Cancelled {len(cancelled)} expired orders, {len(failures)} failed: {'; '.join(failures)}",
                data=cancelled,
            )
        return CommandResult.ok(f"Cancelled {len(cancelled)} expired orders", cancelled)

    # ---- queries ----

    def _require(self, order_id: uuid.UUID) -> Order:
        order = self.deps.orders.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order(self, order_id: uuid.UUID) -> OrderOut:
        return OrderOut.from_order(self._require(order_id))

    def orders_for_user(self, user_id: str) -> List[OrderOut]:
        return [OrderOut.from_order(o) for o in self.deps.orders.find_by_user_id(user_id)]

    def available_actions(self, order_id: uuid.UUID) -> str:
        return self.deps.state_machine.available_actions(self._require(order_id))

    def can_transition_to(self, order_id: uuid.UUID, target: OrderStatus | str) -> bool:
        return self.deps.state_machine.can_transition_to(self._require(order_id), target)
