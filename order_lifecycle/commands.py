"""Order commands: one full business operation per object.

Each command composes the validation pipeline, the state machine, the
inventory ledger, persistence and the status change publisher. ``execute``
and ``undo`` never raise for expected failures; they return a failed
``CommandResult`` instead. Exceptions that are not ``OrderLifecycleError``
are programming errors and are left to the invoker.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from .domain import (
    Order,
    OrderLine,
    OrderPersistence,
    OrderStatus,
    PaymentGateway,
    ProductLookup,
    UnitOfWork,
)
from .errors import (
    OrderLifecycleError,
    OrderNotFound,
    PaymentDeclined,
    StateViolation,
    ValidationFailure,
)
from .inventory import InventoryLedger
from .publisher import StatusChangePublisher
from .schemas import CreateOrderRequest, OrderOut
from .state_machine import CANCEL, PAYMENT, REFUND, OrderStateMachine
from .validation import ValidationPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of executing or undoing a command.

    Attributes:
        success: Whether the operation completed.
        message: Human-readable summary.
        data: Payload, usually an ``OrderOut``.
        error: Captured cause of a failure, if any.
    """

    success: bool
    message: str
    data: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, message: str = "Command executed successfully", data: Any = None) -> "CommandResult":
        return cls(True, message, data)

    @classmethod
    def fail(cls, message: str, error: BaseException | None = None, data: Any = None) -> "CommandResult":
        return cls(False, message, data, error)


@dataclass
class CommandDependencies:
    """Collaborators shared by every order command."""

    products: ProductLookup
    orders: OrderPersistence
    ledger: InventoryLedger
    uow: UnitOfWork
    publisher: StatusChangePublisher
    pipeline: Optional[ValidationPipeline] = None
    state_machine: OrderStateMachine = field(default_factory=OrderStateMachine)
    payments: Optional[PaymentGateway] = None

    def __post_init__(self):
        if self.pipeline is None:
            self.pipeline = ValidationPipeline.default(self.products, self.ledger)


class Command:
    """Base class for commands. Undo is unsupported unless overridden."""

    @property
    def description(self) -> str:
        return type(self).__name__

    def execute(self) -> CommandResult:
        raise NotImplementedError()

    def undo(self) -> CommandResult:
        return CommandResult.fail("Undo operation not supported for this command")

    def supports_undo(self) -> bool:
        return False


class CreateOrderCommand(Command):
    """Validate a request, reserve stock and persist a new PENDING order.

    Reservations, the order and its lines are written inside one unit of
    work. If anything fails after the first reservation, every line reserved
    so far is released before the failure is reported, so a failed creation
    never leaves stock held without an order.

    Low-stock alerts raised while reserving are published after the unit of
    work has finished. Undo cancels the created order. It can be used once.
    """

    def __init__(self, deps: CommandDependencies, user_id: str, request: CreateOrderRequest):
        self.deps = deps
        self.user_id = user_id
        self.request = request
        self.created_order: Optional[Order] = None

    @property
    def description(self) -> str:
        return f"Create order for user: {self.user_id} with {len(self.request.items)} items"

    def supports_undo(self) -> bool:
        return True

    def execute(self) -> CommandResult:
        logger.info("creating order for user %s with %d items", self.user_id, len(self.request.items))

        validation = self.deps.pipeline.validate(self.request)
        if not validation.valid:
            error = ValidationFailure(validation.step, validation.errors)
            return CommandResult.fail(
                f"Order validation failed: {', '.join(validation.errors)}",
                error=error,
                data=validation,
            )

        order = Order.new(self.user_id, self.request.currency)
        reserved: list[OrderLine] = []
        try:
            with self.deps.ledger.deferred_alerts(), self.deps.uow.atomic():
                try:
                    for item in self.request.items:
                        product = self.deps.products.find_by_id(item.product_id)
                        self.deps.ledger.reserve(product.id, item.quantity)
                        reserved.append(OrderLine(product.id, item.quantity, product.price_cents))
                    order.lines = list(reserved)
                    order.total_cents = order.computed_total_cents()
                    saved = self.deps.orders.save(order)
                except Exception:
                    self._compensate(reserved)
                    raise
        except OrderLifecycleError as exc:
            logger.error("failed to create order for user %s: %s", self.user_id, exc)
            return CommandResult.fail(f"Failed to create order: {exc}", error=exc)

        self.created_order = saved
        logger.info(
            "created order %s for user %s with total %s",
            saved.id, self.user_id, saved.total_cents,
        )
        return CommandResult.ok("Order created successfully", OrderOut.from_order(saved))

    def _compensate(self, reserved: list[OrderLine]) -> None:
        for line in reserved:
            try:
                self.deps.ledger.release(line.product_id, line.quantity)
            except Exception:
                logger.exception(
                    "compensation failed: could not release %s units of %s",
                    line.quantity, line.product_id,
                )

    def undo(self) -> CommandResult:
        if self.created_order is None:
            return CommandResult.fail("Cannot undo: No order was created")

        order_id = self.created_order.id
        logger.info("undoing creation of order %s", order_id)
        result = CancelOrderCommand(self.deps, order_id, "Order creation undone").execute()
        if not result.success:
            return CommandResult.fail(
                f"Failed to undo order creation: {result.message}", error=result.error
            )
        self.created_order = None
        return CommandResult.ok("Order creation undone successfully", result.data)


class _StatusChangeCommand(Command):
    """Load an order, check the operation, move it to a new status, publish.

    The status is written with ``save_transition`` against the status that
    was checked. If another command changed the order in between, nothing is
    written, nothing is published and the command fails.
    """

    operation = ""
    verb = ""
    past = ""

    def __init__(self, deps: CommandDependencies, order_id: uuid.UUID, reason: str | None = None):
        self.deps = deps
        self.order_id = order_id
        self.reason = reason

    def _load(self) -> Order:
        order = self.deps.orders.find_by_id(self.order_id)
        if order is None:
            raise OrderNotFound(self.order_id)
        return order

    def target_status(self, order: Order) -> OrderStatus:
        return OrderStatus.CANCELLED

    def _commit(self, order: Order, old_status: OrderStatus, new_status: OrderStatus) -> Order:
        self.deps.state_machine.validate_transition(order, new_status)
        order.status = new_status
        try:
            with self.deps.uow.atomic():
                saved = self.deps.orders.save_transition(order, old_status)
        except Exception:
            order.status = old_status
            raise
        if saved is None:
            order.status = old_status
            self._raise_conflict(old_status)
        self.deps.publisher.notify_status_change(saved, old_status, new_status)
        return saved

    def _raise_conflict(self, expected: OrderStatus) -> None:
        current = self._load()
        logger.warning(
            "order %s changed concurrently: expected %s, found %s",
            self.order_id, expected.value, current.status.value,
        )
        self.deps.state_machine.validate_operation(current, self.operation)
        raise StateViolation(
            f"Order {self.order_id} changed from {expected.value} to "
            f"{current.status.value} while it was being processed"
        )

    def _failure(self, exc: OrderLifecycleError, data: Any = None) -> CommandResult:
        if isinstance(exc, StateViolation):
            return CommandResult.fail(exc.reason, error=exc, data=data)
        logger.error("failed to %s order %s: %s", self.verb, self.order_id, exc)
        return CommandResult.fail(f"Failed to {self.verb} order: {exc}", error=exc, data=data)

    def execute(self) -> CommandResult:
        logger.info("%s order %s (reason: %s)", self.verb, self.order_id, self.reason)
        try:
            order = self._load()
            self.deps.state_machine.validate_operation(order, self.operation)
            old_status = order.status
            saved = self._commit(order, old_status, self.target_status(order))
        except OrderLifecycleError as exc:
            return self._failure(exc)

        logger.info("%s order %s (was %s)", self.past, self.order_id, old_status.value)
        return CommandResult.ok(f"Order {self.past} successfully", OrderOut.from_order(saved))

    @property
    def description(self) -> str:
        return f"{self.verb.capitalize()} order: {self.order_id} with reason: {self.reason}"


class CancelOrderCommand(_StatusChangeCommand):
    """Cancel a PENDING or PAID order. Cancellations cannot be undone."""

    operation = CANCEL
    verb = "cancel"
    past = "cancelled"

    def undo(self) -> CommandResult:
        logger.warning("undo requested for cancellation of order %s; not supported", self.order_id)
        return CommandResult.fail("Undoing order cancellation is not supported for business reasons")


class RefundOrderCommand(_StatusChangeCommand):
    """Refund a PAID order, which cancels it."""

    operation = REFUND
    verb = "refund"
    past = "refunded"

    def undo(self) -> CommandResult:
        return CommandResult.fail("Undoing an order refund is not supported for business reasons")


class ProcessPaymentCommand(_StatusChangeCommand):
    """Charge a PENDING order.

    An approved charge moves the order to PAID and records the transaction
    id. A declined charge cancels the order. When the gateway cannot be
    reached the order is left untouched. When an approved charge cannot be
    recorded (storage failure, or the order changed meanwhile) the charge is
    voided and the failed result carries the transaction id.
    """

    operation = PAYMENT
    verb = "pay"
    past = "paid"

    def __init__(self, deps: CommandDependencies, order_id: uuid.UUID, idempotency_key: str | None = None):
        super().__init__(deps, order_id, reason="payment")
        self.idempotency_key = idempotency_key

    @property
    def description(self) -> str:
        return f"Process payment for order: {self.order_id}"

    def execute(self) -> CommandResult:
        if self.deps.payments is None:
            return CommandResult.fail("Failed to pay order: no payment gateway configured")
        logger.info("processing payment for order %s", self.order_id)
        try:
            order = self._load()
            self.deps.state_machine.validate_operation(order, self.operation)
            old_status = order.status
            approved, transaction_id = self.deps.payments.charge(
                order.total_cents, order.currency, self.idempotency_key
            )
        except OrderLifecycleError as exc:
            return self._failure(exc)

        if not approved:
            try:
                saved = self._commit(order, old_status, OrderStatus.CANCELLED)
            except OrderLifecycleError as exc:
                return self._failure(exc)
            logger.warning("payment declined for order %s; order cancelled", self.order_id)
            return CommandResult.fail(
                "Payment declined - order cancelled",
                error=PaymentDeclined("Payment declined"),
                data=OrderOut.from_order(saved),
            )

        order.transaction_id = transaction_id
        try:
            saved = self._commit(order, old_status, OrderStatus.PAID)
        except OrderLifecycleError as exc:
            return self._charged_but_not_recorded(order, transaction_id, exc)
        return CommandResult.ok("Payment processed successfully", OrderOut.from_order(saved))

    def _charged_but_not_recorded(
        self, order: Order, transaction_id: uuid.UUID | None, exc: OrderLifecycleError
    ) -> CommandResult:
        logger.error(
            "order %s was charged (transaction %s) but could not be marked paid: %s",
            self.order_id, transaction_id, exc,
        )
        voided = False
        if transaction_id is not None:
            try:
                self.deps.payments.void(transaction_id, order.total_cents, order.currency)
                voided = True
            except OrderLifecycleError:
                logger.exception(
                    "could not void transaction %s for order %s", transaction_id, self.order_id
                )
        result = self._failure(exc, data={"transaction_id": transaction_id, "voided": voided})
        outcome = "voided" if voided else "NOT voided"
        return CommandResult.fail(
            f"{result.message} (charge {transaction_id} {outcome})",
            error=result.error,
            data=result.data,
        )


class CommandFactory:
    """Builds order commands bound to one set of collaborators."""

    def __init__(self, deps: CommandDependencies):
        self.deps = deps

    def create_order(self, user_id: str, request: CreateOrderRequest) -> CreateOrderCommand:
        return CreateOrderCommand(self.deps, user_id, request)

    def cancel_order(self, order_id: uuid.UUID, reason: str) -> CancelOrderCommand:
        return CancelOrderCommand(self.deps, order_id, reason)

    def refund_order(self, order_id: uuid.UUID, reason: str) -> RefundOrderCommand:
        return RefundOrderCommand(self.deps, order_id, reason)

    def process_payment(self, order_id: uuid.UUID, idempotency_key: str | None = None) -> ProcessPaymentCommand:
        return ProcessPaymentCommand(self.deps, order_id, idempotency_key)
