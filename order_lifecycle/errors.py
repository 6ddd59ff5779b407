"""Error types raised inside the order lifecycle core.

Every error carries a short upper-case ``code`` so callers can map failures
to responses without parsing messages. Commands never let these escape:
they are converted into failed ``CommandResult`` instances.
"""


class OrderLifecycleError(Exception):
    """Base class for all expected failures of the core."""

    code = "ORDER_ERROR"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)

    @property
    def message(self) -> str:
        return str(self)


class ValidationFailure(OrderLifecycleError):
    """An order request was rejected by a validation step.

    Attributes:
        step: Name of the validator that failed.
        errors: Human-readable messages produced by that validator.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, step: str, errors):
        self.step = step
        self.errors = tuple(errors)
        super().__init__(f"{step} failed: {', '.join(self.errors)}")


class StateViolation(OrderLifecycleError):
    """An operation or transition is not legal in the order's status."""

    code = "STATE_VIOLATION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InsufficientStock(StateViolation):
    """A reservation asked for more units than are available."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Requested: {requested}, Available: {available}"
        )


class NotFound(OrderLifecycleError):
    code = "NOT_FOUND"
    entity = "Entity"

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"{self.entity} {identifier} not found")


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"
    entity = "Order"


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"
    entity = "Product"


class InventoryNotFound(NotFound):
    code = "INVENTORY_NOT_FOUND"
    entity = "Inventory for product"


class PersistenceFailure(OrderLifecycleError):
    """A storage operation failed. The underlying error is the ``__cause__``."""

    code = "PERSISTENCE_FAILURE"


class PaymentFailure(OrderLifecycleError):
    """The payment gateway could not be reached or answered unexpectedly."""

    code = "PAYMENT_UNAVAILABLE"


class PaymentDeclined(OrderLifecycleError):
    """The payment gateway refused the charge."""

    code = "PAYMENT_DECLINED"
