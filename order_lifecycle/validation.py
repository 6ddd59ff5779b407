"""Validation chain for incoming order requests.

Validators run in a fixed order (structure, product existence, stock) and
the chain stops at the first one that fails, so a request is only ever
rejected for one concern at a time. A failed result carries the failing
step's errors only.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from . import settings
from .domain import ProductLookup
from .errors import InventoryNotFound, ProductNotFound
from .inventory import InventoryLedger
from .schemas import CreateOrderRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validator or of the whole chain.

    Attributes:
        valid: Verdict.
        step: Name of the validator that produced the result.
        errors: Messages explaining a failure; empty when valid.
    """

    valid: bool
    step: str
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls, step: str) -> "ValidationResult":
        return cls(True, step)

    @classmethod
    def failure(cls, step: str, errors: str | Iterable[str]) -> "ValidationResult":
        if isinstance(errors, str):
            errors = [errors]
        return cls(False, step, tuple(errors))


class OrderValidator:
    """One link of the chain. Subclasses set ``name`` and implement ``check``."""

    name = "Validation"

    def validate(self, request: CreateOrderRequest) -> ValidationResult:
        errors = list(self.check(request))
        if errors:
            return ValidationResult.failure(self.name, errors)
        return ValidationResult.success(self.name)

    def check(self, request: CreateOrderRequest) -> Iterable[str]:
        raise NotImplementedError()


class ItemsValidator(OrderValidator):
    """Structural checks: at least one line, product id set, quantity in range."""

    name = "Items Validation"

    def __init__(self, max_quantity: int | None = None):
        if max_quantity is None:
            max_quantity = getattr(settings, "MAX_LINE_QUANTITY", 100)
        self.max_quantity = max_quantity

    def check(self, request):
        if not request.items:
            yield "Order must contain at least one item"
            return
        for i, item in enumerate(request.items, start=1):
            if item.product_id is None:
                yield f"Item {i}: Product ID is required"
            if item.quantity <= 0:
                yield f"Item {i}: Quantity must be positive"
            elif item.quantity > self.max_quantity:
                yield f"Item {i}: Quantity cannot exceed {self.max_quantity}"


class ProductExistenceValidator(OrderValidator):
    name = "Product Existence Validation"

    def __init__(self, products: ProductLookup):
        self.products = products

    def check(self, request):
        for i, item in enumerate(request.items, start=1):
            try:
                self.products.find_by_id(item.product_id)
            except ProductNotFound:
                yield f"Item {i}: Product with ID {item.product_id} does not exist"


class StockAvailabilityValidator(OrderValidator):
    """Compares each line against the ledger's available units.

    Lines are checked independently; two lines for the same product are each
    compared with the full available amount, the reservation step remains
    the authority.
    """

    name = "Stock Availability Validation"

    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    def check(self, request):
        for i, item in enumerate(request.items, start=1):
            try:
                available = self.ledger.available(item.product_id)
            except InventoryNotFound:
                yield f"Item {i}: No inventory found for product {item.product_id}"
                continue
            if available < item.quantity:
                yield (
                    f"Item {i}: Insufficient stock. "
                    f"Requested: {item.quantity}, Available: {available}"
                )


class ValidationPipeline:
    """Runs validators in order and stops at the first failure."""

    def __init__(self, validators: Sequence[OrderValidator]):
        if not validators:
            raise ValueError("EMPTY_PIPELINE")
        self.validators = list(validators)

    @classmethod
    def default(cls, products: ProductLookup, ledger: InventoryLedger) -> "ValidationPipeline":
        return cls([
            ItemsValidator(),
            ProductExistenceValidator(products),
            StockAvailabilityValidator(ledger),
        ])

    def validate(self, request: CreateOrderRequest) -> ValidationResult:
        logger.info("validating order request with %d items", len(request.items))
        result = None
        for validator in self.validators:
            result = validator.validate(request)
            if not result.valid:
                logger.warning("order validation failed at '%s': %s", result.step, list(result.errors))
                return result
        logger.info("order validation passed")
        return result
