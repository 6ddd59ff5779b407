"""Unit tests for the order request validation chain."""

import dataclasses

import pytest

from order_lifecycle import settings
from order_lifecycle.adapters import InMemoryInventoryStore
from order_lifecycle.domain import Product
from order_lifecycle.inventory import InventoryLedger
from order_lifecycle.schemas import CreateOrderRequest
from order_lifecycle.validation import (
    ItemsValidator,
    OrderValidator,
    ValidationPipeline,
    ValidationResult,
)


def request(*items):
    return CreateOrderRequest(items=[{"product_id": p, "quantity": q} for p, q in items])


def test_empty_request_fails_items_validation(catalog, ledger):
    result = ValidationPipeline.default(catalog, ledger).validate(CreateOrderRequest())
    assert not result.valid
    assert result.step == "Items Validation"
    assert result.errors == ("Order must contain at least one item",)


def test_items_validation_lists_every_offending_line(catalog, ledger):
    result = ValidationPipeline.default(catalog, ledger).validate(
        request((None, 1), ("P1", 0), ("P2", 101), ("P3", 1))
    )
    assert result.step == "Items Validation"
    assert result.errors == (
        "Item 1: Product ID is required",
        "Item 2: Quantity must be positive",
        "Item 3: Quantity cannot exceed 100",
    )


def test_blank_product_id_counts_as_missing():
    result = ItemsValidator().validate(request(("   ", 1)))
    assert result.errors == ("Item 1: Product ID is required",)


def test_max_quantity_comes_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "MAX_LINE_QUANTITY", 5, raising=False)
    result = ItemsValidator().validate(request(("P1", 6)))
    assert result.errors == ("Item 1: Quantity cannot exceed 5",)


def test_unknown_products_are_all_reported(catalog, ledger):
    result = ValidationPipeline.default(catalog, ledger).validate(
        request(("P1", 1), ("NOPE", 1), ("GONE", 2))
    )
    assert result.step == "Product Existence Validation"
    assert result.errors == (
        "Item 2: Product with ID NOPE does not exist",
        "Item 3: Product with ID GONE does not exist",
    )


def test_chain_stops_at_first_failure(catalog, ledger):
    # P2 only has 5 units, but existence fails first.
    result = ValidationPipeline.default(catalog, ledger).validate(
        request(("NOPE", 1), ("P2", 50))
    )
    assert result.step == "Product Existence Validation"
    assert len(result.errors) == 1


def test_later_validators_not_run_after_failure(catalog, ledger):
    calls = []

    class Spy(OrderValidator):
        name = "Spy"

        def check(self, req):
            calls.append(req)
            return []

    pipeline = ValidationPipeline([ItemsValidator(), Spy()])
    pipeline.validate(CreateOrderRequest())
    assert calls == []

    pipeline.validate(request(("P1", 1)))
    assert len(calls) == 1


def test_stock_shortfall_reports_requested_and_available(catalog, stock, ledger):
    stock.adjust("P1", -9)
    result = ValidationPipeline.default(catalog, ledger).validate(request(("P1", 2)))
    assert result.step == "Stock Availability Validation"
    assert result.errors == ("Item 1: Insufficient stock. Requested: 2, Available: 1",)


def test_missing_inventory_record_is_a_stock_error(catalog):
    catalog.add(Product("P9", "Unstocked", 100))
    ledger = InventoryLedger(InMemoryInventoryStore({"P1": 10}))
    result = ValidationPipeline.default(catalog, ledger).validate(request(("P9", 1)))
    assert result.step == "Stock Availability Validation"
    assert result.errors == ("Item 1: No inventory found for product P9",)


def test_valid_request_passes(catalog, ledger):
    result = ValidationPipeline.default(catalog, ledger).validate(request(("P1", 2), ("P3", 10)))
    assert result.valid
    assert result.errors == ()


def test_validation_result_is_immutable():
    result = ValidationResult.failure("Items Validation", "bad")
    assert result.errors == ("bad",)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.valid = True


def test_empty_pipeline_is_rejected():
    with pytest.raises(ValueError):
        ValidationPipeline([])
