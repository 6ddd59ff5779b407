"""Pydantic schemas for order requests and order representations.

The request schema is deliberately lenient: missing product ids and
non-positive quantities are accepted here so the validation pipeline can
report every offending line with a business message. The output schema is
the external representation carried by successful command results.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .domain import Order, OrderStatus


class OrderLineRequest(BaseModel):
    """Input schema for a single requested line.

    Attributes:
        product_id: Product identifier. Blank values are normalized to None.
        quantity: Units requested. Range checks happen in the pipeline.
    """

    product_id: Optional[str] = None
    quantity: int = 0

    @field_validator("product_id")
    @classmethod
    def normalize_product_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = v.strip()
        return v2 or None


class CreateOrderRequest(BaseModel):
    """Schema for creating an order.

    Attributes:
        items: Requested lines, in order.
        currency: Optional ISO currency code; the configured default is used
            when omitted.
    """

    items: list[OrderLineRequest] = Field(default_factory=list)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class OrderLineOut(BaseModel):
    product_id: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int


class OrderOut(BaseModel):
    """Read representation of an order."""

    id: uuid.UUID
    user_id: str
    status: OrderStatus
    total_cents: int
    currency: str
    created_at: datetime
    transaction_id: Optional[uuid.UUID] = None
    lines: list[OrderLineOut]

    @classmethod
    def from_order(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            total_cents=order.total_cents,
            currency=order.currency,
            created_at=order.created_at,
            transaction_id=order.transaction_id,
            lines=[
                OrderLineOut(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                )
                for line in order.lines
            ],
        )
