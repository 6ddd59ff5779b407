"""Order lifecycle orchestration core for an online store."""

from .commands import (
    CancelOrderCommand,
    CommandResult,
    CreateOrderCommand,
    ProcessPaymentCommand,
    RefundOrderCommand,
)
from .domain import Order, OrderLine, OrderStatus, Product
from .invoker import CommandInvoker, SessionInvokers
from .providers import get_order_service
from .service import OrderService

__all__ = [
    "CancelOrderCommand",
    "CommandInvoker",
    "CommandResult",
    "CreateOrderCommand",
    "Order",
    "OrderLine",
    "OrderService",
    "OrderStatus",
    "ProcessPaymentCommand",
    "Product",
    "RefundOrderCommand",
    "SessionInvokers",
    "get_order_service",
]
