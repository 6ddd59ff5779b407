"""SQLAlchemy persistence for orders, order lines, products and stock.

The schema has four tables: ``products`` (catalog view), ``stock`` (available
units per product), ``orders`` and ``order_lines`` (lines are deleted with
their order). ``SqlStore`` owns the engine and tracks the session of the
current unit of work in a ContextVar, so every repository call made inside
``SqlStore.atomic()`` joins the same transaction. Calls made outside a unit
of work get a short-lived session that commits on exit.

Stock changes are single conditional UPDATE statements, which the database
serializes per row; a reservation can never take a level below zero.
"""

import contextvars
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .domain import InventoryRecord, Order, OrderLine, OrderStatus, Product
from .errors import InventoryNotFound, PersistenceFailure, ProductNotFound


class Base(DeclarativeBase):
    pass


class ProductRow(Base):
    """Catalog entry read by the order core.

    Attributes:
        id: Product identifier (primary key).
        name: Display name.
        price_cents: Current unit price in cents.
    """

    __tablename__ = "products"
    id = mapped_column(String(64), primary_key=True)
    name = mapped_column(String(200), nullable=False)
    price_cents = mapped_column(Integer, nullable=False)


class StockRow(Base):
    """Available units for a product. Never negative."""

    __tablename__ = "stock"
    product_id = mapped_column(String(64), primary_key=True)
    available = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("available >= 0", name="ck_stock_available_non_negative"),
    )


class OrderRow(Base):
    __tablename__ = "orders"
    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(String(64), nullable=False, index=True)
    status = mapped_column(String(16), nullable=False, default=OrderStatus.PENDING.value)
    total_cents = mapped_column(Integer, nullable=False, default=0)
    currency = mapped_column(String(3), nullable=False, default="EUR")
    created_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    transaction_id = mapped_column(Uuid, nullable=True)

    lines = relationship(
        "OrderLineRow",
        cascade="all, delete-orphan",
        order_by="OrderLineRow.position",
        lazy="selectin",
    )


class OrderLineRow(Base):
    __tablename__ = "order_lines"
    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id = mapped_column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = mapped_column(Integer, nullable=False)
    product_id = mapped_column(String(64), nullable=False)
    quantity = mapped_column(Integer, nullable=False)
    unit_price_cents = mapped_column(Integer, nullable=False)


def make_engine(url: str):
    """Create an engine for ``url``.

    In-memory SQLite URLs get a single shared connection so every session
    sees the same database.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


class SqlStore:
    """Engine, session factory and unit of work shared by the SQL repositories."""

    def __init__(self, engine):
        self.engine = engine
        self._factory = sessionmaker(engine, expire_on_commit=False)
        self._current = contextvars.ContextVar(f"sql_store_session_{id(self)}", default=None)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self):
        """Yield the unit-of-work session, or a fresh one that commits on exit."""
        current = self._current.get()
        if current is not None:
            yield current
            return
        with self._factory() as s:
            try:
                yield s
                s.commit()
            except SQLAlchemyError as exc:
                s.rollback()
                raise PersistenceFailure(str(exc)) from exc

    @contextmanager
    def atomic(self):
        """Run the block in one transaction. Nested calls join the outer one.

        Raises:
            PersistenceFailure: When the database rejects a statement or the
                commit; the transaction is rolled back.
        """
        if self._current.get() is not None:
            yield
            return
        with self._factory() as s:
            token = self._current.set(s)
            try:
                yield
                s.commit()
            except SQLAlchemyError as exc:
                s.rollback()
                raise PersistenceFailure(str(exc)) from exc
            except Exception:
                s.rollback()
                raise
            finally:
                self._current.reset(token)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; all timestamps are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlProductLookup:
    def __init__(self, store: SqlStore):
        self.store = store

    def add(self, product: Product) -> None:
        with self.store.session() as s:
            s.merge(ProductRow(id=product.id, name=product.name, price_cents=product.price_cents))

    def find_by_id(self, product_id: str) -> Product:
        with self.store.session() as s:
            row = s.get(ProductRow, product_id)
            if row is None:
                raise ProductNotFound(product_id)
            return Product(row.id, row.name, row.price_cents)


class SqlInventoryRepository:
    """Inventory persistence on the ``stock`` table."""

    def __init__(self, store: SqlStore):
        self.store = store

    def _level(self, s, product_id: str) -> Optional[int]:
        return s.execute(
            select(StockRow.available).where(StockRow.product_id == product_id)
        ).scalar_one_or_none()

    def find(self, product_id: str) -> InventoryRecord:
        with self.store.session() as s:
            level = self._level(s, product_id)
        if level is None:
            raise InventoryNotFound(product_id)
        return InventoryRecord(product_id, level)

    def save(self, record: InventoryRecord) -> None:
        with self.store.session() as s:
            s.merge(StockRow(product_id=record.product_id, available=record.available))

    def adjust(self, product_id: str, delta: int) -> Optional[int]:
        """Apply ``delta`` with one conditional UPDATE.

        Returns:
            The new level, or None when the UPDATE matched nothing because
            the level would drop below zero.

        Raises:
            InventoryNotFound: When there is no row for the product.
        """
        with self.store.session() as s:
            res = s.execute(
                update(StockRow)
                .where(StockRow.product_id == product_id, StockRow.available + delta >= 0)
                .values(available=StockRow.available + delta)
                .execution_options(synchronize_session=False)
            )
            level = self._level(s, product_id)
            if level is None:
                raise InventoryNotFound(product_id)
            if res.rowcount == 0:
                return None
            return level


class SqlOrderRepository:
    """Order persistence; an order and its lines are saved together."""

    def __init__(self, store: SqlStore):
        self.store = store

    @staticmethod
    def _to_domain(row: OrderRow) -> Order:
        return Order(
            id=row.id,
            user_id=row.user_id,
            lines=[OrderLine(ln.product_id, ln.quantity, ln.unit_price_cents) for ln in row.lines],
            status=OrderStatus(row.status),
            total_cents=row.total_cents,
            currency=row.currency,
            created_at=_aware(row.created_at),
            transaction_id=row.transaction_id,
        )

    def save(self, order: Order) -> Order:
        with self.store.session() as s:
            row = s.get(OrderRow, order.id)
            if row is None:
                row = OrderRow(
                    id=order.id,
                    user_id=order.user_id,
                    created_at=order.created_at,
                    lines=[
                        OrderLineRow(
                            position=i,
                            product_id=line.product_id,
                            quantity=line.quantity,
                            unit_price_cents=line.unit_price_cents,
                        )
                        for i, line in enumerate(order.lines)
                    ],
                )
                s.add(row)
            row.status = order.status.value
            row.total_cents = order.total_cents
            row.currency = order.currency
            row.transaction_id = order.transaction_id
            s.flush()
            return self._to_domain(row)

    def save_transition(self, order: Order, expected_status: OrderStatus) -> Optional[Order]:
        """Conditional UPDATE on (id, status); None when no row matched."""
        with self.store.session() as s:
            res = s.execute(
                update(OrderRow)
                .where(OrderRow.id == order.id, OrderRow.status == expected_status.value)
                .values(status=order.status.value, transaction_id=order.transaction_id)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                return None
            row = s.execute(
                select(OrderRow).where(OrderRow.id == order.id).execution_options(populate_existing=True)
            ).scalar_one()
            return self._to_domain(row)

    def find_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        with self.store.session() as s:
            row = s.get(OrderRow, order_id)
            return self._to_domain(row) if row else None

    def find_by_user_id(self, user_id: str) -> List[Order]:
        with self.store.session() as s:
            rows = s.execute(
                select(OrderRow).where(OrderRow.user_id == user_id).order_by(OrderRow.created_at)
            ).scalars().all()
            return [self._to_domain(r) for r in rows]

    def find_pending_created_before(self, cutoff: datetime) -> List[Order]:
        with self.store.session() as s:
            rows = s.execute(
                select(OrderRow)
                .where(OrderRow.status == OrderStatus.PENDING.value, OrderRow.created_at < cutoff)
                .order_by(OrderRow.created_at)
            ).scalars().all()
            return [self._to_domain(r) for r in rows]
