"""
Pytest fixtures for the inventory ledger test suite.

Provides:
- A file-backed SQLite database per test (SAVEPOINT-capable)
- A LedgerHarness that seeds locations and orders and drives the writer,
  each call in its own short transaction
- A legacy_ledger fixture for seeding history the current writer refuses
  to produce (duplicate order effects, NULL locations, broken snapshots)
- Structured log capture

Environment Variables:
- INVENTORY_TEST_POSTGRES_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from datetime import UTC, datetime, timedelta
from io import StringIO

import pytest
from sqlalchemy import select, text

from inventory_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.dtos import MovementSnapshot, OrderLine
from inventory_kernel.domain.movement_types import MovementType, OrderStatus, ReturnStatus
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.models import (
    ORDER_EFFECT_INDEXES,
    InventoryMovement,
    Location,
    LocationStock,
    OrderRecord,
    ReturnLineRecord,
    ReturnRecord,
)
from inventory_kernel.services.ledger_writer import AppendResult, LedgerWriter
from inventory_kernel.services.stock_lifecycle import LifecycleResult, StockLifecycleService
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.append(...)
            logs = captured_logs()
            assert any(r["message"] == "movement_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'inventory_ledger.db'}"


@pytest.fixture
def engine(db_url):
    """Fresh schema per test, immutability listeners active."""
    eng = init_engine_from_url(db_url)
    create_tables()
    register_immutability_listeners()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def clock():
    return DeterministicClock(BASE_TIME)


# =============================================================================
# Ledger harness
# =============================================================================


class LedgerHarness:
    """
    Test-side driver for the ledger.

    Every method opens and commits its own transaction, so no connection
    holds a SQLite lock while a routine under test is running.
    """

    def __init__(self, session_factory, clock):
        self.session_factory = session_factory
        self.clock = clock
        self._order_seq = 1000

    def transaction(self):
        return session_scope(self.session_factory)

    # -- reference data -------------------------------------------------

    def add_location(
        self,
        code: str,
        is_default: bool = False,
        is_active: bool = True,
        name: str | None = None,
    ) -> int:
        with self.transaction() as session:
            location = Location(
                code=code,
                name=name or f"Location {code}",
                is_default=is_default,
                is_active=is_active,
            )
            session.add(location)
            session.flush()
            return location.id

    def set_location_active(self, location_id: int, is_active: bool) -> None:
        with self.transaction() as session:
            session.get(Location, location_id).is_active = is_active

    def add_order(
        self,
        status: OrderStatus = OrderStatus.CONFIRMED,
        fulfillment_location_id: int | None = None,
        order_number: str | None = None,
    ) -> int:
        self._order_seq += 1
        with self.transaction() as session:
            order = OrderRecord(
                order_number=order_number or f"SO-{self._order_seq}",
                status=status,
                fulfillment_location_id=fulfillment_location_id,
            )
            session.add(order)
            session.flush()
            return order.id

    def set_order_status(self, order_id: int, status: OrderStatus) -> None:
        with self.transaction() as session:
            session.get(OrderRecord, order_id).status = status

    def add_return(
        self,
        order_id: int,
        *lines: tuple[int, int],
        status: ReturnStatus = ReturnStatus.COMPLETED,
        return_number: str | None = None,
    ) -> int:
        """A customer return as the order collaborator would record it."""
        self._order_seq += 1
        with self.transaction() as session:
            record = ReturnRecord(
                order_id=order_id,
                return_number=return_number or f"RMA-{self._order_seq}",
                status=status,
            )
            record.lines = [
                ReturnLineRecord(product_variant_id=v, quantity=q) for v, q in lines
            ]
            session.add(record)
            session.flush()
            return record.id

    # -- writes through the ledger ---------------------------------------

    def append(self, product_variant_id, location_id, movement_type, quantity, **kwargs) -> AppendResult:
        self.clock.advance()
        with self.transaction() as session:
            return LedgerWriter(session, self.clock).append(
                product_variant_id, location_id, movement_type, quantity, **kwargs
            )

    def receive(self, product_variant_id: int, location_id: int, quantity: int) -> AppendResult:
        return self.append(product_variant_id, location_id, MovementType.PURCHASE_RECEIVED, quantity)

    def lifecycle(self, operation: str, *args, **kwargs) -> LifecycleResult:
        """Run one StockLifecycleService operation in its own transaction."""
        self.clock.advance()
        with self.transaction() as session:
            service = StockLifecycleService(session, self.clock)
            return getattr(service, operation)(*args, **kwargs)

    def sell(self, order_id: int, *lines: tuple[int, int]) -> LifecycleResult:
        return self.lifecycle("deduct_for_order", order_id, [OrderLine(v, q) for v, q in lines])

    def cancel(self, order_id: int, *lines: tuple[int, int]) -> LifecycleResult:
        return self.lifecycle(
            "restore_for_cancellation", order_id, [OrderLine(v, q) for v, q in lines]
        )

    def return_(self, order_id: int, *lines: tuple[int, int]) -> LifecycleResult:
        return self.lifecycle("restore_for_return", order_id, [OrderLine(v, q) for v, q in lines])

    # -- reads -----------------------------------------------------------

    def scope_quantity(self, product_variant_id: int, location_id: int) -> int | None:
        with self.transaction() as session:
            return ProjectionStore(session).scope_quantity(product_variant_id, location_id)

    def aggregate(self, product_variant_id: int) -> int | None:
        with self.transaction() as session:
            return ProjectionStore(session).aggregate_quantity(product_variant_id)

    def movements(self, product_variant_id: int | None = None) -> list[MovementSnapshot]:
        with self.transaction() as session:
            rows = MovementStore(session).all_movements()
        if product_variant_id is None:
            return rows
        return [m for m in rows if m.product_variant_id == product_variant_id]

    def movement(self, movement_id: int) -> MovementSnapshot | None:
        with self.transaction() as session:
            row = session.get(InventoryMovement, movement_id)
            return row.to_snapshot() if row is not None else None

    def movement_count(self, movement_type: MovementType | None = None, order_id=None) -> int:
        rows = self.movements()
        return sum(
            1
            for m in rows
            if (movement_type is None or m.movement_type == movement_type)
            and (order_id is None or m.order_id == order_id)
        )

    def replayed(self, product_variant_id: int, location_id: int) -> int:
        with self.transaction() as session:
            return MovementStore(session).scope_total(product_variant_id, location_id)

    def location_sum(self, product_variant_id: int) -> int:
        with self.transaction() as session:
            rows = session.execute(
                select(LocationStock.quantity).where(
                    LocationStock.product_variant_id == product_variant_id
                )
            ).scalars()
            return sum(rows)


@pytest.fixture
def ledger(session_factory, clock) -> LedgerHarness:
    return LedgerHarness(session_factory, clock)


# =============================================================================
# Legacy history seeding
# =============================================================================


class LegacyLedger:
    """
    Writes movement rows directly, the way the pre-ledger code did.

    The order-effect unique indexes are dropped so duplicate sales and
    restorations can be seeded alongside NULL locations and broken
    snapshot chains.  Projections are only touched when asked.
    """

    def __init__(self, harness: LedgerHarness):
        self.harness = harness
        self._offset = 0

    def movement(
        self,
        product_variant_id: int,
        location_id: int | None,
        movement_type: MovementType,
        quantity: int,
        order_id: int | None = None,
        quantity_before: int = 0,
        quantity_after: int = 0,
        created_at: datetime | None = None,
        update_projection: bool = False,
    ) -> int:
        self._offset += 1
        with self.harness.transaction() as session:
            row = InventoryMovement(
                product_variant_id=product_variant_id,
                location_id=location_id,
                movement_type=movement_type,
                quantity=quantity,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
                order_id=order_id,
                created_at=created_at or BASE_TIME + timedelta(minutes=self._offset),
            )
            session.add(row)
            session.flush()
            if update_projection and location_id is not None:
                projections = ProjectionStore(session)
                projections.lock_aggregate(product_variant_id)
                projections.increment_scope(product_variant_id, location_id, quantity)
                projections.refresh_aggregate(product_variant_id)
            return row.id

    def set_projection(self, product_variant_id: int, location_id: int, quantity: int) -> None:
        with self.harness.transaction() as session:
            projections = ProjectionStore(session)
            projections.lock_aggregate(product_variant_id)
            projections.set_scope_quantity(product_variant_id, location_id, quantity)
            projections.refresh_aggregate(product_variant_id)

    def set_aggregate(self, product_variant_id: int, quantity: int) -> None:
        with self.harness.transaction() as session:
            ProjectionStore(session).lock_aggregate(product_variant_id).quantity = quantity

    def corrupt_snapshot(self, movement_id: int, before: int, after: int) -> None:
        with self.harness.transaction() as session:
            row = session.get(InventoryMovement, movement_id)
            row.quantity_before = before
            row.quantity_after = after


@pytest.fixture
def legacy_ledger(ledger, engine):
    with engine.begin() as conn:
        for name in ORDER_EFFECT_INDEXES:
            conn.execute(text(f"DROP INDEX IF EXISTS {name}"))
    return LegacyLedger(ledger)


# =============================================================================
# PostgreSQL
# =============================================================================


@pytest.fixture
def postgres_url():
    url = os.environ.get("INVENTORY_TEST_POSTGRES_URL")
    if not url:
        pytest.skip("INVENTORY_TEST_POSTGRES_URL not set")
    return url


