"""
Restoration backfills -- restore stock for orders imported already closed.

Responsibility:
    CancellationBackfill finds orders in a cancelled status whose sales
    were never restored and records the missing cancellations.
    ReturnBackfill finds completed returns whose lines were never restored
    and records the missing returns.  Both go through
    StockLifecycleService, so each restoration lands at its sale's location
    and updates the projections as it is written.

Architecture position:
    Services > Reconciliation.  One transaction per order (or return),
    whatever the configured transaction mode: a failing unit rolls back
    alone and is counted.

Invariants enforced:
    - A line whose (order, variant) already holds a cancellation or a
      return is not planned.  The Ledger Writer's order-effect indexes
      suppress any restoration that races in, so each restoration is
      recorded at most once.
    - Re-running after a successful run finds nothing to do.

Relation to remove-cancelled-movements:
    That routine erases a cancelled order's sale and cancellation; this
    one completes the pair.  Both leave the order a net stock effect of
    zero.  An operator runs one or the other.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import ReconciliationConfig
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import MovementSnapshot, OrderLine
from inventory_kernel.domain.movement_types import (
    RESTORATION_TYPES,
    MovementType,
    OrderStatus,
    ReturnStatus,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.order_selector import OrderSelector
from inventory_kernel.services.stock_lifecycle import LifecycleResult, StockLifecycleService
from inventory_kernel.stores.movement_store import MovementStore
from inventory_services.reconciliation.base import (
    UNIT_ERRORS,
    ReconciliationReport,
    ReconciliationRoutine,
    bounded,
)

logger = get_logger("services.reconciliation.backfill")


@dataclass(frozen=True)
class RestorationUnit:
    """Lines of one order, or one return, still waiting for their restoration."""

    order_id: int
    order_number: str | None
    lines: tuple[OrderLine, ...]
    return_number: str | None = None

    @property
    def label(self) -> str:
        if self.return_number:
            return f"return {self.return_number}"
        return f"order {self.order_number or self.order_id}"

    @property
    def quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> dict:
        data = {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "lines": [
                {"product_variant_id": line.product_variant_id, "quantity": line.quantity}
                for line in self.lines
            ],
        }
        if self.return_number:
            data["return_number"] = self.return_number
        return data


def _restored_pairs(movements: Iterable[MovementSnapshot]) -> set[tuple[int, int]]:
    return {(m.order_id, m.product_variant_id) for m in movements}


class _RestorationBackfill(ReconciliationRoutine):
    """Shared apply loop: one lifecycle call per unit, in its own transaction."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: ReconciliationConfig | None = None,
        default_location_code: str | None = None,
    ):
        super().__init__(session_factory, clock, config)
        self._default_location_code = default_location_code

    @abstractmethod
    def _restore(self, service: StockLifecycleService, unit: RestorationUnit) -> LifecycleResult:
        """Write the unit's restoration through the lifecycle service."""

    def _fill_report(
        self, report: ReconciliationReport, units: list[RestorationUnit], **details
    ) -> None:
        report.groups_found = len(units)
        report.details = {
            **details,
            "lines_to_restore": sum(len(u.lines) for u in units),
            "quantity_to_restore": sum(u.quantity for u in units),
            "variants_affected": len(
                {line.product_variant_id for u in units for line in u.lines}
            ),
            "units": bounded([u.to_dict() for u in units], report.preview_limit),
        }

    def is_empty(self, plan: list[RestorationUnit]) -> bool:
        return not plan

    def apply(self, plan: list[RestorationUnit], report: ReconciliationReport) -> None:
        report.units_planned = len(plan)
        for unit in plan:
            try:
                with self.transaction() as session:
                    service = StockLifecycleService(
                        session, self._clock, self._default_location_code
                    )
                    result = self._restore(service, unit)
            except UNIT_ERRORS as exc:
                report.record_failure(unit.label, exc)
                logger.warning(
                    "restoration_backfill_failed",
                    extra={"order_id": unit.order_id, "return_number": unit.return_number},
                    exc_info=True,
                )
                continue
            report.units_applied += 1
            report.movements_appended += result.appended
            # Suppressed or sale-less lines
            report.movements_skipped += result.suppressed + result.skipped


class CancellationBackfill(_RestorationBackfill):
    """Record the cancellation a cancelled order never received."""

    name = "process-cancellations"

    def scan(self, report: ReconciliationReport, dry_run: bool) -> list[RestorationUnit]:
        statuses = [OrderStatus(s) for s in self._config.cancelled_statuses]
        with self.transaction() as session:
            orders = OrderSelector(session)
            order_ids = orders.orders_with_sales(statuses)
            numbers = orders.order_numbers(order_ids)
            movements = MovementStore(session)
            sales = movements.movements_for_orders(order_ids, [MovementType.SALE])
            restored = _restored_pairs(
                movements.movements_for_orders(order_ids, RESTORATION_TYPES)
            )

        # The earliest sale per (order, variant) is the one duplicate cleanup keeps
        kept: dict[tuple[int, int], MovementSnapshot] = {}
        for sale in sorted(sales, key=lambda m: m.sort_key):
            kept.setdefault((sale.order_id, sale.product_variant_id), sale)

        units = []
        for order_id in order_ids:
            lines = tuple(
                OrderLine(product_variant_id=variant_id, quantity=abs(sale.quantity))
                for (sale_order, variant_id), sale in sorted(kept.items())
                if sale_order == order_id and (order_id, variant_id) not in restored
            )
            if lines:
                units.append(
                    RestorationUnit(
                        order_id=order_id, order_number=numbers.get(order_id), lines=lines
                    )
                )

        self._fill_report(report, units, statuses=[s.value for s in statuses])
        logger.info(
            "cancellation_backfill_scanned",
            extra={"orders": len(units), "lines": report.details["lines_to_restore"]},
        )
        return units

    def _restore(self, service: StockLifecycleService, unit: RestorationUnit) -> LifecycleResult:
        return service.restore_for_cancellation(unit.order_id, unit.lines)


class ReturnBackfill(_RestorationBackfill):
    """Record the return movements a completed return never received."""

    name = "process-returns"

    def scan(self, report: ReconciliationReport, dry_run: bool) -> list[RestorationUnit]:
        with self.transaction() as session:
            orders = OrderSelector(session)
            returns = orders.returns_in_status(ReturnStatus.COMPLETED)
            order_ids = sorted({r.order_id for r in returns})
            numbers = orders.order_numbers(order_ids)
            restored = _restored_pairs(
                MovementStore(session).movements_for_orders(order_ids, RESTORATION_TYPES)
            )

        units = []
        for ret in returns:
            lines = tuple(
                line
                for line in ret.lines
                if (ret.order_id, line.product_variant_id) not in restored
            )
            if lines:
                units.append(
                    RestorationUnit(
                        order_id=ret.order_id,
                        order_number=numbers.get(ret.order_id),
                        lines=lines,
                        return_number=ret.return_number,
                    )
                )

        self._fill_report(report, units, returns_completed=len(returns))
        logger.info(
            "return_backfill_scanned",
            extra={"returns": len(units), "lines": report.details["lines_to_restore"]},
        )
        return units

    def _restore(self, service: StockLifecycleService, unit: RestorationUnit) -> LifecycleResult:
        return service.restore_for_return(
            unit.order_id, unit.lines, return_reference=unit.return_number
        )
