"""
CancelledOrderMovementRemoval -- erase the stock effect of cancelled orders.

Responsibility:
    For every order in a cancelled status that still has a sale movement,
    deletes all of its ``sale`` and ``cancellation`` movements, so the order
    leaves no trace in the log, then recomputes the affected variants.

Architecture position:
    Services > Reconciliation.  Which statuses count as cancelled comes from
    ``reconciliation.cancelled_statuses``.

Invariants enforced:
    - Only sale and cancellation movements are touched; returns,
      purchases and adjustments of the same order survive.
    - Net stock effect: a sale (-q) and its cancellation (+q) cancel out,
      so a clean pair leaves the projection unchanged after removal.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import MovementType, OrderStatus
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.order_selector import OrderSelector
from inventory_kernel.stores.movement_store import MovementStore
from inventory_services.reconciliation.base import (
    PurgeUnit,
    ReconciliationReport,
    ReconciliationRoutine,
    bounded,
)

logger = get_logger("services.reconciliation.cancelled_orders")

REMOVED_TYPES = (MovementType.SALE, MovementType.CANCELLATION)


@dataclass(frozen=True)
class CancelledOrderEffect:
    """Sale and cancellation movements of one cancelled order."""

    order_id: int
    order_number: str | None
    movements: tuple[MovementSnapshot, ...]

    @property
    def movement_ids(self) -> tuple[int, ...]:
        return tuple(m.id for m in self.movements)

    @property
    def variant_ids(self) -> frozenset[int]:
        return frozenset(m.product_variant_id for m in self.movements)

    @property
    def net_quantity(self) -> int:
        return sum(m.quantity for m in self.movements)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "sale_ids": [m.id for m in self.movements if m.movement_type == MovementType.SALE],
            "cancellation_ids": [
                m.id for m in self.movements if m.movement_type == MovementType.CANCELLATION
            ],
            "net_quantity": self.net_quantity,
        }


class CancelledOrderMovementRemoval(ReconciliationRoutine):
    """Delete sale and cancellation movements of cancelled orders."""

    name = "remove-cancelled-movements"

    def scan(
        self, report: ReconciliationReport, dry_run: bool
    ) -> list[CancelledOrderEffect]:
        statuses = [OrderStatus(s) for s in self._config.cancelled_statuses]
        with self.transaction() as session:
            orders = OrderSelector(session)
            order_ids = orders.orders_with_sales(statuses)
            numbers = orders.order_numbers(order_ids)
            movements = MovementStore(session).movements_for_orders(order_ids, REMOVED_TYPES)

        by_order: dict[int, list[MovementSnapshot]] = defaultdict(list)
        for movement in movements:
            by_order[movement.order_id].append(movement)
        effects = [
            CancelledOrderEffect(
                order_id=order_id,
                order_number=numbers.get(order_id),
                movements=tuple(by_order[order_id]),
            )
            for order_id in order_ids
        ]

        report.groups_found = len(effects)
        report.details = {
            "statuses": [s.value for s in statuses],
            "sales_to_delete": sum(
                1 for m in movements if m.movement_type == MovementType.SALE
            ),
            "cancellations_to_delete": sum(
                1 for m in movements if m.movement_type == MovementType.CANCELLATION
            ),
            "movements_to_delete": len(movements),
            "variants_affected": len({m.product_variant_id for m in movements}),
            "orders": bounded([e.to_dict() for e in effects], report.preview_limit),
        }
        logger.info(
            "cancelled_orders_scanned",
            extra={"orders": len(effects), "movements_to_delete": len(movements)},
        )
        return effects

    def is_empty(self, plan: list[CancelledOrderEffect]) -> bool:
        return not plan

    def apply(self, plan: list[CancelledOrderEffect], report: ReconciliationReport) -> None:
        units = [
            PurgeUnit(
                label=f"order {effect.order_number or effect.order_id}",
                movement_ids=effect.movement_ids,
                variant_ids=effect.variant_ids,
            )
            for effect in plan
        ]
        self.purge_units(units, report)
