"""
DuplicateSaleCleanup -- remove redundant sale movements.

Responsibility:
    Finds (order, variant) pairs carrying more than one ``sale`` movement,
    keeps the earliest by (``created_at``, ``id``), deletes the rest and
    recomputes the projections of every affected variant.

Architecture position:
    Services > Reconciliation.  Planning is delegated to the pure
    ``inventory_engines.duplicates`` engine.

Invariants enforced:
    - After a successful run every (order, variant) has at most one sale.
    - Running twice is a no-op the second time (outcome nothing_to_do).
"""

from __future__ import annotations

from inventory_engines.duplicates import DuplicateSalePlan, plan_duplicate_sales
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.order_selector import OrderSelector
from inventory_kernel.stores.movement_store import MovementStore
from inventory_services.reconciliation.base import (
    PurgeUnit,
    ReconciliationReport,
    ReconciliationRoutine,
    bounded,
)

logger = get_logger("services.reconciliation.duplicate_sales")


class DuplicateSaleCleanup(ReconciliationRoutine):
    """Keep one sale per (order, variant)."""

    name = "cleanup-duplicates"

    def scan(self, report: ReconciliationReport, dry_run: bool) -> DuplicateSalePlan:
        with self.transaction() as session:
            plan = plan_duplicate_sales(MovementStore(session).sales_with_orders())
            numbers = OrderSelector(session).order_numbers(g.order_id for g in plan.groups)

        report.groups_found = len(plan.groups)
        breakdown = []
        for group in plan.groups:
            entry = group.to_dict()
            entry["order_number"] = numbers.get(group.order_id)
            breakdown.append(entry)
        report.details = {
            "movements_to_delete": len(plan.delete_ids),
            "variants_affected": len(plan.affected_variants),
            "groups": bounded(breakdown, report.preview_limit),
        }
        logger.info(
            "duplicate_sales_scanned",
            extra={
                "groups": report.groups_found,
                "movements_to_delete": len(plan.delete_ids),
            },
        )
        return plan

    def is_empty(self, plan: DuplicateSalePlan) -> bool:
        return plan.is_empty

    def apply(self, plan: DuplicateSalePlan, report: ReconciliationReport) -> None:
        units = [
            PurgeUnit(
                label=f"order {g.order_id} variant {g.product_variant_id}",
                movement_ids=g.delete_ids,
                variant_ids=frozenset({g.product_variant_id}),
            )
            for g in plan.groups
        ]
        self.purge_units(units, report)
