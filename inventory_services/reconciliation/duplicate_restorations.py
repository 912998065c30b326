"""
DuplicateRestorationRemoval -- resolve orders restored by both a
cancellation and a return.

Responsibility:
    Finds (order, variant) pairs with a ``cancellation`` and a ``return``
    (single SQL self-join), deletes the side the restoration policy does not
    keep and recomputes the affected variants.

Architecture position:
    Services > Reconciliation.  Conflict resolution is the pure
    ``inventory_engines.restorations`` engine.

Invariants enforced:
    - After a successful run every (order, variant) has at most one kind
      of restoration.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import ReconciliationConfig
from inventory_engines.restorations import (
    RestorationPlan,
    RestorationPolicy,
    plan_restoration_conflicts,
)
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.stores.movement_store import MovementStore
from inventory_services.reconciliation.base import (
    PurgeUnit,
    ReconciliationReport,
    ReconciliationRoutine,
    bounded,
)

logger = get_logger("services.reconciliation.duplicate_restorations")


class DuplicateRestorationRemoval(ReconciliationRoutine):
    """Keep one restoration kind per (order, variant)."""

    name = "remove-duplicate-restorations"

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: ReconciliationConfig | None = None,
        policy: RestorationPolicy | str | None = None,
    ):
        super().__init__(session_factory, clock, config)
        self._policy = RestorationPolicy(policy or self._config.restoration_policy)

    @property
    def policy(self) -> RestorationPolicy:
        return self._policy

    def scan(self, report: ReconciliationReport, dry_run: bool) -> RestorationPlan:
        with self.transaction() as session:
            pairs = MovementStore(session).restoration_pairs()
        plan = plan_restoration_conflicts(pairs, policy=self._policy)

        report.groups_found = len(plan.conflicts)
        report.details = {
            "policy": self._policy.value,
            "movements_to_delete": len(plan.delete_ids),
            "quantity_removed": sum(m.quantity for c in plan.conflicts for m in c.removed),
            "variants_affected": len(plan.affected_variants),
            "conflicts": bounded([c.to_dict() for c in plan.conflicts], report.preview_limit),
        }
        logger.info(
            "duplicate_restorations_scanned",
            extra={
                "conflicts": report.groups_found,
                "policy": self._policy.value,
                "movements_to_delete": len(plan.delete_ids),
            },
        )
        return plan

    def is_empty(self, plan: RestorationPlan) -> bool:
        return plan.is_empty

    def apply(self, plan: RestorationPlan, report: ReconciliationReport) -> None:
        units = [
            PurgeUnit(
                label=f"order {c.order_id} variant {c.product_variant_id}",
                movement_ids=tuple(m.id for m in c.removed),
                variant_ids=frozenset({c.product_variant_id}),
            )
            for c in plan.conflicts
        ]
        self.purge_units(units, report)
