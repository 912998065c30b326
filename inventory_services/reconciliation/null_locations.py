"""
NullLocationMigration -- attach legacy movements to the default location.

Responsibility:
    Assigns every movement whose ``location_id`` is NULL to the default
    location, adds its quantity to that location's projection and refreshes
    the variant aggregate.

Architecture position:
    Services > Reconciliation.  One transaction per movement, whatever the
    configured transaction mode: each migration is an independent,
    incremental projection update.

Invariants enforced:
    - The default location is resolved before anything is written; with no
      usable location the run fails with NoLocationConfiguredError and the
      log is untouched.
    - A movement already located by a concurrent run is skipped, never
      counted twice.
    - Snapshot columns are not rewritten here; the history recalculator
      repairs them.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import ReconciliationConfig
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import LocationInfo, MovementSnapshot
from inventory_kernel.exceptions import NoLocationConfiguredError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.location_selector import LocationSelector
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore
from inventory_services.reconciliation.base import (
    UNIT_ERRORS,
    ReconciliationReport,
    ReconciliationRoutine,
    bounded,
)

logger = get_logger("services.reconciliation.null_locations")


@dataclass(frozen=True)
class NullLocationPlan:
    location: LocationInfo
    movements: tuple[MovementSnapshot, ...]


class NullLocationMigration(ReconciliationRoutine):
    """Move NULL-location movements to the default location."""

    name = "fix-null-locations"

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: ReconciliationConfig | None = None,
        default_location_code: str | None = None,
    ):
        super().__init__(session_factory, clock, config)
        self._default_location_code = default_location_code

    def scan(self, report: ReconciliationReport, dry_run: bool) -> NullLocationPlan:
        with self.transaction() as session:
            location = LocationSelector(session).default_location(self._default_location_code)
            if location is None:
                raise NoLocationConfiguredError(self._default_location_code)
            movements = tuple(MovementStore(session).null_location_movements())

        report.groups_found = len(movements)
        report.details = {
            "default_location": {"id": location.id, "code": location.code, "name": location.name},
            "movements_to_fix": len(movements),
            "variants_affected": len({m.product_variant_id for m in movements}),
            "movements": bounded(
                [
                    {
                        "movement_id": m.id,
                        "product_variant_id": m.product_variant_id,
                        "movement_type": m.movement_type.value,
                        "quantity": m.quantity,
                    }
                    for m in movements
                ],
                report.preview_limit,
            ),
        }
        logger.info(
            "null_locations_scanned",
            extra={"movements": len(movements), "location_code": location.code},
        )
        return NullLocationPlan(location=location, movements=movements)

    def is_empty(self, plan: NullLocationPlan) -> bool:
        return not plan.movements

    def apply(self, plan: NullLocationPlan, report: ReconciliationReport) -> None:
        report.units_planned = len(plan.movements)
        location_id = plan.location.id
        for snapshot in plan.movements:
            try:
                with self.transaction() as session:
                    projections = ProjectionStore(session)
                    # Aggregate first, matching the ledger writer's lock order
                    projections.lock_aggregate(snapshot.product_variant_id)
                    movement = MovementStore(session).assign_location(snapshot.id, location_id)
                    if movement is None:
                        report.movements_skipped += 1
                        continue
                    projections.increment_scope(
                        snapshot.product_variant_id, location_id, movement.quantity
                    )
                    projections.refresh_aggregate(snapshot.product_variant_id)
            except UNIT_ERRORS as exc:
                report.record_failure(f"movement {snapshot.id}", exc)
                logger.warning(
                    "null_location_fix_failed",
                    extra={"movement_id": snapshot.id},
                    exc_info=True,
                )
                continue
            report.movements_fixed += 1
            report.units_applied += 1
