"""
HistoryRecalculator -- rebuild snapshot chains and projections from the log.

Responsibility:
    For every (variant, location) scope, replays the movements in
    (``created_at``, ``id``) order, rewrites ``quantity_before`` /
    ``quantity_after`` where they differ from the running total, sets the
    scope projection to the final total when it differs, and re-derives
    the variant aggregate when it no longer matches its location rows.
    This is the repair path for a run that ended ``projection_stale``.

Architecture position:
    Services > Reconciliation.  The fold is the pure
    ``inventory_engines.replay`` engine; one transaction per scope.

Invariants enforced:
    - Correct snapshots and matching projections are never written.
    - A projection row whose movements are all gone is a scope too; it is
      set back to 0.
    - Movements with no location are not a scope; they are counted as
      skipped and left for NullLocationMigration.
    - Re-running after a successful run finds nothing to fix.
"""

from __future__ import annotations

from dataclasses import dataclass

from inventory_engines.replay import replay_scope
from inventory_kernel.logging_config import get_logger
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore
from inventory_services.reconciliation.base import (
    UNIT_ERRORS,
    ReconciliationReport,
    ReconciliationRoutine,
    RunState,
    bounded,
)

logger = get_logger("services.reconciliation.history")


@dataclass(frozen=True)
class ScopeDiff:
    product_variant_id: int
    location_id: int
    movements: int
    corrections: int
    final_quantity: int
    projected: int | None

    @property
    def projection_drift(self) -> bool:
        # A missing row reads as 0, as verification treats it
        return (self.projected or 0) != self.final_quantity

    @property
    def needs_repair(self) -> bool:
        return bool(self.corrections) or self.projection_drift

    def to_dict(self) -> dict:
        return {
            "product_variant_id": self.product_variant_id,
            "location_id": self.location_id,
            "movements": self.movements,
            "corrections": self.corrections,
            "final_quantity": self.final_quantity,
            "projected": self.projected,
        }


class HistoryRecalculator(ReconciliationRoutine):
    """Replay every scope and repair its snapshot chain and projection."""

    name = "recalculate-history"

    def scan(self, report: ReconciliationReport, dry_run: bool) -> list[tuple[int, int]]:
        with self.transaction() as session:
            movements = MovementStore(session)
            projected = ProjectionStore(session).all_scopes()
            scopes = sorted(set(movements.distinct_scopes()) | set(projected))
            report.movements_skipped = movements.count_null_location()
            diffs: list[ScopeDiff] = []
            if dry_run:
                for variant_id, location_id in scopes:
                    result = replay_scope(movements.scope_movements(variant_id, location_id))
                    report.movements_fixed += len(result.corrections)
                    report.movements_correct += result.correct_count
                    diff = ScopeDiff(
                        product_variant_id=variant_id,
                        location_id=location_id,
                        movements=result.movements_checked,
                        corrections=len(result.corrections),
                        final_quantity=result.final_quantity,
                        projected=projected.get((variant_id, location_id)),
                    )
                    if diff.needs_repair:
                        diffs.append(diff)

        report.groups_found = len(scopes)
        report.details = {"scopes": len(scopes)}
        if dry_run:
            report.scopes_processed = len(scopes)
            report.scopes_corrected = len(diffs)
            report.details["scopes_to_correct"] = bounded(
                [d.to_dict() for d in diffs], report.preview_limit
            )
        logger.info(
            "history_scanned",
            extra={"scopes": len(scopes), "null_location_movements": report.movements_skipped},
        )
        return scopes

    def is_empty(self, plan: list[tuple[int, int]]) -> bool:
        return not plan

    def apply(self, plan: list[tuple[int, int]], report: ReconciliationReport) -> None:
        self._transition(RunState.RECOMPUTING)
        report.units_planned = len(plan)
        for variant_id, location_id in plan:
            try:
                with self.transaction() as session:
                    diff, correct = self._recalculate_scope(session, variant_id, location_id)
            except UNIT_ERRORS as exc:
                report.record_failure(f"variant {variant_id} location {location_id}", exc)
                logger.warning(
                    "history_scope_failed",
                    extra={"product_variant_id": variant_id, "location_id": location_id},
                    exc_info=True,
                )
                continue
            report.scopes_processed += 1
            report.units_applied += 1
            report.movements_fixed += diff.corrections
            report.movements_correct += correct
            if diff.needs_repair:
                report.scopes_corrected += 1

    def _recalculate_scope(
        self, session, variant_id: int, location_id: int
    ) -> tuple[ScopeDiff, int]:
        projections = ProjectionStore(session)
        movements = MovementStore(session)
        # Serialize with the ledger writer before reading the chain
        projections.lock_aggregate(variant_id)
        result = replay_scope(movements.scope_movements(variant_id, location_id))
        diff = ScopeDiff(
            product_variant_id=variant_id,
            location_id=location_id,
            movements=result.movements_checked,
            corrections=len(result.corrections),
            final_quantity=result.final_quantity,
            projected=projections.scope_quantity(variant_id, location_id),
        )

        if result.corrections:
            movements.apply_corrections(result.corrections)
        if diff.projection_drift:
            projections.set_scope_quantity(variant_id, location_id, result.final_quantity)
        if projections.aggregate_quantity(variant_id) != projections.location_total(variant_id):
            projections.refresh_aggregate(variant_id)
            self._recomputed.add(variant_id)

        if diff.needs_repair:
            self._recomputed.add(variant_id)
            logger.info("history_scope_corrected", extra=diff.to_dict())
        return diff, result.correct_count
