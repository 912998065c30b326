"""
LedgerVerification -- read-only audit of the movement log and projections.

Responsibility:
    Loads the whole log, every location projection and every aggregate in
    one read transaction and runs the pure ``verify_ledger`` engine over
    them.  Never writes.

Outcome:
    succeeded  no ERROR findings (warnings such as broken snapshot chains
               are reported but do not fail the run)
    failed     at least one ERROR finding
"""

from __future__ import annotations

import time
import uuid

from inventory_engines.verification import CheckSeverity, CheckStatus, verify_ledger
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore
from inventory_services.reconciliation.base import (
    ReconciliationReport,
    ReconciliationRoutine,
    RunOutcome,
    RunState,
    bounded,
)

logger = get_logger("services.reconciliation.verification")


class LedgerVerification(ReconciliationRoutine):
    """Check the ledger without changing it."""

    name = "verify"

    def scan(self, report: ReconciliationReport, dry_run: bool):
        with self.transaction() as session:
            movements = MovementStore(session).all_movements()
            projections = ProjectionStore(session)
            scopes = projections.all_scopes()
            aggregates = projections.all_aggregates()
        result = verify_ledger(movements, scopes, aggregates)

        report.groups_found = len(result.findings)
        report.errors = sum(1 for f in result.findings if f.severity == CheckSeverity.ERROR)
        report.scopes_processed = result.scopes_checked
        report.details = {
            "status": result.status.value,
            "movements_checked": result.movements_checked,
            "scopes_checked": result.scopes_checked,
            "variants_checked": result.variants_checked,
            "counts_by_code": dict(result.counts_by_code),
            "findings": bounded([f.to_dict() for f in result.findings], report.preview_limit),
        }
        return result

    def is_empty(self, plan) -> bool:
        return plan.is_clean

    def apply(self, plan, report: ReconciliationReport) -> None:
        raise NotImplementedError("verification is read-only")

    def run(self, dry_run: bool = True, confirm=None) -> ReconciliationReport:
        """Audit the ledger.  ``dry_run`` and ``confirm`` are ignored."""
        report = ReconciliationReport(
            routine=self.name,
            dry_run=True,
            run_id=uuid.uuid4().hex[:12],
            preview_limit=self._config.failure_preview_limit,
        )
        t0 = time.monotonic()
        with LogContext.bind(run_id=report.run_id, routine=self.name):
            self._transition(RunState.SCANNING)
            try:
                result = self.scan(report, dry_run=True)
            finally:
                self._transition(RunState.IDLE)
            if result.status == CheckStatus.FAILED:
                report.outcome = RunOutcome.FAILED
            else:
                report.outcome = RunOutcome.SUCCEEDED
            report.duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "ledger_verified",
                extra={
                    "status": result.status.value,
                    "errors": report.errors,
                    "findings": len(result.findings),
                    "movements_checked": result.movements_checked,
                    "duration_ms": report.duration_ms,
                },
            )
        return report
