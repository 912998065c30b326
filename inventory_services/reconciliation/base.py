"""
Reconciliation run contract shared by every repair routine.

Responsibility:
    Drives a routine through scan -> report -> confirm -> mutate ->
    recompute, owns the transaction boundaries of each phase, aggregates
    per-unit failures into a ``ReconciliationReport`` and logs every state
    transition.

Architecture position:
    Services -- batch orchestration above the kernel.  Routines receive a
    session factory (not a session) because they open one short transaction
    per unit of work; nothing here holds a transaction open while waiting
    for operator confirmation.

State machine:
    IDLE -> SCANNING -> REPORTED -> IDLE                      (dry run)
    IDLE -> SCANNING -> IDLE                                  (nothing to do)
    IDLE -> SCANNING -> CONFIRMING -> IDLE                    (declined)
    IDLE -> SCANNING -> CONFIRMING -> MUTATING -> RECOMPUTING -> IDLE

Transaction modes:
    batch     All deletions of the run commit together, or none do.  Each
              affected variant is then recomputed in its own transaction.
              A recompute failure leaves that variant's projections stale;
              the run ends PROJECTION_STALE naming the variants.
    per_unit  Each unit (duplicate group, order, restoration pair) deletes
              and recomputes in one transaction.  A failing unit rolls back
              alone and is counted; the run ends PARTIAL.

Failure modes:
    - Global preconditions (NoLocationConfiguredError) end the run FAILED
      before any mutation.
    - Database errors in the batch deletion transaction end the run FAILED
      with nothing deleted.
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import ReconciliationConfig
from inventory_kernel.db.engine import unit_of_work
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import (
    InventoryLedgerError,
    ProjectionStaleError,
    ReconciliationAbortedError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.projection_service import ProjectionService
from inventory_kernel.stores.movement_store import MovementStore

logger = get_logger("services.reconciliation")

# Errors a single unit of work may raise without ending the run
UNIT_ERRORS = (InventoryLedgerError, SQLAlchemyError)


def error_code_of(exc: BaseException) -> str:
    """Ledger error code, else the exception class name.

    SQLAlchemy errors carry a ``code`` attribute that is usually None.
    """
    return getattr(exc, "code", None) or type(exc).__name__


class RunState(str, Enum):
    """Where a routine is in its run."""

    IDLE = "idle"
    SCANNING = "scanning"
    REPORTED = "reported"
    CONFIRMING = "confirming"
    MUTATING = "mutating"
    RECOMPUTING = "recomputing"


class RunOutcome(str, Enum):
    """How a run ended."""

    NOTHING_TO_DO = "nothing_to_do"
    DRY_RUN = "dry_run"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    ABORTED = "aborted"
    PROJECTION_STALE = "projection_stale"


class TransactionMode(str, Enum):
    BATCH = "batch"
    PER_UNIT = "per_unit"


@dataclass(frozen=True)
class UnitFailure:
    """One unit of work that failed."""

    unit: str
    error_code: str
    message: str

    def to_dict(self) -> dict:
        return {"unit": self.unit, "error_code": self.error_code, "message": self.message}


@dataclass(frozen=True)
class PurgeUnit:
    """Movements deleted together and the variants they affect."""

    label: str
    movement_ids: tuple[int, ...]
    variant_ids: frozenset[int]


@dataclass
class ReconciliationReport:
    """
    Result of one routine run.

    Counts accumulate as the run progresses; ``failures`` keeps every
    per-unit error while ``failure_preview`` is the bounded slice shown to
    operators.
    """

    routine: str
    dry_run: bool
    outcome: RunOutcome = RunOutcome.NOTHING_TO_DO
    run_id: str = ""
    groups_found: int = 0
    movements_appended: int = 0
    movements_deleted: int = 0
    movements_fixed: int = 0
    movements_correct: int = 0
    movements_skipped: int = 0
    variants_recomputed: int = 0
    scopes_processed: int = 0
    scopes_corrected: int = 0
    units_planned: int = 0
    units_applied: int = 0
    errors: int = 0
    error_code: str | None = None
    error_message: str | None = None
    stale_variants: list[int] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    preview_limit: int = 10
    duration_ms: float = 0.0

    def record_failure(self, unit: str, exc: BaseException) -> None:
        self.errors += 1
        self.failures.append(
            UnitFailure(
                unit=unit,
                error_code=error_code_of(exc),
                message=str(exc),
            )
        )

    @property
    def failure_preview(self) -> list[UnitFailure]:
        return self.failures[: self.preview_limit]

    @property
    def preview_note(self) -> str | None:
        """'showing first N of M' when the preview is truncated."""
        if len(self.failures) > self.preview_limit:
            return f"showing first {self.preview_limit} of {len(self.failures)}"
        return None

    @property
    def is_success(self) -> bool:
        return self.outcome in (
            RunOutcome.SUCCEEDED,
            RunOutcome.DRY_RUN,
            RunOutcome.NOTHING_TO_DO,
        )

    def to_dict(self) -> dict:
        return {
            "routine": self.routine,
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "outcome": self.outcome.value,
            "counts": {
                "groups_found": self.groups_found,
                "movements_appended": self.movements_appended,
                "movements_deleted": self.movements_deleted,
                "movements_fixed": self.movements_fixed,
                "movements_correct": self.movements_correct,
                "movements_skipped": self.movements_skipped,
                "variants_recomputed": self.variants_recomputed,
                "scopes_processed": self.scopes_processed,
                "scopes_corrected": self.scopes_corrected,
                "units_planned": self.units_planned,
                "units_applied": self.units_applied,
                "errors": self.errors,
            },
            "error_code": self.error_code,
            "error_message": self.error_message,
            "stale_variants": list(self.stale_variants),
            "failures": [f.to_dict() for f in self.failure_preview],
            "failures_total": len(self.failures),
            "details": self.details,
            "duration_ms": self.duration_ms,
        }


ConfirmCallback = Callable[[ReconciliationReport], bool]


def bounded(items: Sequence[Any], limit: int) -> dict[str, Any]:
    """A preview slice plus the total it was cut from."""
    return {"items": list(items[:limit]), "total": len(items)}


class ReconciliationRoutine(ABC):
    """
    Base class for repair routines.

    Contract:
        Subclasses implement ``scan`` (read-only, returns a plan and fills
        the report), ``is_empty`` and ``apply``.  ``run`` sequences them.

    Guarantees:
        - A dry run never opens a write transaction.
        - A declined confirmation mutates nothing.
        - Every unit failure is counted and the batch continues.

    Non-goals:
        - Timeouts and cancellation.  Units are short and the routines are
          idempotent, so an interrupted run is resumed by running it again.
    """

    name: ClassVar[str] = "reconciliation"

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: ReconciliationConfig | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or ReconciliationConfig()
        self._mode = TransactionMode(self._config.transaction_mode)
        self._state = RunState.IDLE
        self._recomputed: set[int] = set()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def transaction_mode(self) -> TransactionMode:
        return self._mode

    def transaction(self) -> AbstractContextManager[Session]:
        """One unit-of-work transaction: commit on exit, rollback on error."""
        return unit_of_work(self._session_factory)

    def _transition(self, new_state: RunState) -> None:
        previous = self._state
        self._state = new_state
        logger.info(
            "reconciliation_state",
            extra={"from_state": previous.value, "to_state": new_state.value},
        )

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def scan(self, report: ReconciliationReport, dry_run: bool) -> Any:
        """Read-only discovery.  Returns the plan ``apply`` will execute."""

    @abstractmethod
    def is_empty(self, plan: Any) -> bool:
        """True when the plan contains nothing to do."""

    @abstractmethod
    def apply(self, plan: Any, report: ReconciliationReport) -> None:
        """Execute the plan."""

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(
        self,
        dry_run: bool = False,
        confirm: ConfirmCallback | None = None,
    ) -> ReconciliationReport:
        """
        Scan, then report (dry run) or confirm and apply.

        Args:
            dry_run: Report only; no writes.
            confirm: Called with the scan report before mutating; returning
                False aborts.  None means non-interactive (proceed).
        """
        report = ReconciliationReport(
            routine=self.name,
            dry_run=dry_run,
            run_id=uuid.uuid4().hex[:12],
            preview_limit=self._config.failure_preview_limit,
        )
        self._recomputed = set()
        t0 = time.monotonic()

        with LogContext.bind(run_id=report.run_id, routine=self.name):
            logger.info(
                "reconciliation_started",
                extra={"dry_run": dry_run, "transaction_mode": self._mode.value},
            )
            try:
                self._transition(RunState.SCANNING)
                plan = self.scan(report, dry_run)

                if self.is_empty(plan):
                    report.outcome = RunOutcome.NOTHING_TO_DO
                elif dry_run:
                    self._transition(RunState.REPORTED)
                    report.outcome = RunOutcome.DRY_RUN
                else:
                    self._transition(RunState.CONFIRMING)
                    if confirm is not None and not confirm(report):
                        aborted = ReconciliationAbortedError(self.name)
                        report.outcome = RunOutcome.ABORTED
                        report.error_code = aborted.code
                        report.error_message = str(aborted)
                        logger.info("reconciliation_aborted")
                    else:
                        self._transition(RunState.MUTATING)
                        self.apply(plan, report)
                        report.outcome = self._resolve_outcome(report)
            except ProjectionStaleError as exc:
                report.outcome = RunOutcome.PROJECTION_STALE
                report.error_code = exc.code
                report.error_message = str(exc)
                report.stale_variants = list(exc.variant_ids)
                logger.error("projection_stale", exc_info=True)
            except UNIT_ERRORS as exc:
                report.outcome = RunOutcome.FAILED
                report.error_code = error_code_of(exc)
                report.error_message = str(exc)
                logger.error("reconciliation_failed", exc_info=True)
            finally:
                report.variants_recomputed = len(self._recomputed)
                report.duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._transition(RunState.IDLE)

            logger.info(
                "reconciliation_completed",
                extra={
                    "outcome": report.outcome.value,
                    "movements_deleted": report.movements_deleted,
                    "movements_fixed": report.movements_fixed,
                    "variants_recomputed": report.variants_recomputed,
                    "errors": report.errors,
                    "duration_ms": report.duration_ms,
                },
            )
        return report

    def _resolve_outcome(self, report: ReconciliationReport) -> RunOutcome:
        if report.errors == 0:
            return RunOutcome.SUCCEEDED
        if report.units_applied > 0:
            return RunOutcome.PARTIAL
        return RunOutcome.FAILED

    # ------------------------------------------------------------------
    # Shared mutation helpers
    # ------------------------------------------------------------------

    def rebuild_variant(self, session: Session, product_variant_id: int) -> None:
        """Recompute one variant's projections inside ``session``."""
        ProjectionService(session).rebuild_variant(product_variant_id)
        self._recomputed.add(product_variant_id)

    def purge_units(self, units: Sequence[PurgeUnit], report: ReconciliationReport) -> None:
        """Delete the units' movements and recompute, per the transaction mode."""
        report.units_planned = len(units)
        if self._mode == TransactionMode.BATCH:
            self._purge_batch(units, report)
        else:
            self._purge_per_unit(units, report)

    def _purge_batch(self, units: Sequence[PurgeUnit], report: ReconciliationReport) -> None:
        all_ids = [i for unit in units for i in unit.movement_ids]
        with self.transaction() as session:
            deleted = MovementStore(session).purge(all_ids, reason=self.name)
        report.movements_deleted += len(deleted)
        report.units_applied = len(units)
        self.recompute_variants(
            {v for unit in units for v in unit.variant_ids}, report
        )

    def _purge_per_unit(self, units: Sequence[PurgeUnit], report: ReconciliationReport) -> None:
        self._transition(RunState.RECOMPUTING)
        for unit in units:
            try:
                with self.transaction() as session:
                    deleted = MovementStore(session).purge(unit.movement_ids, reason=self.name)
                    for variant_id in sorted(unit.variant_ids):
                        self.rebuild_variant(session, variant_id)
            except UNIT_ERRORS as exc:
                report.record_failure(unit.label, exc)
                logger.warning(
                    "reconciliation_unit_failed",
                    extra={"unit": unit.label},
                    exc_info=True,
                )
                continue
            report.movements_deleted += len(deleted)
            report.units_applied += 1

    def recompute_variants(
        self, variant_ids: Iterable[int], report: ReconciliationReport
    ) -> None:
        """
        Rebuild each variant in its own transaction.

        Raises:
            ProjectionStaleError: naming every variant whose rebuild failed.
        """
        self._transition(RunState.RECOMPUTING)
        stale: list[int] = []
        for variant_id in sorted(variant_ids):
            try:
                with self.transaction() as session:
                    self.rebuild_variant(session, variant_id)
            except UNIT_ERRORS as exc:
                self._recomputed.discard(variant_id)
                stale.append(variant_id)
                report.record_failure(f"variant {variant_id}", exc)
        if stale:
            raise ProjectionStaleError(self.name, stale)
