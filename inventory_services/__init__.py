"""
inventory_services -- Package init and public API.

Responsibility:
    Batch orchestration over the kernel and the pure engines: the
    reconciliation and backfill routines that scan the movement log, report,
    and repair it under operator control.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        inventory_services/ -> inventory_engines/  (allowed)
        inventory_services/ -> inventory_kernel/   (allowed)
        inventory_services/ -> inventory_config/   (allowed, schema only)
        inventory_engines/  -> inventory_services/ (FORBIDDEN)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)

Invariants enforced:
    - Routines receive a session factory and a config; none reads the
      environment or builds its own engine.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import InventoryConfig
from inventory_kernel.domain.clock import Clock
from inventory_services.reconciliation import (
    CancellationBackfill,
    CancelledOrderMovementRemoval,
    DuplicateRestorationRemoval,
    DuplicateSaleCleanup,
    HistoryRecalculator,
    LedgerVerification,
    NullLocationMigration,
    ReconciliationReport,
    ReconciliationRoutine,
    ReturnBackfill,
    RunOutcome,
    RunState,
    TransactionMode,
)

# Operator-facing routine name -> routine class
ROUTINES: dict[str, type[ReconciliationRoutine]] = {
    cls.name: cls
    for cls in (
        DuplicateSaleCleanup,
        NullLocationMigration,
        CancelledOrderMovementRemoval,
        DuplicateRestorationRemoval,
        HistoryRecalculator,
        CancellationBackfill,
        ReturnBackfill,
        LedgerVerification,
    )
}


def build_routine(
    name: str,
    session_factory: sessionmaker[Session],
    config: InventoryConfig,
    clock: Clock | None = None,
    restoration_policy: str | None = None,
) -> ReconciliationRoutine:
    """
    Construct a routine by its operator-facing name.

    Raises:
        KeyError: unknown routine name.
    """
    routine_cls = ROUTINES[name]
    if routine_cls in (NullLocationMigration, CancellationBackfill, ReturnBackfill):
        return routine_cls(
            session_factory,
            clock,
            config.reconciliation,
            default_location_code=config.inventory.default_location_code,
        )
    if routine_cls is DuplicateRestorationRemoval:
        return DuplicateRestorationRemoval(
            session_factory,
            clock,
            config.reconciliation,
            policy=restoration_policy,
        )
    return routine_cls(session_factory, clock, config.reconciliation)


__all__ = [
    "ROUTINES",
    "CancellationBackfill",
    "CancelledOrderMovementRemoval",
    "DuplicateRestorationRemoval",
    "DuplicateSaleCleanup",
    "HistoryRecalculator",
    "LedgerVerification",
    "NullLocationMigration",
    "ReconciliationReport",
    "ReconciliationRoutine",
    "ReturnBackfill",
    "RunOutcome",
    "RunState",
    "TransactionMode",
    "build_routine",
]
