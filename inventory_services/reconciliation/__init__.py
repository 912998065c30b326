"""Reconciliation and backfill routines over the movement log and its projections."""

from inventory_services.reconciliation.base import (
    PurgeUnit,
    ReconciliationReport,
    ReconciliationRoutine,
    RunOutcome,
    RunState,
    TransactionMode,
    UnitFailure,
    bounded,
    error_code_of,
)
from inventory_services.reconciliation.backfill import CancellationBackfill, ReturnBackfill
from inventory_services.reconciliation.cancelled_orders import CancelledOrderMovementRemoval
from inventory_services.reconciliation.duplicate_restorations import DuplicateRestorationRemoval
from inventory_services.reconciliation.duplicate_sales import DuplicateSaleCleanup
from inventory_services.reconciliation.history import HistoryRecalculator
from inventory_services.reconciliation.null_locations import NullLocationMigration
from inventory_services.reconciliation.verification import LedgerVerification

__all__ = [
    "CancellationBackfill",
    "CancelledOrderMovementRemoval",
    "DuplicateRestorationRemoval",
    "DuplicateSaleCleanup",
    "HistoryRecalculator",
    "LedgerVerification",
    "NullLocationMigration",
    "PurgeUnit",
    "ReconciliationReport",
    "ReconciliationRoutine",
    "ReturnBackfill",
    "RunOutcome",
    "RunState",
    "TransactionMode",
    "UnitFailure",
    "bounded",
    "error_code_of",
]
