"""
Inventory engines -- pure calculation over movement snapshots.

Nothing in this package performs I/O.  Services load snapshots through the
kernel stores, hand them to an engine, and apply the returned plan.
"""

from inventory_engines.duplicates import DuplicateGroup, DuplicateSalePlan, plan_duplicate_sales
from inventory_engines.replay import ReplayResult, replay_scope, replay_total
from inventory_engines.restorations import (
    RestorationConflict,
    RestorationPlan,
    RestorationPolicy,
    plan_restoration_conflicts,
)
from inventory_engines.verification import (
    CheckSeverity,
    CheckStatus,
    LedgerFinding,
    VerificationResult,
    verify_ledger,
)

__all__ = [
    "DuplicateGroup",
    "DuplicateSalePlan",
    "plan_duplicate_sales",
    "ReplayResult",
    "replay_scope",
    "replay_total",
    "RestorationConflict",
    "RestorationPlan",
    "RestorationPolicy",
    "plan_restoration_conflicts",
    "CheckSeverity",
    "CheckStatus",
    "LedgerFinding",
    "VerificationResult",
    "verify_ledger",
]
