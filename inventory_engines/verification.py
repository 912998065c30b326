"""
LedgerVerifier -- Pure engine auditing the ledger against its invariants.

Architecture: inventory_engines -- pure calculation, zero I/O.
All inputs are DTOs and plain mappings populated by the service layer.

Checks:
    PROJECTION_DRIFT        location projection != replay of its movements
    AGGREGATE_DRIFT         variant aggregate != sum of its location rows
    DUPLICATE_SALE          more than one sale for an (order, variant)
    DUPLICATE_RESTORATION   more than one cancellation/return for an (order, variant)
    NULL_LOCATION           movement with no location
    SIGN_VIOLATION          quantity sign contradicts the movement type
    SNAPSHOT_CHAIN_BROKEN   stored before/after disagree with the replay (warning)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import (
    RESTORATION_TYPES,
    MovementType,
    validate_direction,
)
from inventory_kernel.exceptions import SignMismatchError
from inventory_engines.replay import replay_scope
from inventory_engines.tracer import traced_engine


class CheckSeverity(str, Enum):
    """Severity level of a verification finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class CheckStatus(str, Enum):
    """Overall status of a verification run."""

    PASSED = "passed"
    FAILED = "failed"       # At least one ERROR finding
    WARNING = "warning"     # Warnings only, no errors


@dataclass(frozen=True)
class LedgerFinding:
    """
    One issue found during verification.

    ``code`` is machine-readable (e.g. PROJECTION_DRIFT); ``details`` names
    the scope, variant or order involved.
    """

    code: str
    severity: CheckSeverity
    message: str
    details: Mapping[str, Any] | None = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "details": dict(self.details or {}),
        }


@dataclass(frozen=True)
class VerificationResult:
    """All findings of one verification pass."""

    findings: tuple[LedgerFinding, ...] = ()
    movements_checked: int = 0
    scopes_checked: int = 0
    variants_checked: int = 0
    counts_by_code: Mapping[str, int] = field(default_factory=dict)

    @property
    def status(self) -> CheckStatus:
        if any(f.severity == CheckSeverity.ERROR for f in self.findings):
            return CheckStatus.FAILED
        if any(f.severity == CheckSeverity.WARNING for f in self.findings):
            return CheckStatus.WARNING
        return CheckStatus.PASSED

    @property
    def is_clean(self) -> bool:
        return not self.findings


def _check_order_effects(movements: list[MovementSnapshot]) -> list[LedgerFinding]:
    sales: dict[tuple[int, int], list[int]] = defaultdict(list)
    restorations: dict[tuple[int, int], list[int]] = defaultdict(list)
    for m in movements:
        if m.order_id is None:
            continue
        key = (m.order_id, m.product_variant_id)
        if m.movement_type == MovementType.SALE:
            sales[key].append(m.id)
        elif m.movement_type in RESTORATION_TYPES:
            restorations[key].append(m.id)

    findings: list[LedgerFinding] = []
    for (order_id, variant_id), ids in sorted(sales.items()):
        if len(ids) > 1:
            findings.append(LedgerFinding(
                code="DUPLICATE_SALE",
                severity=CheckSeverity.ERROR,
                message=f"Order {order_id} has {len(ids)} sales for variant {variant_id}",
                details={"order_id": order_id, "product_variant_id": variant_id, "movement_ids": ids},
            ))
    for (order_id, variant_id), ids in sorted(restorations.items()):
        if len(ids) > 1:
            findings.append(LedgerFinding(
                code="DUPLICATE_RESTORATION",
                severity=CheckSeverity.ERROR,
                message=f"Order {order_id} has {len(ids)} restorations for variant {variant_id}",
                details={"order_id": order_id, "product_variant_id": variant_id, "movement_ids": ids},
            ))
    return findings


@traced_engine("ledger_verification", "1.0")
def verify_ledger(
    movements: Iterable[MovementSnapshot],
    scope_projections: Mapping[tuple[int, int], int],
    aggregates: Mapping[int, int],
) -> VerificationResult:
    """
    Check the movement log, projections and aggregates against each other.

    Args:
        movements: The whole movement log.
        scope_projections: (variant, location) -> projected quantity.
        aggregates: variant -> aggregate quantity.
    """
    all_movements = list(movements)
    findings: list[LedgerFinding] = []

    by_scope: dict[tuple[int, int], list[MovementSnapshot]] = defaultdict(list)
    for m in all_movements:
        if m.location_id is None:
            findings.append(LedgerFinding(
                code="NULL_LOCATION",
                severity=CheckSeverity.ERROR,
                message=f"Movement {m.id} has no location",
                details={"movement_id": m.id, "product_variant_id": m.product_variant_id},
            ))
        else:
            by_scope[(m.product_variant_id, m.location_id)].append(m)
        try:
            validate_direction(m.movement_type, m.quantity)
        except SignMismatchError as exc:
            findings.append(LedgerFinding(
                code="SIGN_VIOLATION",
                severity=CheckSeverity.ERROR,
                message=str(exc),
                details={"movement_id": m.id, "movement_type": m.movement_type.value},
            ))

    scopes = sorted(set(by_scope) | set(scope_projections))
    for scope in scopes:
        replay = replay_scope(by_scope.get(scope, []))
        projected = scope_projections.get(scope, 0)
        if projected != replay.final_quantity:
            findings.append(LedgerFinding(
                code="PROJECTION_DRIFT",
                severity=CheckSeverity.ERROR,
                message=(
                    f"Variant {scope[0]} at location {scope[1]}: projection "
                    f"{projected}, movements sum to {replay.final_quantity}"
                ),
                details={
                    "product_variant_id": scope[0],
                    "location_id": scope[1],
                    "projected": projected,
                    "replayed": replay.final_quantity,
                },
            ))
        if replay.corrections:
            findings.append(LedgerFinding(
                code="SNAPSHOT_CHAIN_BROKEN",
                severity=CheckSeverity.WARNING,
                message=(
                    f"Variant {scope[0]} at location {scope[1]}: "
                    f"{len(replay.corrections)} movement snapshot(s) out of sequence"
                ),
                details={
                    "product_variant_id": scope[0],
                    "location_id": scope[1],
                    "movement_ids": [c.movement_id for c in replay.corrections],
                },
            ))

    location_sums: dict[int, int] = defaultdict(int)
    for (variant_id, _location_id), quantity in scope_projections.items():
        location_sums[variant_id] += quantity
    variants = sorted(set(location_sums) | set(aggregates))
    for variant_id in variants:
        expected = location_sums.get(variant_id, 0)
        actual = aggregates.get(variant_id, 0)
        if expected != actual:
            findings.append(LedgerFinding(
                code="AGGREGATE_DRIFT",
                severity=CheckSeverity.ERROR,
                message=(
                    f"Variant {variant_id}: aggregate {actual}, "
                    f"locations sum to {expected}"
                ),
                details={
                    "product_variant_id": variant_id,
                    "aggregate": actual,
                    "location_sum": expected,
                },
            ))

    findings.extend(_check_order_effects(all_movements))

    counts: dict[str, int] = defaultdict(int)
    for f in findings:
        counts[f.code] += 1

    return VerificationResult(
        findings=tuple(findings),
        movements_checked=len(all_movements),
        scopes_checked=len(scopes),
        variants_checked=len(variants),
        counts_by_code=dict(counts),
    )
