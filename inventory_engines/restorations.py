"""
Restoration conflict planner.

Architecture: inventory_engines -- pure calculation, zero I/O.

An (order, variant) that carries both a ``cancellation`` and a ``return``
restored its stock twice.  The restoration policy picks which kind
survives:

    keep_cancellation  (default) cancellations are authoritative; the
                       returns of the pair are deleted.
    keep_return        returns are authoritative; the cancellations are
                       deleted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_engines.tracer import traced_engine


class RestorationPolicy(str, Enum):
    """Which restoration kind survives a cancellation/return conflict."""

    KEEP_CANCELLATION = "keep_cancellation"
    KEEP_RETURN = "keep_return"


@dataclass(frozen=True)
class RestorationConflict:
    """One (order, variant) restored by both a cancellation and a return."""

    order_id: int
    product_variant_id: int
    kept: tuple[MovementSnapshot, ...]
    removed: tuple[MovementSnapshot, ...]

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "product_variant_id": self.product_variant_id,
            "kept_ids": [m.id for m in self.kept],
            "removed_ids": [m.id for m in self.removed],
            "removed_quantity": sum(m.quantity for m in self.removed),
        }


@dataclass(frozen=True)
class RestorationPlan:
    """All conflicts found in one scan, resolved under ``policy``."""

    policy: RestorationPolicy
    conflicts: tuple[RestorationConflict, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conflicts

    @property
    def delete_ids(self) -> tuple[int, ...]:
        return tuple(m.id for c in self.conflicts for m in c.removed)

    @property
    def affected_variants(self) -> frozenset[int]:
        return frozenset(c.product_variant_id for c in self.conflicts)


@traced_engine("restoration_conflicts", "1.0", fingerprint_fields=("policy",))
def plan_restoration_conflicts(
    pairs: Iterable[tuple[MovementSnapshot, MovementSnapshot]],
    policy: RestorationPolicy = RestorationPolicy.KEEP_CANCELLATION,
) -> RestorationPlan:
    """
    Resolve (cancellation, return) pairs into a deletion plan.

    Args:
        pairs: Output of the cancellation x return self-join.  A movement
            may appear in several pairs; each is planned once.
        policy: Which kind survives.
    """
    cancellations: dict[tuple[int, int], dict[int, MovementSnapshot]] = {}
    returns: dict[tuple[int, int], dict[int, MovementSnapshot]] = {}
    for cancellation, ret in pairs:
        key = (cancellation.order_id, cancellation.product_variant_id)
        cancellations.setdefault(key, {})[cancellation.id] = cancellation
        returns.setdefault(key, {})[ret.id] = ret

    conflicts: list[RestorationConflict] = []
    for key in sorted(cancellations):
        c_rows = tuple(sorted(cancellations[key].values(), key=lambda m: m.id))
        r_rows = tuple(sorted(returns[key].values(), key=lambda m: m.id))
        if policy == RestorationPolicy.KEEP_CANCELLATION:
            kept, removed = c_rows, r_rows
        else:
            kept, removed = r_rows, c_rows
        conflicts.append(
            RestorationConflict(
                order_id=key[0],
                product_variant_id=key[1],
                kept=kept,
                removed=removed,
            )
        )
    return RestorationPlan(policy=policy, conflicts=tuple(conflicts))
