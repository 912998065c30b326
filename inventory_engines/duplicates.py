"""
Duplicate sale planner.

Architecture: inventory_engines -- pure calculation, zero I/O.

A (order, variant) with more than one ``sale`` movement is a duplicate
group.  The earliest movement by (``created_at``, ``id``) is kept; every
other movement of the group is scheduled for deletion.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import MovementType
from inventory_engines.tracer import traced_engine


@dataclass(frozen=True)
class DuplicateGroup:
    """One (order, variant) with redundant sale movements."""

    order_id: int
    product_variant_id: int
    keep: MovementSnapshot
    delete: tuple[MovementSnapshot, ...]

    @property
    def delete_ids(self) -> tuple[int, ...]:
        return tuple(m.id for m in self.delete)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "product_variant_id": self.product_variant_id,
            "keep_id": self.keep.id,
            "delete_ids": list(self.delete_ids),
        }


@dataclass(frozen=True)
class DuplicateSalePlan:
    """All duplicate groups found in one scan."""

    groups: tuple[DuplicateGroup, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.groups

    @property
    def delete_ids(self) -> tuple[int, ...]:
        return tuple(i for g in self.groups for i in g.delete_ids)

    @property
    def affected_variants(self) -> frozenset[int]:
        return frozenset(g.product_variant_id for g in self.groups)


@traced_engine("duplicate_sales", "1.0")
def plan_duplicate_sales(sales: Iterable[MovementSnapshot]) -> DuplicateSalePlan:
    """Group sale movements by (order, variant) and pick the survivor."""
    grouped: dict[tuple[int, int], list[MovementSnapshot]] = defaultdict(list)
    for movement in sales:
        if movement.movement_type != MovementType.SALE or movement.order_id is None:
            continue
        grouped[(movement.order_id, movement.product_variant_id)].append(movement)

    groups: list[DuplicateGroup] = []
    for key in sorted(grouped):
        items = sorted(grouped[key], key=lambda m: m.sort_key)
        if len(items) < 2:
            continue
        groups.append(
            DuplicateGroup(
                order_id=key[0],
                product_variant_id=key[1],
                keep=items[0],
                delete=tuple(items[1:]),
            )
        )
    return DuplicateSalePlan(groups=tuple(groups))
