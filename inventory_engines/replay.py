"""
Replay engine -- fold a scope's movements into a quantity and a snapshot chain.

Architecture: inventory_engines -- pure calculation, zero I/O.

The projection of a (variant, location) scope is defined as the sum of its
movement quantities.  Walking the movements in (``created_at``, ``id``) order
with a running total also yields the correct ``quantity_before`` /
``quantity_after`` for every row; rows whose stored snapshots disagree are
returned as corrections.

Replaying the same movement set always produces the same result, whatever
order the rows were supplied in.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from inventory_kernel.domain.dtos import MovementSnapshot, SnapshotCorrection
from inventory_engines.tracer import traced_engine


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of replaying one scope."""

    final_quantity: int
    movements_checked: int
    corrections: tuple[SnapshotCorrection, ...] = ()

    @property
    def correct_count(self) -> int:
        return self.movements_checked - len(self.corrections)

    @property
    def is_consistent(self) -> bool:
        return not self.corrections


def replay_total(quantities: Iterable[int]) -> int:
    """Sum of signed movement quantities."""
    return sum(quantities)


def order_for_replay(movements: Iterable[MovementSnapshot]) -> list[MovementSnapshot]:
    return sorted(movements, key=lambda m: m.sort_key)


@traced_engine("replay", "1.0", fingerprint_fields=("opening",))
def replay_scope(
    movements: Sequence[MovementSnapshot],
    opening: int = 0,
) -> ReplayResult:
    """
    Recompute the running total of one scope.

    Args:
        movements: Movements of a single (variant, location), any order.
        opening: Quantity before the first movement.

    Returns:
        ReplayResult with the final quantity and the snapshot corrections
        needed to restore ``after = before + quantity`` along the chain.
    """
    running = opening
    corrections: list[SnapshotCorrection] = []
    ordered = order_for_replay(movements)
    for movement in ordered:
        before = running
        after = running + movement.quantity
        if movement.quantity_before != before or movement.quantity_after != after:
            corrections.append(
                SnapshotCorrection(
                    movement_id=movement.id,
                    old_before=movement.quantity_before,
                    old_after=movement.quantity_after,
                    new_before=before,
                    new_after=after,
                )
            )
        running = after
    return ReplayResult(
        final_quantity=running,
        movements_checked=len(ordered),
        corrections=tuple(corrections),
    )
