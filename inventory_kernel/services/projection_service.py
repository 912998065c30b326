"""
ProjectionService -- re-derive projections from the movement log.

Responsibility:
    Rebuilds a variant's Location Stock Projection rows from the sum of
    their movements, then re-derives the Variant Aggregate.  Used by every
    reconciliation routine after it deletes movements.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - After ``rebuild_variant`` every location row of the variant equals
      the sum of that location's movements (0 when none remain) and the
      aggregate equals the sum of the location rows.
    - Locks the aggregate row before any location row, the same order the
      Ledger Writer uses.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy.orm import Session

from inventory_kernel.logging_config import get_logger
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore

logger = get_logger("services.projection")


@dataclass(frozen=True)
class VariantRebuild:
    """Result of rebuilding one variant's projections."""

    product_variant_id: int
    location_quantities: Mapping[int, int]
    aggregate: int
    changed_locations: tuple[int, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.changed_locations)


class ProjectionService:
    """Projection re-derivation for one session."""

    def __init__(self, session: Session):
        self._movements = MovementStore(session)
        self._projections = ProjectionStore(session)

    def replay_scope(self, product_variant_id: int, location_id: int) -> int:
        """Sum of the scope's movement quantities."""
        return self._movements.scope_total(product_variant_id, location_id)

    def refresh_aggregate(self, product_variant_id: int) -> int:
        return self._projections.refresh_aggregate(product_variant_id)

    def rebuild_variant(self, product_variant_id: int) -> VariantRebuild:
        """
        Recompute every location row of a variant, then its aggregate.

        Covers locations that have a projection row, movements, or both.
        """
        self._projections.lock_aggregate(product_variant_id)

        locations = self._movements.locations_for_variant(
            product_variant_id
        ) | self._projections.locations_for_variant(product_variant_id)

        quantities: dict[int, int] = {}
        changed: list[int] = []
        for location_id in sorted(locations):
            replayed = self.replay_scope(product_variant_id, location_id)
            row = self._projections.lock_scope(product_variant_id, location_id)
            if row.quantity != replayed:
                changed.append(location_id)
                row.quantity = replayed
            quantities[location_id] = replayed

        aggregate = self._projections.refresh_aggregate(product_variant_id)

        logger.info(
            "projection_rebuilt",
            extra={
                "product_variant_id": product_variant_id,
                "locations": len(quantities),
                "changed_locations": changed,
                "aggregate": aggregate,
            },
        )
        return VariantRebuild(
            product_variant_id=product_variant_id,
            location_quantities=quantities,
            aggregate=aggregate,
            changed_locations=tuple(changed),
        )
