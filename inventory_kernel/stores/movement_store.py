"""
MovementStore -- persistence for the movement log.

Responsibility:
    Appends movements (insert-or-skip on the order-effect indexes), answers
    the queries the Ledger Writer and the reconciliation routines need, and
    performs the three sanctioned mutations: snapshot rewrite, first
    location assignment and purge.

Architecture position:
    Kernel > Stores.  Returns ORM rows only where the caller must mutate
    them; everything else comes back as ``MovementSnapshot``.

Invariants enforced:
    - Insert-or-skip: a uniqueness violation on insert is rolled back to a
      savepoint and reported as ``None``; the outer transaction survives.
    - Deletes go through ``session.delete`` inside ``movement_purge_scope``
      so the immutability listeners see them.

Failure modes:
    - ImmutabilityViolationError if a caller mutates a movement outside the
      permitted fields.
"""

from collections.abc import Iterable, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from inventory_kernel.db.immutability import movement_purge_scope
from inventory_kernel.domain.dtos import MovementSnapshot, SnapshotCorrection
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.stores.base import BaseStore

logger = get_logger("stores.movement")


class MovementStore(BaseStore):
    """
    Movement log reads and writes.

    Non-goals:
        - Does NOT touch projections.  Callers pair every write with a
          ProjectionStore update in the same transaction.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, movement: InventoryMovement) -> bool:
        """
        Insert ``movement`` inside a savepoint.

        Returns:
            True when inserted, False when an order-effect unique index
            rejected it.
        """
        savepoint = self.session.begin_nested()
        try:
            self.session.add(movement)
            self.session.flush()
            savepoint.commit()
            return True
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "movement_insert_conflict",
                extra={
                    "order_id": movement.order_id,
                    "product_variant_id": movement.product_variant_id,
                    "movement_type": movement.movement_type.value,
                },
            )
            return False

    def apply_corrections(self, corrections: Iterable[SnapshotCorrection]) -> int:
        """Rewrite snapshot columns for the given movements."""
        count = 0
        for correction in corrections:
            movement = self.session.get(InventoryMovement, correction.movement_id)
            if movement is None:
                continue
            movement.quantity_before = correction.new_before
            movement.quantity_after = correction.new_after
            count += 1
        self.session.flush()
        return count

    def assign_location(self, movement_id: int, location_id: int) -> InventoryMovement | None:
        """
        Set the location of a legacy NULL-location movement.

        Returns:
            The updated movement, or None if it no longer exists or already
            has a location.
        """
        movement = self.session.execute(
            select(InventoryMovement)
            .where(InventoryMovement.id == movement_id)
            .with_for_update()
        ).scalar_one_or_none()
        if movement is None or movement.location_id is not None:
            return None
        movement.location_id = location_id
        self.session.flush()
        return movement

    def purge(self, movement_ids: Iterable[int], reason: str) -> list[MovementSnapshot]:
        """
        Delete movements by id.

        Returns:
            Snapshots of the rows actually deleted (ids that no longer exist
            are ignored).
        """
        ids = sorted(set(movement_ids))
        if not ids:
            return []
        rows = list(
            self.session.execute(
                select(InventoryMovement).where(InventoryMovement.id.in_(ids))
            ).scalars()
        )
        deleted = [row.to_snapshot() for row in rows]
        with movement_purge_scope(self.session, reason):
            for row in rows:
                self.session.delete(row)
            self.session.flush()
        logger.info(
            "movements_purged",
            extra={"reason": reason, "count": len(deleted)},
        )
        return deleted

    # ------------------------------------------------------------------
    # Order effects
    # ------------------------------------------------------------------

    def find_order_effect(
        self,
        order_id: int,
        product_variant_id: int,
        types: Iterable[MovementType],
    ) -> MovementSnapshot | None:
        """Earliest movement of one of ``types`` for (order, variant)."""
        row = self.session.execute(
            select(InventoryMovement)
            .where(
                InventoryMovement.order_id == order_id,
                InventoryMovement.product_variant_id == product_variant_id,
                InventoryMovement.movement_type.in_(list(types)),
            )
            .order_by(InventoryMovement.created_at, InventoryMovement.id)
            .limit(1)
        ).scalar_one_or_none()
        return row.to_snapshot() if row is not None else None

    def find_sale(self, order_id: int, product_variant_id: int) -> MovementSnapshot | None:
        return self.find_order_effect(order_id, product_variant_id, [MovementType.SALE])

    def sales_with_orders(self) -> list[MovementSnapshot]:
        """Every sale that references an order."""
        rows = self.session.execute(
            select(InventoryMovement)
            .where(
                InventoryMovement.movement_type == MovementType.SALE,
                InventoryMovement.order_id.is_not(None),
            )
            .order_by(
                InventoryMovement.order_id,
                InventoryMovement.product_variant_id,
                InventoryMovement.created_at,
                InventoryMovement.id,
            )
        ).scalars()
        return [row.to_snapshot() for row in rows]

    def movements_for_orders(
        self,
        order_ids: Sequence[int],
        types: Iterable[MovementType],
    ) -> list[MovementSnapshot]:
        if not order_ids:
            return []
        rows = self.session.execute(
            select(InventoryMovement)
            .where(
                InventoryMovement.order_id.in_(list(order_ids)),
                InventoryMovement.movement_type.in_(list(types)),
            )
            .order_by(InventoryMovement.order_id, InventoryMovement.id)
        ).scalars()
        return [row.to_snapshot() for row in rows]

    def restoration_pairs(self) -> list[tuple[MovementSnapshot, MovementSnapshot]]:
        """
        (cancellation, return) pairs sharing an (order, variant), found with
        a single self-join.
        """
        cancellation = aliased(InventoryMovement)
        ret = aliased(InventoryMovement)
        rows = self.session.execute(
            select(cancellation, ret)
            .join(
                ret,
                and_(
                    ret.order_id == cancellation.order_id,
                    ret.product_variant_id == cancellation.product_variant_id,
                ),
            )
            .where(
                cancellation.movement_type == MovementType.CANCELLATION,
                ret.movement_type == MovementType.RETURN,
                cancellation.order_id.is_not(None),
            )
            .order_by(
                cancellation.order_id,
                cancellation.product_variant_id,
                cancellation.id,
                ret.id,
            )
        ).all()
        return [(c.to_snapshot(), r.to_snapshot()) for c, r in rows]

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def scope_movements(
        self, product_variant_id: int, location_id: int
    ) -> list[MovementSnapshot]:
        """All movements of one (variant, location), in replay order."""
        rows = self.session.execute(
            select(InventoryMovement)
            .where(
                InventoryMovement.product_variant_id == product_variant_id,
                InventoryMovement.location_id == location_id,
            )
            .order_by(InventoryMovement.created_at, InventoryMovement.id)
        ).scalars()
        return [row.to_snapshot() for row in rows]

    def scope_total(self, product_variant_id: int, location_id: int) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryMovement.quantity), 0)).where(
                InventoryMovement.product_variant_id == product_variant_id,
                InventoryMovement.location_id == location_id,
            )
        ).scalar_one()
        return int(total)

    def distinct_scopes(self) -> list[tuple[int, int]]:
        """Every (variant, location) pair with at least one located movement."""
        rows = self.session.execute(
            select(InventoryMovement.product_variant_id, InventoryMovement.location_id)
            .where(InventoryMovement.location_id.is_not(None))
            .distinct()
            .order_by(InventoryMovement.product_variant_id, InventoryMovement.location_id)
        ).all()
        return [(row[0], row[1]) for row in rows]

    def locations_for_variant(self, product_variant_id: int) -> set[int]:
        rows = self.session.execute(
            select(InventoryMovement.location_id)
            .where(
                InventoryMovement.product_variant_id == product_variant_id,
                InventoryMovement.location_id.is_not(None),
            )
            .distinct()
        ).scalars()
        return set(rows)

    def null_location_movements(self) -> list[MovementSnapshot]:
        rows = self.session.execute(
            select(InventoryMovement)
            .where(InventoryMovement.location_id.is_(None))
            .order_by(InventoryMovement.id)
        ).scalars()
        return [row.to_snapshot() for row in rows]

    def count_null_location(self) -> int:
        return int(
            self.session.execute(
                select(func.count())
                .select_from(InventoryMovement)
                .where(InventoryMovement.location_id.is_(None))
            ).scalar_one()
        )

    def all_movements(self) -> list[MovementSnapshot]:
        """The whole log in replay order (verification only)."""
        rows = self.session.execute(
            select(InventoryMovement).order_by(
                InventoryMovement.created_at, InventoryMovement.id
            )
        ).scalars()
        return [row.to_snapshot() for row in rows]
