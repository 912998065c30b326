"""
ProjectionStore -- Location Stock Projection and Variant Aggregate rows.

Responsibility:
    Locks, creates and writes projection rows.  The variant aggregate is
    only ever written by re-deriving it from the location rows
    (``refresh_aggregate``).

Architecture position:
    Kernel > Stores.  Used by the Ledger Writer, the projection service and
    the reconciliation routines.

Invariants enforced:
    - One row per (variant, location) and one aggregate row per variant.
      Concurrent first-time creation is resolved with a savepoint and a
      locked re-read, the same way sequence counters are created.
    - Lock order is aggregate first, then location.  Every writer of a
      variant serializes on the aggregate row, so the sum it re-derives
      sees every committed location write.
    - Aggregate = sum of the variant's location rows after every write.

Failure modes:
    - IntegrityError escapes only if the locked re-read after a creation
      race also fails (should not happen).
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.stock import LocationStock, VariantStock
from inventory_kernel.stores.base import BaseStore

logger = get_logger("stores.projection")


class ProjectionStore(BaseStore):
    """
    Projection row access.

    Non-goals:
        - Does NOT replay movements; ProjectionService does that and hands
          the result here.
    """

    # ------------------------------------------------------------------
    # Locking / creation
    # ------------------------------------------------------------------

    def _select_scope(self, product_variant_id: int, location_id: int):
        return (
            select(LocationStock)
            .where(
                LocationStock.product_variant_id == product_variant_id,
                LocationStock.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _select_aggregate(self, product_variant_id: int):
        return (
            select(VariantStock)
            .where(VariantStock.product_variant_id == product_variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def lock_scope(self, product_variant_id: int, location_id: int) -> LocationStock:
        """
        Lock the (variant, location) row, creating it at 0 if absent.

        Postconditions:
            The row is locked until the caller's transaction ends.
        """
        row = self.session.execute(
            self._select_scope(product_variant_id, location_id)
        ).scalar_one_or_none()
        if row is not None:
            return row

        savepoint = self.session.begin_nested()
        try:
            row = LocationStock(
                product_variant_id=product_variant_id,
                location_id=location_id,
                quantity=0,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "projection_row_created",
                extra={"product_variant_id": product_variant_id, "location_id": location_id},
            )
            return row
        except IntegrityError:
            # Another transaction created the row first
            logger.debug(
                "projection_row_race_retry",
                extra={"product_variant_id": product_variant_id, "location_id": location_id},
            )
            savepoint.rollback()
            return self.session.execute(
                self._select_scope(product_variant_id, location_id)
            ).scalar_one()

    def lock_aggregate(self, product_variant_id: int) -> VariantStock:
        """Lock the variant aggregate row, creating it at 0 if absent."""
        row = self.session.execute(
            self._select_aggregate(product_variant_id)
        ).scalar_one_or_none()
        if row is not None:
            return row

        savepoint = self.session.begin_nested()
        try:
            row = VariantStock(product_variant_id=product_variant_id, quantity=0)
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            logger.debug(
                "aggregate_row_race_retry",
                extra={"product_variant_id": product_variant_id},
            )
            savepoint.rollback()
            return self.session.execute(
                self._select_aggregate(product_variant_id)
            ).scalar_one()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_scope_quantity(
        self, product_variant_id: int, location_id: int, quantity: int
    ) -> LocationStock:
        row = self.lock_scope(product_variant_id, location_id)
        row.quantity = quantity
        self.session.flush()
        return row

    def increment_scope(
        self, product_variant_id: int, location_id: int, delta: int
    ) -> LocationStock:
        row = self.lock_scope(product_variant_id, location_id)
        row.quantity = row.quantity + delta
        self.session.flush()
        return row

    def refresh_aggregate(self, product_variant_id: int) -> int:
        """
        Re-derive the variant aggregate from its location rows.

        Returns:
            The new aggregate quantity.
        """
        aggregate = self.lock_aggregate(product_variant_id)
        total = self.location_total(product_variant_id)
        aggregate.quantity = total
        self.session.flush()
        return total

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def scope_quantity(self, product_variant_id: int, location_id: int) -> int | None:
        return self.session.execute(
            select(LocationStock.quantity).where(
                LocationStock.product_variant_id == product_variant_id,
                LocationStock.location_id == location_id,
            )
        ).scalar_one_or_none()

    def aggregate_quantity(self, product_variant_id: int) -> int | None:
        return self.session.execute(
            select(VariantStock.quantity).where(
                VariantStock.product_variant_id == product_variant_id
            )
        ).scalar_one_or_none()

    def locations_for_variant(self, product_variant_id: int) -> set[int]:
        rows = self.session.execute(
            select(LocationStock.location_id).where(
                LocationStock.product_variant_id == product_variant_id
            )
        ).scalars()
        return set(rows)

    def all_scopes(self) -> dict[tuple[int, int], int]:
        rows = self.session.execute(
            select(
                LocationStock.product_variant_id,
                LocationStock.location_id,
                LocationStock.quantity,
            )
        ).all()
        return {(row[0], row[1]): row[2] for row in rows}

    def location_total(self, product_variant_id: int) -> int:
        """Sum of the variant's location rows (what the aggregate should hold)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(LocationStock.quantity), 0)).where(
                LocationStock.product_variant_id == product_variant_id
            )
        ).scalar_one()
        return int(total)

    def all_aggregates(self) -> dict[int, int]:
        rows = self.session.execute(
            select(VariantStock.product_variant_id, VariantStock.quantity)
        ).all()
        return {row[0]: row[1] for row in rows}
