"""
LedgerWriter -- the single entry point for appending stock movements.

Responsibility:
    Validates a requested movement, enforces at-most-once order effects,
    appends the movement with its before/after snapshots, and updates the
    location projection and the variant aggregate in the same transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the stock lifecycle
    service (orders, returns, purchases, manual adjustments).  Delegates
    storage to MovementStore / ProjectionStore and location lookups to
    LocationSelector.

Invariants enforced:
    - Direction: quantity sign must agree with the movement type.
    - Location: the movement's location must exist and be active.
    - At most one ``sale`` per (order, variant).
    - At most one restoration (``cancellation`` or ``return``) per
      (order, variant).
    - ``quantity_after = quantity_before + quantity`` and the projection
      equals ``quantity_after`` of the scope's latest movement.
    - Variant aggregate = sum of its location projections after the write.

Concurrency:
    The variant aggregate row is locked first (``SELECT ... FOR UPDATE``),
    then the location row.  Writers of the same variant serialize, so the
    duplicate check, the snapshot and the aggregate re-derivation all see
    every previously committed write.  The partial unique indexes on the
    movement table are the backstop; a violation is reported as a
    suppressed duplicate, never as a second effect.

Failure modes:
    - SignMismatchError / UnknownMovementTypeError / InvalidLocationError
      are raised before any lock is taken.
    - A suppressed duplicate is a result status, not an exception.

Non-goals:
    - Does NOT commit.  The caller's ``unit_of_work()`` owns the boundary.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import (
    ORDER_EFFECT_TYPES,
    RESTORATION_TYPES,
    MovementType,
    parse_movement_type,
    validate_direction,
)
from inventory_kernel.exceptions import DuplicateSuppressedError, InvalidLocationError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.selectors.location_selector import LocationSelector
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore

logger = get_logger("services.ledger_writer")


class AppendStatus(str, Enum):
    """Status of an append operation."""

    WRITTEN = "written"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"


@dataclass(frozen=True)
class AppendResult:
    """
    Result of LedgerWriter.append().

    A suppressed duplicate carries the id of the movement that already
    holds the order effect.
    """

    status: AppendStatus
    movement: MovementSnapshot | None = None
    existing_movement_id: int | None = None
    location_quantity: int | None = None
    variant_quantity: int | None = None

    @classmethod
    def written(
        cls,
        movement: MovementSnapshot,
        location_quantity: int,
        variant_quantity: int,
    ) -> "AppendResult":
        return cls(
            status=AppendStatus.WRITTEN,
            movement=movement,
            location_quantity=location_quantity,
            variant_quantity=variant_quantity,
        )

    @classmethod
    def suppressed(cls, existing_movement_id: int | None) -> "AppendResult":
        return cls(
            status=AppendStatus.DUPLICATE_SUPPRESSED,
            existing_movement_id=existing_movement_id,
        )

    @property
    def is_written(self) -> bool:
        return self.status == AppendStatus.WRITTEN

    @property
    def is_success(self) -> bool:
        """Duplicates are idempotent successes."""
        return self.status in (AppendStatus.WRITTEN, AppendStatus.DUPLICATE_SUPPRESSED)

    @property
    def movement_id(self) -> int | None:
        return self.movement.id if self.movement is not None else None


class LedgerWriter:
    """
    Appends movements and keeps projections in step.

    Contract:
        ``append`` either writes exactly one movement and updates both
        projections, or writes nothing (duplicate suppressed / error).

    Guarantees:
        - Never produces a second sale or a second restoration for an
          (order, variant), even under concurrent calls.

    Non-goals:
        - Does NOT resolve which location an order ships from; callers
          pass a concrete location id.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._movements = MovementStore(session)
        self._projections = ProjectionStore(session)
        self._locations = LocationSelector(session)

    def append(
        self,
        product_variant_id: int,
        location_id: int | None,
        movement_type: "MovementType | str",
        quantity: int,
        order_id: int | None = None,
        reference: str | None = None,
        notes: str | None = None,
        purchase_order_item_id: int | None = None,
        occurred_at: datetime | None = None,
    ) -> AppendResult:
        """
        Append one movement.

        Args:
            product_variant_id: Variant whose stock changes.
            location_id: Location where it changes; must be active.
            movement_type: MovementType or its string value.
            quantity: Signed quantity, non-zero, sign per type.
            order_id: Originating order, for order effects.
            reference: Human-readable reference (order number, PO, ...).
            notes: Free-text operator note.
            purchase_order_item_id: Originating purchase-order line.
            occurred_at: Movement timestamp; defaults to the clock.

        Raises:
            UnknownMovementTypeError, SignMismatchError, InvalidLocationError
        """
        mtype = parse_movement_type(movement_type)
        validate_direction(mtype, quantity)
        self._require_active_location(location_id)

        t0 = time.monotonic()
        with LogContext.bind(order_id=str(order_id) if order_id is not None else None):
            # Lock order: aggregate, then location
            self._projections.lock_aggregate(product_variant_id)

            try:
                self._guard_order_effect(order_id, product_variant_id, mtype)
            except DuplicateSuppressedError as exc:
                return self._suppressed(exc)

            scope = self._projections.lock_scope(product_variant_id, location_id)
            before = scope.quantity
            after = before + quantity

            movement = InventoryMovement(
                product_variant_id=product_variant_id,
                location_id=location_id,
                movement_type=mtype,
                quantity=quantity,
                quantity_before=before,
                quantity_after=after,
                order_id=order_id,
                reference=reference,
                notes=notes,
                purchase_order_item_id=purchase_order_item_id,
                created_at=occurred_at or self._clock.now(),
            )
            if not self._movements.add(movement):
                existing = self._existing_effect(order_id, product_variant_id, mtype)
                return self._suppressed(
                    DuplicateSuppressedError(
                        order_id=order_id,
                        product_variant_id=product_variant_id,
                        movement_type=mtype.value,
                        existing_movement_id=existing.id if existing else None,
                    )
                )

            scope.quantity = after
            self._session.flush()
            variant_total = self._projections.refresh_aggregate(product_variant_id)

            if after < 0:
                logger.warning(
                    "negative_stock",
                    extra={
                        "product_variant_id": product_variant_id,
                        "location_id": location_id,
                        "quantity_after": after,
                        "movement_id": movement.id,
                    },
                )

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "movement_appended",
                extra={
                    "movement_id": movement.id,
                    "movement_type": mtype.value,
                    "product_variant_id": product_variant_id,
                    "location_id": location_id,
                    "quantity": quantity,
                    "quantity_before": before,
                    "quantity_after": after,
                    "variant_quantity": variant_total,
                    "duration_ms": duration_ms,
                },
            )
            return AppendResult.written(movement.to_snapshot(), after, variant_total)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active_location(self, location_id: int | None) -> None:
        if location_id is None:
            raise InvalidLocationError(None, "location is required")
        location = self._locations.get(location_id)
        if location is None:
            raise InvalidLocationError(location_id, "not found")
        if not location.is_active:
            raise InvalidLocationError(location_id, "inactive")

    def _existing_effect(
        self, order_id: int | None, product_variant_id: int, mtype: MovementType
    ) -> MovementSnapshot | None:
        if order_id is None or mtype not in ORDER_EFFECT_TYPES:
            return None
        if mtype in RESTORATION_TYPES:
            types = RESTORATION_TYPES
        else:
            types = frozenset({mtype})
        return self._movements.find_order_effect(order_id, product_variant_id, types)

    def _guard_order_effect(
        self, order_id: int | None, product_variant_id: int, mtype: MovementType
    ) -> None:
        """Raise DuplicateSuppressedError if the order effect already exists."""
        existing = self._existing_effect(order_id, product_variant_id, mtype)
        if existing is not None:
            raise DuplicateSuppressedError(
                order_id=order_id,
                product_variant_id=product_variant_id,
                movement_type=mtype.value,
                existing_movement_id=existing.id,
            )

    def _suppressed(self, exc: DuplicateSuppressedError) -> AppendResult:
        logger.info(
            "duplicate_suppressed",
            extra={
                "order_id": exc.order_id,
                "product_variant_id": exc.product_variant_id,
                "movement_type": exc.movement_type,
                "existing_movement_id": exc.existing_movement_id,
            },
        )
        return AppendResult.suppressed(exc.existing_movement_id)
