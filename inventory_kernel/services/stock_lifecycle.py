"""
StockLifecycleService -- order, return, purchase and manual stock hooks.

Responsibility:
    Translates business events into Ledger Writer calls: deduct stock when
    an order is placed, restore it when the order is cancelled or returned,
    add it when a purchase is received, and record manual adjustments.
    Chooses the location each movement lands on.

Architecture position:
    Kernel > Services.  Called by the order workflow once per event.  Uses
    LedgerWriter for every write; never touches projections directly.

Location resolution:
    - Sale: the order's fulfilment location when it exists and is active,
      otherwise the active location with the most stock of the variant,
      otherwise the default location.
    - Cancellation: the location of the order's sale.  Lines without a
      sale are skipped (nothing to restore).
    - Return: the location of the order's sale, otherwise as for a sale
      without a fulfilment location.

Failure modes:
    - OrderNotFoundError for an unknown order id.
    - NoLocationConfiguredError when no location can be resolved.
    - Writer errors (InvalidLocationError, SignMismatchError) propagate.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import OrderInfo, OrderLine
from inventory_kernel.domain.movement_types import (
    MovementType,
    parse_movement_type,
    signed_quantity,
)
from inventory_kernel.exceptions import NoLocationConfiguredError, OrderNotFoundError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.location_selector import LocationSelector
from inventory_kernel.selectors.order_selector import OrderSelector
from inventory_kernel.services.ledger_writer import AppendResult, LedgerWriter
from inventory_kernel.stores.movement_store import MovementStore

logger = get_logger("services.stock_lifecycle")


class LineStatus(str, Enum):
    APPENDED = "appended"
    SUPPRESSED = "suppressed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class LineOutcome:
    """What happened to one order line."""

    product_variant_id: int
    status: LineStatus
    location_id: int | None = None
    movement_id: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class LifecycleResult:
    """Per-line outcomes of one lifecycle operation."""

    operation: str
    order_id: int | None
    outcomes: tuple[LineOutcome, ...] = ()

    def _count(self, status: LineStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def appended(self) -> int:
        return self._count(LineStatus.APPENDED)

    @property
    def suppressed(self) -> int:
        return self._count(LineStatus.SUPPRESSED)

    @property
    def skipped(self) -> int:
        return self._count(LineStatus.SKIPPED)


def _outcome(variant_id: int, location_id: int, result: AppendResult) -> LineOutcome:
    if result.is_written:
        return LineOutcome(variant_id, LineStatus.APPENDED, location_id, result.movement_id)
    return LineOutcome(
        variant_id,
        LineStatus.SUPPRESSED,
        location_id,
        result.existing_movement_id,
        reason="order effect already recorded",
    )


class StockLifecycleService:
    """
    Business-event hooks over the Ledger Writer.

    Non-goals:
        - Does NOT decide when an order is cancelled or returned; the order
          workflow calls the matching hook.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_location_code: str | None = None,
    ):
        self._writer = LedgerWriter(session, clock)
        self._movements = MovementStore(session)
        self._locations = LocationSelector(session)
        self._orders = OrderSelector(session)
        self._default_location_code = default_location_code

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def deduct_for_order(self, order_id: int, lines: Sequence[OrderLine]) -> LifecycleResult:
        """Record one sale per order line."""
        order = self._require_order(order_id)
        outcomes = []
        with LogContext.bind(order_id=str(order_id)):
            for line in lines:
                location_id = self._order_location(order, line.product_variant_id)
                result = self._writer.append(
                    product_variant_id=line.product_variant_id,
                    location_id=location_id,
                    movement_type=MovementType.SALE,
                    quantity=-abs(line.quantity),
                    order_id=order_id,
                    reference=f"Order #{order.order_number}",
                )
                outcomes.append(_outcome(line.product_variant_id, location_id, result))
        return self._finish("deduct_for_order", order_id, outcomes)

    def restore_for_cancellation(
        self, order_id: int, lines: Sequence[OrderLine]
    ) -> LifecycleResult:
        """Put cancelled stock back where the sale took it from."""
        order = self._require_order(order_id)
        outcomes = []
        with LogContext.bind(order_id=str(order_id)):
            for line in lines:
                sale = self._movements.find_sale(order_id, line.product_variant_id)
                if sale is None:
                    outcomes.append(
                        LineOutcome(
                            line.product_variant_id,
                            LineStatus.SKIPPED,
                            reason="no sale recorded for this order line",
                        )
                    )
                    continue
                location_id = sale.location_id or self._fallback_location(
                    line.product_variant_id
                )
                result = self._writer.append(
                    product_variant_id=line.product_variant_id,
                    location_id=location_id,
                    movement_type=MovementType.CANCELLATION,
                    quantity=abs(line.quantity),
                    order_id=order_id,
                    reference=f"Order #{order.order_number} cancelled",
                )
                outcomes.append(_outcome(line.product_variant_id, location_id, result))
        return self._finish("restore_for_cancellation", order_id, outcomes)

    def restore_for_return(
        self,
        order_id: int,
        lines: Sequence[OrderLine],
        return_reference: str | None = None,
    ) -> LifecycleResult:
        """Put returned stock back at the sale's location."""
        order = self._require_order(order_id)
        reference = (
            f"Return {return_reference}"
            if return_reference
            else f"Order #{order.order_number} returned"
        )
        outcomes = []
        with LogContext.bind(order_id=str(order_id)):
            for line in lines:
                sale = self._movements.find_sale(order_id, line.product_variant_id)
                if sale is not None and sale.location_id is not None:
                    location_id = sale.location_id
                else:
                    location_id = self._fallback_location(line.product_variant_id)
                result = self._writer.append(
                    product_variant_id=line.product_variant_id,
                    location_id=location_id,
                    movement_type=MovementType.RETURN,
                    quantity=abs(line.quantity),
                    order_id=order_id,
                    reference=reference,
                )
                outcomes.append(_outcome(line.product_variant_id, location_id, result))
        return self._finish("restore_for_return", order_id, outcomes)

    # ------------------------------------------------------------------
    # Purchasing and manual stock
    # ------------------------------------------------------------------

    def receive_purchase(
        self,
        product_variant_id: int,
        location_id: int,
        quantity: int,
        purchase_order_item_id: int | None = None,
        reference: str | None = None,
    ) -> AppendResult:
        return self._writer.append(
            product_variant_id=product_variant_id,
            location_id=location_id,
            movement_type=MovementType.PURCHASE_RECEIVED,
            quantity=abs(quantity),
            purchase_order_item_id=purchase_order_item_id,
            reference=reference,
        )

    def adjust_stock(
        self,
        product_variant_id: int,
        location_id: int,
        movement_type: "MovementType | str",
        quantity: int,
        reference: str | None = None,
        notes: str | None = None,
    ) -> AppendResult:
        """
        Record an operator stock change.

        ``quantity`` is the magnitude entered by the operator; deduction
        types are negated and addition types made positive.  Adjustments
        and corrections keep the sign as entered.
        """
        mtype = parse_movement_type(movement_type)
        return self._writer.append(
            product_variant_id=product_variant_id,
            location_id=location_id,
            movement_type=mtype,
            quantity=signed_quantity(mtype, quantity),
            reference=reference,
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Location resolution
    # ------------------------------------------------------------------

    def _require_order(self, order_id: int) -> OrderInfo:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _order_location(self, order: OrderInfo, product_variant_id: int) -> int:
        if order.fulfillment_location_id is not None:
            location = self._locations.get(order.fulfillment_location_id)
            if location is not None and location.is_active:
                return location.id
        return self._fallback_location(product_variant_id)

    def _fallback_location(self, product_variant_id: int) -> int:
        best = self._locations.best_stocked_location(product_variant_id)
        if best is not None:
            return best
        default = self._locations.default_location(self._default_location_code)
        if default is None:
            raise NoLocationConfiguredError(self._default_location_code)
        return default.id

    def _finish(
        self, operation: str, order_id: int, outcomes: list[LineOutcome]
    ) -> LifecycleResult:
        result = LifecycleResult(operation=operation, order_id=order_id, outcomes=tuple(outcomes))
        logger.info(
            "lifecycle_operation_completed",
            extra={
                "operation": operation,
                "appended": result.appended,
                "suppressed": result.suppressed,
                "skipped": result.skipped,
            },
        )
        return result
