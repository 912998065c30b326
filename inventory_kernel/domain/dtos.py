"""
Data transfer objects shared by stores, engines and services.

All DTOs are frozen dataclasses with no ORM dependency.  Stores populate
them from query results; engines consume them as immutable inputs.
"""

from dataclasses import dataclass
from datetime import datetime

from inventory_kernel.domain.movement_types import MovementType


@dataclass(frozen=True)
class MovementSnapshot:
    """Read-only view of one movement row."""

    id: int
    product_variant_id: int
    location_id: int | None
    movement_type: MovementType
    quantity: int
    quantity_before: int
    quantity_after: int
    created_at: datetime
    order_id: int | None = None
    reference: str | None = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Replay order: creation time, ties broken by id."""
        return (self.created_at, self.id)

    @property
    def scope(self) -> tuple[int, int | None]:
        return (self.product_variant_id, self.location_id)


@dataclass(frozen=True)
class SnapshotCorrection:
    """New before/after values for one movement whose chain was broken."""

    movement_id: int
    old_before: int
    old_after: int
    new_before: int
    new_after: int


@dataclass(frozen=True)
class OrderLine:
    """One variant line of an order, as supplied by the order collaborator."""

    product_variant_id: int
    quantity: int


@dataclass(frozen=True)
class LocationInfo:
    """Read-only view of a location."""

    id: int
    code: str
    name: str
    is_active: bool
    is_default: bool


@dataclass(frozen=True)
class OrderInfo:
    """Read-only view of an order record."""

    id: int
    order_number: str
    status: str
    channel: str
    fulfillment_location_id: int | None = None


@dataclass(frozen=True)
class ReturnInfo:
    """Read-only view of a customer return and its lines."""

    id: int
    order_id: int
    return_number: str
    status: str
    lines: tuple[OrderLine, ...] = ()
