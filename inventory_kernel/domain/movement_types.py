"""
Movement types and their direction rules.

Responsibility:
    Defines the closed set of movement types, which of them deduct or add
    stock, which of them are order effects, and validates that a signed
    quantity agrees with its type.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models, services,
    engines and the CLI.

Invariants enforced:
    - Unknown type strings are rejected at the boundary.
    - ``sale``, ``damaged``, ``sold_manual`` carry negative quantities;
      ``cancellation``, ``return``, ``purchase_received`` carry positive
      quantities; ``adjustment`` and ``correction`` may carry either sign.
    - Zero is never a valid movement quantity.

Failure modes:
    - UnknownMovementTypeError for strings outside the enum.
    - SignMismatchError for a quantity contradicting its type.
"""

from enum import Enum

from inventory_kernel.exceptions import SignMismatchError, UnknownMovementTypeError


class MovementType(str, Enum):
    """Kind of stock movement recorded in the ledger."""

    SALE = "sale"
    CANCELLATION = "cancellation"
    RETURN = "return"
    PURCHASE_RECEIVED = "purchase_received"
    ADJUSTMENT = "adjustment"
    CORRECTION = "correction"
    DAMAGED = "damaged"
    SOLD_MANUAL = "sold_manual"


class OrderStatus(str, Enum):
    """Lifecycle status of an order as reported by the order collaborator."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    REFUNDED = "refunded"
    FAILED = "failed"


class OrderChannel(str, Enum):
    """Sales channel an order came from."""

    PORTAL = "portal"
    SHOPIFY = "shopify"
    TRENDYOL = "trendyol"


class ReturnStatus(str, Enum):
    """Lifecycle status of a customer return."""

    REQUESTED = "requested"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    LABEL_GENERATED = "label_generated"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    INSPECTING = "inspecting"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


DEDUCTION_TYPES = frozenset({
    MovementType.SALE,
    MovementType.DAMAGED,
    MovementType.SOLD_MANUAL,
})

ADDITION_TYPES = frozenset({
    MovementType.CANCELLATION,
    MovementType.RETURN,
    MovementType.PURCHASE_RECEIVED,
})

SIGNED_TYPES = frozenset({
    MovementType.ADJUSTMENT,
    MovementType.CORRECTION,
})

# At most one restoration of either kind per (order, variant)
RESTORATION_TYPES = frozenset({
    MovementType.CANCELLATION,
    MovementType.RETURN,
})

ORDER_EFFECT_TYPES = frozenset({MovementType.SALE}) | RESTORATION_TYPES


def parse_movement_type(value: "str | MovementType") -> MovementType:
    """Coerce a string to MovementType, rejecting anything unknown."""
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(value)
    except ValueError:
        raise UnknownMovementTypeError(str(value)) from None


def validate_direction(movement_type: MovementType, quantity: int) -> None:
    """
    Check that ``quantity`` has the sign ``movement_type`` requires.

    Raises:
        SignMismatchError: on zero, or on a sign the type forbids.
    """
    if quantity == 0:
        raise SignMismatchError(movement_type.value, quantity, "non-zero")
    if movement_type in DEDUCTION_TYPES and quantity > 0:
        raise SignMismatchError(movement_type.value, quantity, "negative")
    if movement_type in ADDITION_TYPES and quantity < 0:
        raise SignMismatchError(movement_type.value, quantity, "positive")


def signed_quantity(movement_type: MovementType, magnitude: int) -> int:
    """
    Apply the type's direction to an operator-entered magnitude.

    Deduction types are negated, addition types made positive; adjustment
    and correction keep the sign as entered.
    """
    if movement_type in DEDUCTION_TYPES:
        return -abs(magnitude)
    if movement_type in ADDITION_TYPES:
        return abs(magnitude)
    return magnitude
