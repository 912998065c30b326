"""
Typed Exception Hierarchy for the Inventory Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every stock number in the system is derived from the movement log.  When a
write is refused, or a repair run cannot proceed, the caller must be able to
tell exactly why without parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, CLI/API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        writer.append(variant_id=7, location_id=3, movement_type="sale", quantity=5)
    except SignMismatchError as e:
        report(code=e.code, movement_type=e.movement_type, quantity=e.quantity)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryLedgerError (base)
    |
    +-- MovementError
    |   +-- InvalidLocationError
    |   +-- SignMismatchError
    |   +-- UnknownMovementTypeError
    |   +-- DuplicateSuppressedError
    |   +-- OrderNotFoundError
    |
    +-- ReconciliationError
    |   +-- NoLocationConfiguredError
    |   +-- ProjectionStaleError
    |   +-- ReconciliationAbortedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Movement        | INVALID_LOCATION            | Location missing or inactive
                | SIGN_MISMATCH               | Quantity sign contradicts the type
                | UNKNOWN_MOVEMENT_TYPE       | Type string outside the closed set
                | DUPLICATE_SUPPRESSED        | Order effect already recorded (OK)
                | ORDER_NOT_FOUND             | Lifecycle hook for an unknown order
----------------|-----------------------------|-----------------------------------------
Reconciliation  | NO_LOCATION_CONFIGURED      | No default location for migration
                | PROJECTION_STALE            | Deletions committed, recompute failed
                | RECONCILIATION_ABORTED      | Operator declined confirmation
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Movement field rewrite / stray delete
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_CONFIGURATION       | Unknown policy / mode / bad YAML value

===============================================================================
HANDLING PATTERNS
===============================================================================

1. DUPLICATES ARE NOT FAILURES.  The Ledger Writer reports a suppressed
   duplicate as ``AppendStatus.DUPLICATE_SUPPRESSED`` on its result object;
   ``DuplicateSuppressedError`` exists so that lower layers can signal the
   condition and be caught at the writer boundary.

2. BATCH ROUTINES AGGREGATE.  Reconciliation routines count per-item
   failures and continue.  Only global preconditions
   (``NoLocationConfiguredError``) abort a run.

3. PROJECTION STALE IS REPAIRABLE.  ``ProjectionStaleError.variant_ids``
   lists the variants whose projections must be rebuilt, either by
   re-running the routine or by the history recalculator.
"""


class InventoryLedgerError(Exception):
    """
    Base exception for all inventory ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_LEDGER_ERROR"


# Movement-related exceptions


class MovementError(InventoryLedgerError):
    """Base exception for rejected movement writes."""

    code: str = "MOVEMENT_ERROR"


class InvalidLocationError(MovementError):
    """The referenced location does not exist or is inactive."""

    code: str = "INVALID_LOCATION"

    def __init__(self, location_id: int | None, reason: str = "not found"):
        self.location_id = location_id
        self.reason = reason
        super().__init__(f"Invalid location {location_id}: {reason}")


class SignMismatchError(MovementError):
    """Quantity sign contradicts the movement type's direction."""

    code: str = "SIGN_MISMATCH"

    def __init__(self, movement_type: str, quantity: int, expected: str):
        self.movement_type = movement_type
        self.quantity = quantity
        self.expected = expected
        super().__init__(
            f"Movement type '{movement_type}' requires a {expected} quantity, got {quantity}"
        )


class UnknownMovementTypeError(MovementError):
    """Movement type string is not one of the recognised types."""

    code: str = "UNKNOWN_MOVEMENT_TYPE"

    def __init__(self, movement_type: str):
        self.movement_type = movement_type
        super().__init__(f"Unknown movement type: {movement_type!r}")


class DuplicateSuppressedError(MovementError):
    """
    An order effect for (order, variant) already exists.

    Not a failure: the Ledger Writer converts this into a
    DUPLICATE_SUPPRESSED result.
    """

    code: str = "DUPLICATE_SUPPRESSED"

    def __init__(
        self,
        order_id: int,
        product_variant_id: int,
        movement_type: str,
        existing_movement_id: int | None = None,
    ):
        self.order_id = order_id
        self.product_variant_id = product_variant_id
        self.movement_type = movement_type
        self.existing_movement_id = existing_movement_id
        super().__init__(
            f"Order {order_id} already has a '{movement_type}' effect "
            f"for variant {product_variant_id}"
        )


class OrderNotFoundError(MovementError):
    """The order referenced by a lifecycle operation does not exist."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# Reconciliation exceptions


class ReconciliationError(InventoryLedgerError):
    """Base exception for reconciliation run failures."""

    code: str = "RECONCILIATION_ERROR"


class NoLocationConfiguredError(ReconciliationError):
    """No default location exists; null-location migration cannot run."""

    code: str = "NO_LOCATION_CONFIGURED"

    def __init__(self, requested_code: str | None = None):
        self.requested_code = requested_code
        if requested_code:
            msg = f"Configured default location '{requested_code}' does not exist"
        else:
            msg = "No locations found. Create a location first."
        super().__init__(msg)


class ProjectionStaleError(ReconciliationError):
    """
    Movements were deleted but the projection recompute failed.

    The listed variants carry stale projections until rebuilt.
    """

    code: str = "PROJECTION_STALE"

    def __init__(self, routine: str, variant_ids: list[int]):
        self.routine = routine
        self.variant_ids = sorted(variant_ids)
        super().__init__(
            f"{routine}: projections stale for {len(self.variant_ids)} variant(s): "
            f"{self.variant_ids[:10]}"
        )


class ReconciliationAbortedError(ReconciliationError):
    """The operator declined to apply a scanned reconciliation plan."""

    code: str = "RECONCILIATION_ABORTED"

    def __init__(self, routine: str):
        self.routine = routine
        super().__init__(f"{routine}: aborted by operator")


# Immutability exceptions


class ImmutabilityError(InventoryLedgerError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete a movement outside the permitted paths.

    Movements are append-only.  Snapshot correction, null-location
    assignment and reconciliation purges are the only sanctioned mutations.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Configuration


class ConfigurationError(InventoryLedgerError):
    """A configuration value is missing or outside its allowed set."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, key: str, value: object, allowed: tuple[str, ...] = ()):
        self.key = key
        self.value = value
        self.allowed = allowed
        msg = f"Invalid configuration value for '{key}': {value!r}"
        if allowed:
            msg += f" (allowed: {', '.join(allowed)})"
        super().__init__(msg)
