"""
ORM-Level Immutability Enforcement for the movement log.

===============================================================================
WHY THIS EXISTS
===============================================================================

Every stock figure is a fold over the movement log.  If a movement's type,
quantity, variant, order or timestamp could be edited in place, replaying
the log would silently produce different numbers and no reconciliation run
could detect it.  Movements are therefore append-only.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We intercept them and check which columns changed:

    session.flush()
         |
         v
    [before_update] --> _check_movement_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_movement_delete() ----------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PERMITTED MUTATIONS
===============================================================================

Field / operation        | When allowed                     | Who does it
-------------------------|----------------------------------|----------------------------
quantity_before / after  | Always                           | History recalculator
location_id              | Only NULL -> value               | Null-location migration
DELETE                   | Inside movement_purge_scope()    | Reconciliation routines

Everything else raises ImmutabilityViolationError.

Bulk ``update()``/``delete()`` statements bypass mapper events; the stores
always go through ``session.delete()`` and attribute assignment so the
listeners fire.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

    with movement_purge_scope(session, reason="duplicate_sale_cleanup"):
        session.delete(movement)
        session.flush()
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

MOVEMENT_MUTABLE_FIELDS = frozenset({
    "quantity_before",
    "quantity_after",
})

_PURGE_SCOPE_KEY = "inventory_movement_purge_reason"


@contextmanager
def movement_purge_scope(session: Session, reason: str) -> Generator[None, None, None]:
    """
    Permit movement deletes on ``session`` for the duration of the block.

    Deletes must be flushed before the block exits; a delete flushed later
    (e.g. at commit) is checked outside the scope and refused.
    """
    previous = session.info.get(_PURGE_SCOPE_KEY)
    session.info[_PURGE_SCOPE_KEY] = reason
    try:
        yield
    finally:
        if previous is None:
            session.info.pop(_PURGE_SCOPE_KEY, None)
        else:
            session.info[_PURGE_SCOPE_KEY] = previous


def _check_movement_immutability(mapper, connection, target):
    """
    Refuse updates to movement fields other than snapshots and a first
    location assignment.
    """
    from inventory_kernel.models.movement import InventoryMovement

    if not isinstance(target, InventoryMovement):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in MOVEMENT_MUTABLE_FIELDS:
            continue
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key == "location_id" and all(v is None for v in hist.deleted):
            continue

        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "InventoryMovement",
                "entity_id": target.id,
                "operation": "UPDATE",
                "field": attr.key,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="InventoryMovement",
            entity_id=str(target.id),
            reason=f"Cannot modify field '{attr.key}' on a recorded movement",
        )


def _check_movement_delete(mapper, connection, target):
    """Refuse movement deletes outside a reconciliation purge scope."""
    from inventory_kernel.models.movement import InventoryMovement

    if not isinstance(target, InventoryMovement):
        return

    session = object_session(target)
    if session is not None and session.info.get(_PURGE_SCOPE_KEY):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "InventoryMovement",
            "entity_id": target.id,
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason="Movements can only be deleted by a reconciliation purge",
    )


def register_immutability_listeners():
    """
    Register movement immutability listeners.  Safe to call repeatedly.

    Call this after models are imported but before any database
    operations begin.
    """
    from inventory_kernel.models.movement import InventoryMovement

    if not event.contains(InventoryMovement, "before_update", _check_movement_immutability):
        event.listen(InventoryMovement, "before_update", _check_movement_immutability)
    if not event.contains(InventoryMovement, "before_delete", _check_movement_delete):
        event.listen(InventoryMovement, "before_delete", _check_movement_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove movement immutability listeners.

    WARNING: Only use this in tests that must seed corrupted history.
    """
    from inventory_kernel.models.movement import InventoryMovement

    _safe_remove_listener(InventoryMovement, "before_update", _check_movement_immutability)
    _safe_remove_listener(InventoryMovement, "before_delete", _check_movement_delete)
