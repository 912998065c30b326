"""
Pure domain layer.

This module contains pure data transfer objects and domain rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    LocationInfo,
    MovementSnapshot,
    OrderInfo,
    OrderLine,
    SnapshotCorrection,
)
from inventory_kernel.domain.movement_types import (
    ADDITION_TYPES,
    DEDUCTION_TYPES,
    ORDER_EFFECT_TYPES,
    RESTORATION_TYPES,
    MovementType,
    OrderChannel,
    OrderStatus,
    parse_movement_type,
    signed_quantity,
    validate_direction,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LocationInfo",
    "MovementSnapshot",
    "OrderInfo",
    "OrderLine",
    "SnapshotCorrection",
    "MovementType",
    "OrderStatus",
    "OrderChannel",
    "ADDITION_TYPES",
    "DEDUCTION_TYPES",
    "ORDER_EFFECT_TYPES",
    "RESTORATION_TYPES",
    "parse_movement_type",
    "signed_quantity",
    "validate_direction",
]
