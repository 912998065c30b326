"""Persistence stores for the movement log and stock projections."""

from inventory_kernel.stores.base import BaseStore
from inventory_kernel.stores.movement_store import MovementStore
from inventory_kernel.stores.projection_store import ProjectionStore

__all__ = ["BaseStore", "MovementStore", "ProjectionStore"]
